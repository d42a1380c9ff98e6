"""
Ledger Schemas - Pydantic models for transactions and financial summaries.
"""
from typing import Optional, List, Dict
from pydantic import BaseModel, Field
from datetime import datetime, date as calendar_date
from decimal import Decimal
import pytz

from .models import Transaction, TransactionType
from ..appointments.models import PaymentMethod
from ..appointments.timegrid import to_local

class TransactionCreate(BaseModel):
    """
    Transaction Creation Schema - Used when recording money movement
    
    Fields:
    - subject_id: Patient the transaction belongs to (optional)
    - appointment_id: Appointment it pays for (optional)
    - amount: Non-negative amount
    - type: payment, refund or adjustment
    - payment_method: cash, card, insurance or other
    - notes: Free text
    - date: When the money moved, defaults to now
    - timezone: IANA zone for a naive date
    """
    subject_id: Optional[str] = None
    appointment_id: Optional[int] = None
    amount: Decimal = Field(..., ge=0, description="Amount cannot be negative")
    type: TransactionType
    payment_method: PaymentMethod
    notes: Optional[str] = None
    date: Optional[datetime] = None
    timezone: Optional[str] = Field(None, description="IANA timezone, e.g. Asia/Dubai")

class TransactionResponse(BaseModel):
    """Transaction Response Schema - Used when returning ledger entries"""
    id: int
    date: datetime
    subject_id: Optional[str] = None
    appointment_id: Optional[int] = None
    amount: float
    type: TransactionType
    payment_method: PaymentMethod
    notes: Optional[str] = None
    created_by: str

    class Config:
        """Configuration for Pydantic model to enable ORM mode"""
        from_attributes = True

    @classmethod
    def from_transaction(cls, transaction: Transaction, tz: pytz.BaseTzInfo) -> "TransactionResponse":
        """Build a response with the date rendered in ``tz``"""
        response = cls.model_validate(transaction)
        response.date = to_local(transaction.date, tz)
        return response

class DailyFinancialSummary(BaseModel):
    """
    Daily ledger summary
    
    net_income is payments minus refunds plus adjustments; the method
    breakdown only counts payments.
    """
    date: calendar_date
    total_payments: float
    total_refunds: float
    total_adjustments: float
    net_income: float
    payment_method_breakdown: Dict[str, float]
    transactions: List[TransactionResponse]

class DaySummary(BaseModel):
    """Per-type totals of one local day"""
    date: calendar_date
    totals: Dict[str, float]

class MonthlyFinancialSummary(BaseModel):
    """Monthly ledger summary with per-day totals"""
    year: int
    month: int
    total_payments: float
    total_refunds: float
    total_adjustments: float
    net_income: float
    daily_summaries: List[DaySummary]
