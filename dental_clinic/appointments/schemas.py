"""
Appointment Schemas - Pydantic models for appointment data validation and serialization.

Incoming times may be naive (wall clock in the request timezone) or carry an
offset. Outgoing times are rendered in the request timezone.
"""
from typing import Optional, List
from pydantic import BaseModel, Field
from datetime import datetime, date as calendar_date
from decimal import Decimal
import pytz

from .models import (
    Appointment, AppointmentCategory, AppointmentStatus, PaymentStatus, PaymentMethod
)
from .timegrid import to_local
from ..ledger.models import TransactionType

class PaymentInfo(BaseModel):
    """
    Payment summary supplied when booking
    
    Fields:
    - amount: Amount received so far (non-negative)
    - status: Payment status
    - method: Payment method
    - notes: Free text
    """
    amount: Decimal = Field(default=Decimal("0"), ge=0, description="Amount received so far")
    status: PaymentStatus = Field(default=PaymentStatus.PENDING)
    method: PaymentMethod = Field(default=PaymentMethod.CASH)
    notes: Optional[str] = None

class PaymentUpdate(BaseModel):
    """Partial payment summary update; only fields that are set are applied"""
    amount: Optional[Decimal] = Field(None, ge=0)
    status: Optional[PaymentStatus] = None
    method: Optional[PaymentMethod] = None
    notes: Optional[str] = None

class SlotRequest(BaseModel):
    """
    Slot Proposal Schema - Used to validate a slot without booking it
    
    Fields:
    - practitioner_id: Practitioner whose calendar is checked
    - start_time / end_time: Requested slot
    - timezone: IANA zone the times are expressed in (clinic default if omitted)
    - exclude_id: Appointment to ignore, when checking a reschedule
    """
    practitioner_id: str = Field(..., min_length=1)
    start_time: datetime
    end_time: datetime
    timezone: Optional[str] = Field(None, description="IANA timezone, e.g. Africa/Cairo")
    exclude_id: Optional[int] = None

class ProposedSlot(BaseModel):
    """Normalized slot returned by a successful proposal"""
    start_time: datetime
    end_time: datetime
    duration_minutes: int

class AppointmentCreate(BaseModel):
    """
    Appointment Creation Schema - Used when booking an appointment
    
    practitioner_id may be omitted by a dentist booking into their own calendar.
    """
    practitioner_id: Optional[str] = Field(None, min_length=1)
    subject_id: str = Field(..., min_length=1, description="Patient identifier")
    start_time: datetime
    end_time: datetime
    timezone: Optional[str] = Field(None, description="IANA timezone, e.g. Asia/Riyadh")
    category: AppointmentCategory
    notes: str = ""
    color_code: Optional[str] = None
    payment: Optional[PaymentInfo] = None

class AppointmentUpdate(BaseModel):
    """
    Appointment Update Schema - Partial update; unset fields are left alone
    
    Changing start_time or end_time re-runs the conflict check.
    """
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    timezone: Optional[str] = Field(None, description="IANA timezone for start_time/end_time")
    category: Optional[AppointmentCategory] = None
    status: Optional[AppointmentStatus] = None
    notes: Optional[str] = None
    color_code: Optional[str] = None
    payment: Optional[PaymentUpdate] = None

class LedgerEvent(BaseModel):
    """
    Ledger Event Schema - A transaction pushed by the ledger
    
    Fields:
    - amount: Transaction amount (non-negative)
    - type: payment, refund or adjustment
    - method: Payment method used
    """
    amount: Decimal = Field(..., ge=0)
    type: TransactionType
    method: PaymentMethod = PaymentMethod.CASH

class PaymentResponse(BaseModel):
    amount: float
    status: PaymentStatus
    method: PaymentMethod
    notes: Optional[str] = None

class AppointmentResponse(BaseModel):
    """
    Appointment Response Schema - Used when returning appointment data
    """
    id: int
    practitioner_id: str
    subject_id: str
    start_time: datetime
    end_time: datetime
    duration_minutes: int
    category: AppointmentCategory
    status: AppointmentStatus
    color_code: str
    payment: PaymentResponse
    notes: str
    created_by: str
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        """Configuration for Pydantic model to enable ORM mode"""
        from_attributes = True

    @classmethod
    def from_appointment(cls, appointment: Appointment, tz: pytz.BaseTzInfo) -> "AppointmentResponse":
        """Build a response with times rendered in ``tz``"""
        response = cls.model_validate(appointment)
        response.start_time = to_local(appointment.start_time, tz)
        response.end_time = to_local(appointment.end_time, tz)
        return response

class AppointmentListResponse(BaseModel):
    """Appointments in a requested window"""
    count: int
    data: List[AppointmentResponse]

class DailyAppointmentSummary(BaseModel):
    """
    Daily appointment financial summary
    
    Fields:
    - date: Local calendar day
    - total_appointments: Appointments starting that day
    - total_earnings: Sum of cached payment amounts
    - paid_appointments: Appointments whose cached status is paid
    - pending_payments: The remaining appointments
    """
    date: calendar_date
    total_appointments: int
    total_earnings: float
    paid_appointments: int
    pending_payments: int
    appointments: List[AppointmentResponse]

class LastVisitResponse(BaseModel):
    """Most recent visit of a patient; last_visit is None on a first visit"""
    subject_id: str
    last_visit: Optional[datetime] = None
    first_time: bool
