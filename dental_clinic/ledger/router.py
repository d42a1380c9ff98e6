"""
Financial Router - API endpoints for the payment ledger.
"""
from typing import List, Optional
from datetime import date
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from ..database import get_db
from ..auth.dependencies import require_permission
from ..auth.schemas import CurrentUser
from ..core.permissions import Permission
from .schemas import (
    TransactionCreate,
    TransactionResponse,
    DailyFinancialSummary,
    MonthlyFinancialSummary,
)
from .service import (
    record_transaction,
    list_appointment_transactions,
    get_daily_summary,
    get_monthly_summary,
)
from ..appointments.timegrid import resolve_timezone

router = APIRouter()

@router.post("/transactions", response_model=TransactionResponse, status_code=status.HTTP_201_CREATED)
async def create_transaction(
    transaction_data: TransactionCreate,
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(require_permission(Permission.RECORD_TRANSACTION))
):
    """
    Record a payment, refund or adjustment

    Payments and refunds against an appointment also update its cached
    payment summary.
    """
    transaction = record_transaction(db, transaction_data, current_user)
    return TransactionResponse.from_transaction(transaction, resolve_timezone(transaction_data.timezone))

@router.get("/daily", response_model=DailyFinancialSummary)
async def daily_summary(
    day: date = Query(..., alias="date", description="Local calendar day"),
    timezone: Optional[str] = Query(None),
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(require_permission(Permission.VIEW_FINANCIALS))
):
    """
    Get payment, refund and adjustment totals for a day
    """
    tz = resolve_timezone(timezone)
    summary = get_daily_summary(db, day, timezone)
    summary["transactions"] = [TransactionResponse.from_transaction(t, tz) for t in summary["transactions"]]
    return DailyFinancialSummary(**summary)

@router.get("/monthly", response_model=MonthlyFinancialSummary)
async def monthly_summary(
    year: int = Query(..., ge=1970),
    month: int = Query(..., ge=1, le=12),
    timezone: Optional[str] = Query(None),
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(require_permission(Permission.VIEW_FINANCIALS))
):
    """
    Get monthly totals with a per-day breakdown
    """
    return get_monthly_summary(db, year, month, timezone)

@router.get("/appointments/{appointment_id}/transactions", response_model=List[TransactionResponse])
async def appointment_transactions(
    appointment_id: int,
    timezone: Optional[str] = Query(None),
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(require_permission(Permission.VIEW_FINANCIALS))
):
    """
    Get the ledger entries referencing an appointment, deleted or not
    """
    tz = resolve_timezone(timezone)
    return [TransactionResponse.from_transaction(t, tz) for t in list_appointment_transactions(db, appointment_id)]
