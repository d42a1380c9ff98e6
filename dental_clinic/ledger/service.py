"""
Ledger Service - Business logic for recording transactions and summaries.

The ledger is the authoritative money record. Payments and refunds that
reference an appointment are also pushed into that appointment's cached
payment summary.
"""
from collections import defaultdict
from typing import Dict, List, Optional
from datetime import datetime, date, timezone as dt_timezone
from decimal import Decimal
from sqlalchemy.orm import Session
from sqlalchemy.exc import SQLAlchemyError
from fastapi import HTTPException, status
import logging

from ..auth.schemas import CurrentUser
from ..appointments.models import Appointment, PaymentMethod
from ..appointments.schemas import LedgerEvent
from ..appointments.locks import practitioner_lock
from ..appointments.service import apply_payment_event
from ..appointments.timegrid import resolve_timezone, to_utc, local_day_bounds, local_month_bounds
from .models import Transaction, TransactionType
from .schemas import TransactionCreate

# Set up logging
logger = logging.getLogger(__name__)

def _commit(db: Session) -> None:
    """Commit the ledger write, rolling back everything on failure."""
    try:
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Error recording transaction: {str(e)}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="An error occurred while recording the transaction"
        )

def record_transaction(
    db: Session,
    transaction_data: TransactionCreate,
    current_user: CurrentUser
) -> Transaction:
    """
    Record a ledger transaction.
    
    A payment or refund against an existing appointment updates its cached
    payment summary in the same commit; either both are stored or neither.
    
    Args:
        db: Database session
        transaction_data: Transaction to record
        current_user: Staff member recording it
        
    Returns:
        Transaction: The persisted transaction
    """
    tz = resolve_timezone(transaction_data.timezone)
    when = to_utc(transaction_data.date, tz) if transaction_data.date else datetime.now(dt_timezone.utc)
    
    transaction = Transaction(
        date=when,
        subject_id=transaction_data.subject_id,
        appointment_id=transaction_data.appointment_id,
        amount=transaction_data.amount,
        type=transaction_data.type,
        payment_method=transaction_data.payment_method,
        notes=transaction_data.notes,
        created_by=current_user.id,
    )
    db.add(transaction)
    
    appointment_id = transaction_data.appointment_id
    updates_cache = appointment_id is not None and transaction.type in (
        TransactionType.PAYMENT, TransactionType.REFUND
    )
    appointment = None
    if updates_cache:
        appointment = db.query(Appointment).filter(Appointment.id == appointment_id).first()
    
    if appointment is not None:
        with practitioner_lock(db, appointment.practitioner_id):
            db.refresh(appointment)
            apply_payment_event(appointment, LedgerEvent(
                amount=transaction.amount,
                type=transaction.type,
                method=transaction.payment_method,
            ))
            _commit(db)
    else:
        _commit(db)
    
    db.refresh(transaction)
    logger.info(
        f"Transaction {transaction.id} recorded: {transaction.type.value} {transaction.amount} "
        f"by user {current_user.id}"
    )
    if updates_cache and appointment is None:
        logger.warning(
            f"Transaction {transaction.id} references unknown appointment {appointment_id}; "
            f"payment cache not updated"
        )
    
    return transaction

def list_appointment_transactions(db: Session, appointment_id: int) -> List[Transaction]:
    """
    Get the transactions that reference an appointment id.
    
    Works for deleted appointments, whose transactions are kept.
    """
    return db.query(Transaction).filter(
        Transaction.appointment_id == appointment_id
    ).order_by(Transaction.date).all()

def _totals_by_type(transactions: List[Transaction]) -> Dict[TransactionType, Decimal]:
    totals = {t: Decimal("0") for t in TransactionType}
    for transaction in transactions:
        totals[transaction.type] += Decimal(transaction.amount)
    return totals

def _net_income(totals: Dict[TransactionType, Decimal]) -> Decimal:
    return (
        totals[TransactionType.PAYMENT]
        - totals[TransactionType.REFUND]
        + totals[TransactionType.ADJUSTMENT]
    )

def get_daily_summary(db: Session, day: date, timezone: Optional[str] = None) -> dict:
    """
    Summarize the transactions of a local calendar day.
    
    Args:
        db: Database session
        day: Calendar day in the requested zone
        timezone: IANA zone (clinic default if None)
        
    Returns:
        dict matching DailyFinancialSummary
    """
    tz = resolve_timezone(timezone)
    day_start, day_end = local_day_bounds(day, tz)
    transactions = db.query(Transaction).filter(
        Transaction.date >= day_start,
        Transaction.date < day_end,
    ).order_by(Transaction.date).all()
    
    totals = _totals_by_type(transactions)
    breakdown = {method.value: Decimal("0") for method in PaymentMethod}
    for transaction in transactions:
        if transaction.type == TransactionType.PAYMENT:
            breakdown[transaction.payment_method.value] += Decimal(transaction.amount)
    
    return {
        "date": day,
        "total_payments": totals[TransactionType.PAYMENT],
        "total_refunds": totals[TransactionType.REFUND],
        "total_adjustments": totals[TransactionType.ADJUSTMENT],
        "net_income": _net_income(totals),
        "payment_method_breakdown": breakdown,
        "transactions": transactions,
    }

def get_monthly_summary(db: Session, year: int, month: int, timezone: Optional[str] = None) -> dict:
    """
    Summarize a month of transactions, with totals per local day.
    
    Args:
        db: Database session
        year: Calendar year
        month: Calendar month (1-12)
        timezone: IANA zone the month and days are expressed in
        
    Returns:
        dict matching MonthlyFinancialSummary
    """
    tz = resolve_timezone(timezone)
    month_start, month_end = local_month_bounds(year, month, tz)
    transactions = db.query(Transaction).filter(
        Transaction.date >= month_start,
        Transaction.date < month_end,
    ).order_by(Transaction.date).all()
    
    by_day = defaultdict(list)
    for transaction in transactions:
        by_day[transaction.date.astimezone(tz).date()].append(transaction)
    
    daily_summaries = []
    for day in sorted(by_day):
        day_totals = _totals_by_type(by_day[day])
        present = {tx.type for tx in by_day[day]}
        daily_summaries.append({
            "date": day,
            "totals": {t.value: day_totals[t] for t in TransactionType if t in present},
        })
    
    totals = _totals_by_type(transactions)
    return {
        "year": year,
        "month": month,
        "total_payments": totals[TransactionType.PAYMENT],
        "total_refunds": totals[TransactionType.REFUND],
        "total_adjustments": totals[TransactionType.ADJUSTMENT],
        "net_income": _net_income(totals),
        "daily_summaries": daily_summaries,
    }
