"""
Appointment Service - Scheduling engine for the clinic.

This module provides slot proposal (normalization and conflict detection),
booking CRUD, range queries, and the payment cache driven by ledger events.
Every write to start_time/end_time goes through propose_slot while the
practitioner lock is held.
"""
from typing import List, Optional, Tuple
from datetime import datetime, date
from decimal import Decimal
from sqlalchemy.orm import Session
from sqlalchemy.exc import SQLAlchemyError
from fastapi import HTTPException, status
import logging

from ..auth.models import UserRole
from ..auth.schemas import CurrentUser
from ..ledger.models import TransactionType
from .models import Appointment, AppointmentStatus, PaymentStatus
from .schemas import AppointmentCreate, AppointmentUpdate, LedgerEvent
from .conflicts import find_conflicts, overlapping_query
from .locks import practitioner_lock
from .timegrid import (
    resolve_timezone, normalize_instant, duration_minutes, local_day_bounds, to_utc
)
from .exceptions import ValidationError, InvalidRangeError, SlotConflictError, NotFoundError

# Set up logging
logger = logging.getLogger(__name__)

def _commit(db: Session, action: str) -> None:
    """Commit the session, rolling back and surfacing a generic failure on error."""
    try:
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Error while trying to {action}: {str(e)}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"An error occurred while trying to {action}"
        )

def propose_slot(
    db: Session,
    practitioner_id: str,
    start_time: datetime,
    end_time: datetime,
    timezone: Optional[str] = None,
    exclude_id: Optional[int] = None
) -> Tuple[datetime, datetime, int]:
    """
    Validate and normalize a slot for a practitioner.

    Args:
        db: Database session
        practitioner_id: Practitioner whose calendar is checked
        start_time: Requested start, naive (wall clock in timezone) or aware
        end_time: Requested end, naive (wall clock in timezone) or aware
        timezone: IANA zone for naive inputs (clinic default if None)
        exclude_id: Appointment to leave out of the check (self on update)

    Returns:
        Tuple of (start, end, duration_minutes) with snapped UTC times

    Raises:
        ValidationError: If the practitioner or timezone is invalid
        InvalidRangeError: If the snapped end is not after the snapped start
        SlotConflictError: If the slot overlaps another booking
    """
    if not practitioner_id:
        raise ValidationError("practitioner_id is required")

    tz = resolve_timezone(timezone)
    start = normalize_instant(start_time, tz)
    end = normalize_instant(end_time, tz)

    if end <= start:
        raise InvalidRangeError(start, end)

    conflicts = find_conflicts(db, practitioner_id, start, end, exclude_id=exclude_id)
    if conflicts:
        existing = conflicts[0]
        logger.warning(
            f"Slot {start.isoformat()}-{end.isoformat()} for practitioner {practitioner_id} "
            f"conflicts with appointment {existing.id}"
        )
        raise SlotConflictError(existing.id, existing.start_time, existing.end_time)

    return start, end, duration_minutes(start, end)

def get_appointment(db: Session, appointment_id: int) -> Appointment:
    """
    Get an appointment by ID.

    Raises:
        NotFoundError: If appointment not found
    """
    appointment = db.query(Appointment).filter(Appointment.id == appointment_id).first()
    if not appointment:
        raise NotFoundError()
    return appointment

def create_appointment(
    db: Session,
    appointment_data: AppointmentCreate,
    current_user: CurrentUser
) -> Appointment:
    """
    Book a new appointment.

    Args:
        db: Database session
        appointment_data: Booking request
        current_user: Staff member making the booking; recorded as created_by

    Returns:
        Appointment: The persisted appointment in the scheduled state

    Raises:
        ValidationError: If no practitioner can be determined
        InvalidRangeError: If the snapped end is not after the snapped start
        SlotConflictError: If the slot overlaps another booking
    """
    practitioner_id = appointment_data.practitioner_id
    if not practitioner_id:
        # Dentists book into their own calendar by default
        if current_user.role != UserRole.DENTIST:
            raise ValidationError("practitioner_id is required")
        practitioner_id = current_user.id

    with practitioner_lock(db, practitioner_id):
        start, end, minutes = propose_slot(
            db,
            practitioner_id,
            appointment_data.start_time,
            appointment_data.end_time,
            appointment_data.timezone,
        )

        payment = appointment_data.payment
        appointment = Appointment(
            practitioner_id=practitioner_id,
            subject_id=appointment_data.subject_id,
            start_time=start,
            end_time=end,
            duration_minutes=minutes,
            category=appointment_data.category,
            status=AppointmentStatus.SCHEDULED,
            notes=appointment_data.notes,
            created_by=current_user.id,
        )
        if appointment_data.color_code:
            appointment.color_code = appointment_data.color_code
        if payment:
            appointment.payment_amount = payment.amount
            appointment.payment_status = payment.status
            appointment.payment_method = payment.method
            appointment.payment_notes = payment.notes

        db.add(appointment)
        _commit(db, "create the appointment")

    db.refresh(appointment)
    logger.info(
        f"Appointment {appointment.id} booked for practitioner {practitioner_id} "
        f"({start.isoformat()} - {end.isoformat()}) by user {current_user.id}"
    )
    return appointment

def update_appointment(
    db: Session,
    appointment_id: int,
    patch: AppointmentUpdate,
    timezone: Optional[str] = None
) -> Appointment:
    """
    Apply a partial update to an appointment.

    Time changes are re-validated against the practitioner's other bookings;
    every other field is assigned as given. Status is a free assignment.

    Args:
        db: Database session
        appointment_id: ID of the appointment
        patch: Fields to change; unset fields are left alone
        timezone: IANA zone for naive start_time/end_time values

    Returns:
        Appointment: Updated appointment

    Raises:
        NotFoundError: If appointment not found
        ValidationError: If a cancelled appointment would be rescheduled,
            or status is explicitly null
        InvalidRangeError: If the new slot is empty or inverted
        SlotConflictError: If the new slot overlaps another booking
    """
    appointment = get_appointment(db, appointment_id)
    changes = patch.model_dump(exclude_unset=True, exclude={"timezone"})
    if not changes:
        return appointment

    if "status" in changes and changes["status"] is None:
        raise ValidationError("status cannot be null")

    payment_changes = changes.pop("payment", None) or {}
    reschedule = "start_time" in changes or "end_time" in changes

    with practitioner_lock(db, appointment.practitioner_id):
        if reschedule:
            if appointment.is_cancelled:
                raise ValidationError("Cancelled appointments cannot be rescheduled")

            # A missing side keeps its stored UTC value
            tz = resolve_timezone(timezone)
            new_start = changes.pop("start_time", None) or appointment.start_time
            new_end = changes.pop("end_time", None) or appointment.end_time
            start, end, minutes = propose_slot(
                db,
                appointment.practitioner_id,
                to_utc(new_start, tz),
                to_utc(new_end, tz),
                timezone,
                exclude_id=appointment.id,
            )
            appointment.set_times(start, end, minutes)

        if "status" in changes:
            appointment.update_status(changes.pop("status"))

        for field, value in changes.items():
            if value is not None:
                setattr(appointment, field, value)

        for field, value in payment_changes.items():
            if value is not None:
                setattr(appointment, f"payment_{field}", value)

        _commit(db, "update the appointment")

    db.refresh(appointment)
    logger.info(f"Appointment {appointment_id} updated: {sorted(patch.model_fields_set)}")
    return appointment

def delete_appointment(db: Session, appointment_id: int) -> None:
    """
    Hard-delete an appointment.

    Ledger transactions referencing it are kept and keep the dangling id.

    Raises:
        NotFoundError: If appointment not found
    """
    appointment = get_appointment(db, appointment_id)
    db.delete(appointment)
    _commit(db, "delete the appointment")
    logger.info(f"Appointment {appointment_id} deleted")

def query_range(
    db: Session,
    start: datetime,
    end: datetime,
    timezone: Optional[str] = None,
    practitioner_id: Optional[str] = None
) -> List[Appointment]:
    """
    List appointments intersecting [start, end).

    Args:
        db: Database session
        start: Window start, naive (wall clock in timezone) or aware
        end: Window end (exclusive)
        timezone: IANA zone for naive inputs
        practitioner_id: Restrict to one practitioner

    Returns:
        list[Appointment]: Matching appointments ordered by start time

    Raises:
        ValidationError: If the timezone is unknown or the window is empty
    """
    tz = resolve_timezone(timezone)
    window_start = to_utc(start, tz)
    window_end = to_utc(end, tz)
    if window_end <= window_start:
        raise ValidationError("end must be after start")

    return overlapping_query(db, window_start, window_end, practitioner_id=practitioner_id).all()

def apply_payment_event(appointment: Appointment, event: LedgerEvent) -> None:
    """
    Apply a ledger transaction to an appointment's cached payment summary.

    Payments add to the cached amount and refunds subtract from it, never
    going below zero. The status becomes paid when the amount is positive
    and pending otherwise. Adjustments leave the cache untouched.

    Only mutates the appointment; the caller holds the practitioner lock
    and commits.
    """
    if event.type == TransactionType.ADJUSTMENT:
        return

    current = Decimal(appointment.payment_amount or 0)
    if event.type == TransactionType.PAYMENT:
        amount = current + event.amount
    else:
        amount = max(Decimal("0"), current - event.amount)

    appointment.payment_amount = amount
    appointment.payment_method = event.method
    appointment.payment_status = PaymentStatus.PAID if amount > 0 else PaymentStatus.PENDING

def apply_ledger_event(db: Session, appointment_id: int, event: LedgerEvent) -> Appointment:
    """
    Update the cached payment summary from a ledger transaction.

    The read-modify-write of the cached amount runs under the practitioner
    lock, so concurrent events for the same appointment are not lost.

    Args:
        db: Database session
        appointment_id: Appointment the transaction refers to
        event: Ledger transaction

    Returns:
        Appointment: Appointment with its refreshed payment summary

    Raises:
        NotFoundError: If appointment not found
    """
    appointment = get_appointment(db, appointment_id)
    if event.type == TransactionType.ADJUSTMENT:
        return appointment

    with practitioner_lock(db, appointment.practitioner_id):
        # Re-read the cached amount once the lock is held
        db.refresh(appointment)
        apply_payment_event(appointment, event)
        _commit(db, "update the appointment payment")

    db.refresh(appointment)
    logger.info(
        f"Appointment {appointment_id} payment cache {event.type.value} {event.amount}: "
        f"amount={appointment.payment_amount} status={appointment.payment_status.value}"
    )
    return appointment

def get_daily_appointment_summary(
    db: Session,
    day: date,
    timezone: Optional[str] = None
) -> dict:
    """
    Summarize the cached payments of appointments starting on a local day.

    Returns:
        dict with date, total_appointments, total_earnings,
        paid_appointments, pending_payments and appointments
    """
    tz = resolve_timezone(timezone)
    day_start, day_end = local_day_bounds(day, tz)
    appointments = db.query(Appointment).filter(
        Appointment.start_time >= day_start,
        Appointment.start_time < day_end,
    ).order_by(Appointment.start_time).all()

    total_earnings = sum((Decimal(a.payment_amount or 0) for a in appointments), Decimal("0"))
    paid = len([a for a in appointments if a.payment_status == PaymentStatus.PAID])

    return {
        "date": day,
        "total_appointments": len(appointments),
        "total_earnings": total_earnings,
        "paid_appointments": paid,
        "pending_payments": len(appointments) - paid,
        "appointments": appointments,
    }

def get_last_visit(db: Session, subject_id: str) -> Optional[datetime]:
    """
    Get the end of a patient's most recent appointment.

    Returns:
        datetime of the latest end_time, or None for a first-time patient
    """
    latest = db.query(Appointment).filter(
        Appointment.subject_id == subject_id
    ).order_by(Appointment.end_time.desc()).first()
    return latest.end_time if latest else None
