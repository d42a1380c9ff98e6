"""
Appointment Router - API endpoints for booking and querying appointments.

Times in responses are rendered in the timezone named by the request.
"""
from typing import Optional
from datetime import datetime, date
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from ..database import get_db
from ..auth.dependencies import require_permission
from ..auth.schemas import CurrentUser
from ..core.permissions import Permission
from .schemas import (
    SlotRequest,
    ProposedSlot,
    AppointmentCreate,
    AppointmentUpdate,
    AppointmentResponse,
    AppointmentListResponse,
    DailyAppointmentSummary,
    LastVisitResponse,
    LedgerEvent,
)
from .service import (
    propose_slot,
    create_appointment,
    get_appointment,
    update_appointment,
    delete_appointment,
    query_range,
    apply_ledger_event,
    get_daily_appointment_summary,
    get_last_visit,
)
from .timegrid import resolve_timezone, to_local

router = APIRouter()

@router.post("/propose", response_model=ProposedSlot)
async def propose_appointment_slot(
    slot: SlotRequest,
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(require_permission(Permission.CREATE_APPOINTMENT))
):
    """
    Validate a slot without booking it

    Returns the snapped slot, or 409 with the conflicting booking.
    """
    tz = resolve_timezone(slot.timezone)
    start, end, minutes = propose_slot(
        db, slot.practitioner_id, slot.start_time, slot.end_time, slot.timezone, slot.exclude_id
    )
    return ProposedSlot(start_time=to_local(start, tz), end_time=to_local(end, tz), duration_minutes=minutes)

@router.post("/", response_model=AppointmentResponse, status_code=status.HTTP_201_CREATED)
async def book_appointment(
    appointment_data: AppointmentCreate,
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(require_permission(Permission.CREATE_APPOINTMENT))
):
    """
    Book an appointment

    Staff only. The slot is snapped to the 5-minute grid and rejected if it
    overlaps another booking of the same practitioner.
    """
    appointment = create_appointment(db, appointment_data, current_user)
    return AppointmentResponse.from_appointment(appointment, resolve_timezone(appointment_data.timezone))

@router.get("/", response_model=AppointmentListResponse)
async def list_appointments(
    start: datetime = Query(..., description="Window start"),
    end: datetime = Query(..., description="Window end (exclusive)"),
    timezone: Optional[str] = Query(None, description="IANA timezone, defaults to Africa/Cairo"),
    practitioner_id: Optional[str] = Query(None, description="Filter by practitioner"),
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(require_permission(Permission.READ_APPOINTMENTS))
):
    """
    Get appointments intersecting a time window
    """
    tz = resolve_timezone(timezone)
    appointments = query_range(db, start, end, timezone, practitioner_id)
    return AppointmentListResponse(
        count=len(appointments),
        data=[AppointmentResponse.from_appointment(a, tz) for a in appointments]
    )

@router.get("/daily-summary", response_model=DailyAppointmentSummary)
async def daily_appointment_summary(
    day: date = Query(..., alias="date", description="Local calendar day"),
    timezone: Optional[str] = Query(None),
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(require_permission(Permission.VIEW_FINANCIALS))
):
    """
    Get the cached payment totals of the appointments starting on a day
    """
    tz = resolve_timezone(timezone)
    summary = get_daily_appointment_summary(db, day, timezone)
    summary["appointments"] = [AppointmentResponse.from_appointment(a, tz) for a in summary["appointments"]]
    return DailyAppointmentSummary(**summary)

@router.get("/last-visit/{subject_id}", response_model=LastVisitResponse)
async def last_visit(
    subject_id: str,
    timezone: Optional[str] = Query(None),
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(require_permission(Permission.READ_APPOINTMENTS))
):
    """
    Get the end of a patient's most recent appointment
    """
    visit = get_last_visit(db, subject_id)
    if visit is None:
        return LastVisitResponse(subject_id=subject_id, first_time=True)
    return LastVisitResponse(
        subject_id=subject_id,
        last_visit=to_local(visit, resolve_timezone(timezone)),
        first_time=False
    )

@router.get("/{appointment_id}", response_model=AppointmentResponse)
async def get_appointment_by_id(
    appointment_id: int,
    timezone: Optional[str] = Query(None),
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(require_permission(Permission.READ_APPOINTMENTS))
):
    """
    Get an appointment by ID
    """
    return AppointmentResponse.from_appointment(get_appointment(db, appointment_id), resolve_timezone(timezone))

@router.patch("/{appointment_id}", response_model=AppointmentResponse)
async def patch_appointment(
    appointment_id: int,
    patch: AppointmentUpdate,
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(require_permission(Permission.UPDATE_APPOINTMENT))
):
    """
    Update an appointment

    Rescheduling re-runs the conflict check; other fields are assigned as given.
    """
    appointment = update_appointment(db, appointment_id, patch, patch.timezone)
    return AppointmentResponse.from_appointment(appointment, resolve_timezone(patch.timezone))

@router.delete("/{appointment_id}", status_code=status.HTTP_204_NO_CONTENT)
async def remove_appointment(
    appointment_id: int,
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(require_permission(Permission.DELETE_APPOINTMENT))
):
    """
    Delete an appointment

    Ledger transactions that reference it are kept.
    """
    delete_appointment(db, appointment_id)

@router.post("/{appointment_id}/ledger-events", response_model=AppointmentResponse)
async def push_ledger_event(
    appointment_id: int,
    event: LedgerEvent,
    timezone: Optional[str] = Query(None),
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(require_permission(Permission.RECORD_TRANSACTION))
):
    """
    Apply a ledger transaction to the appointment's cached payment summary
    """
    appointment = apply_ledger_event(db, appointment_id, event)
    return AppointmentResponse.from_appointment(appointment, resolve_timezone(timezone))
