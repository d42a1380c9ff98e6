"""
Overlap Detection Service

Slots are half-open intervals [start, end). Two slots conflict iff
a_start < b_end AND b_start < a_end, which covers partial overlap from
either side and containment in both directions. Slots that only touch
(one ends exactly when the other starts) do not conflict.
"""
from datetime import datetime
from typing import List, Optional
from sqlalchemy.orm import Session

from .models import Appointment

def overlapping_query(
    db: Session,
    start_time: datetime,
    end_time: datetime,
    practitioner_id: Optional[str] = None,
    exclude_id: Optional[int] = None
):
    """
    Build a query for appointments intersecting [start_time, end_time).
    
    Args:
        db: Database session
        start_time: UTC start of the window
        end_time: UTC end of the window (exclusive)
        practitioner_id: Restrict to one practitioner
        exclude_id: Appointment to leave out (the record being updated)
        
    Returns:
        SQLAlchemy query ordered by start time
    """
    query = db.query(Appointment).filter(
        Appointment.start_time < end_time,
        Appointment.end_time > start_time,
    )
    
    if practitioner_id is not None:
        query = query.filter(Appointment.practitioner_id == practitioner_id)
    
    if exclude_id is not None:
        query = query.filter(Appointment.id != exclude_id)
    
    return query.order_by(Appointment.start_time, Appointment.id)

def find_conflicts(
    db: Session,
    practitioner_id: str,
    start_time: datetime,
    end_time: datetime,
    exclude_id: Optional[int] = None
) -> List[Appointment]:
    """
    Find the practitioner's appointments that conflict with a slot.
    
    Every stored appointment counts, whatever its status.
    
    Returns:
        list[Appointment]: Conflicting appointments, earliest first
    """
    return overlapping_query(
        db, start_time, end_time,
        practitioner_id=practitioner_id,
        exclude_id=exclude_id,
    ).all()
