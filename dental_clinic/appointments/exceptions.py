"""
Scheduling exceptions.

All of them are caller-correctable and are rendered by the application
exception handler; none are retried.
"""
from datetime import datetime
from fastapi import status

from ..exceptions import AppException

class ValidationError(AppException):
    """Exception raised for a missing or malformed field."""
    def __init__(self, detail: str = "Invalid appointment data"):
        super().__init__(status_code=status.HTTP_400_BAD_REQUEST, detail=detail)

class InvalidRangeError(AppException):
    """Exception raised when the end of a slot is not after its start."""
    def __init__(self, start_time: datetime, end_time: datetime):
        self.start_time = start_time
        self.end_time = end_time
        super().__init__(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="End time must be after start time",
            extra={"start_time": start_time, "end_time": end_time},
        )

class SlotConflictError(AppException):
    """Exception raised when a slot overlaps an existing booking."""
    def __init__(self, conflicting_id: int, start_time: datetime, end_time: datetime):
        self.conflicting_id = conflicting_id
        self.start_time = start_time
        self.end_time = end_time
        super().__init__(
            status_code=status.HTTP_409_CONFLICT,
            detail="This time slot conflicts with an existing appointment",
            extra={
                "conflict": {
                    "id": conflicting_id,
                    "start_time": start_time,
                    "end_time": end_time,
                }
            },
        )

class NotFoundError(AppException):
    """Exception raised when an appointment id does not resolve."""
    def __init__(self, detail: str = "Appointment not found"):
        super().__init__(status_code=status.HTTP_404_NOT_FOUND, detail=detail)
