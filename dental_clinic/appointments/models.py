"""
Appointment Model - Stores booked practitioner time slots.

Times are stored in UTC, already snapped to the scheduling grid. The payment
columns are a cached summary of the ledger, not the accounting record.
"""
from sqlalchemy import Column, Integer, String, Numeric, DateTime, Enum, Index, CheckConstraint, func
from datetime import datetime, timezone
from decimal import Decimal
import enum
from ..database import Base, UTCDateTime

class AppointmentStatus(str, enum.Enum):
    """Enum for appointment status"""
    SCHEDULED = "scheduled"
    CONFIRMED = "confirmed"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    NO_SHOW = "no-show"

class AppointmentCategory(str, enum.Enum):
    """Enum for dental procedure categories"""
    CHECKUP = "checkup"
    CLEANING = "cleaning"
    FILLING = "filling"
    EXTRACTION = "extraction"
    ROOT_CANAL = "root-canal"
    CROWN = "crown"
    CONSULTATION = "consultation"
    OTHER = "other"

class PaymentStatus(str, enum.Enum):
    """Enum for the cached payment status"""
    PENDING = "pending"
    PARTIAL = "partial"
    PAID = "paid"

class PaymentMethod(str, enum.Enum):
    """Enum for payment methods, shared with the ledger"""
    CASH = "cash"
    CARD = "card"
    INSURANCE = "insurance"
    OTHER = "other"


def _enum_values(enum_cls):
    return [member.value for member in enum_cls]


class Appointment(Base):
    """
    Appointment Model - Stores appointment information
    
    Fields:
    - id: Primary key for appointment
    - practitioner_id: Identity of the dentist performing the appointment
    - subject_id: Identity of the patient
    - start_time / end_time: Snapped UTC instants, half-open interval
    - duration_minutes: Derived from start_time and end_time
    - category: Procedure category
    - status: Current status of the appointment
    - color_code: Calendar display color
    - payment_*: Cached payment summary driven by ledger events
    - notes: Additional notes about the appointment
    - created_by: Identity of the staff member who booked it
    - created_at / updated_at: Bookkeeping timestamps
    """
    __tablename__ = "appointments"
    __table_args__ = (
        Index("ix_appointments_practitioner_range", "practitioner_id", "start_time", "end_time"),
        CheckConstraint("end_time > start_time", name="ck_appointments_end_after_start"),
        CheckConstraint("payment_amount >= 0", name="ck_appointments_payment_non_negative"),
    )

    id = Column(Integer, primary_key=True, index=True)
    practitioner_id = Column(String, nullable=False, index=True)
    subject_id = Column(String, nullable=False, index=True)
    start_time = Column(UTCDateTime, nullable=False)
    end_time = Column(UTCDateTime, nullable=False)
    duration_minutes = Column(Integer, nullable=False)
    category = Column(
        Enum(AppointmentCategory, name="appointment_category", values_callable=_enum_values),
        nullable=False,
        default=AppointmentCategory.CHECKUP,
    )
    status = Column(
        Enum(AppointmentStatus, name="appointment_status", values_callable=_enum_values),
        nullable=False,
        default=AppointmentStatus.SCHEDULED,
    )
    color_code = Column(String, nullable=False, default="#4287f5")
    payment_amount = Column(Numeric(10, 2), nullable=False, default=Decimal("0"))
    payment_status = Column(
        Enum(PaymentStatus, name="payment_status", values_callable=_enum_values),
        nullable=False,
        default=PaymentStatus.PENDING,
    )
    payment_method = Column(
        Enum(PaymentMethod, name="payment_method", values_callable=_enum_values),
        nullable=False,
        default=PaymentMethod.CASH,
    )
    payment_notes = Column(String, nullable=True)
    notes = Column(String, nullable=False, default="")
    created_by = Column(String, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    def __repr__(self):
        """String representation of the Appointment model"""
        return (
            f"<Appointment(id={self.id}, practitioner_id={self.practitioner_id}, "
            f"start='{self.start_time}', end='{self.end_time}')>"
        )

    @property
    def is_cancelled(self) -> bool:
        """Check if the appointment has been cancelled"""
        return self.status == AppointmentStatus.CANCELLED

    @property
    def payment(self) -> dict:
        """Cached payment summary as an embedded record"""
        return {
            "amount": self.payment_amount,
            "status": self.payment_status,
            "method": self.payment_method,
            "notes": self.payment_notes,
        }

    def set_times(self, start_time: datetime, end_time: datetime, duration_minutes: int) -> None:
        """
        Apply a normalized slot
        
        Args:
            start_time: Snapped UTC start
            end_time: Snapped UTC end
            duration_minutes: Duration derived from the snapped times
        """
        self.start_time = start_time
        self.end_time = end_time
        self.duration_minutes = duration_minutes
        self.updated_at = datetime.now(timezone.utc)

    def update_status(self, status: AppointmentStatus) -> None:
        """
        Update appointment status
        
        Args:
            status: New appointment status
        """
        self.status = status
        self.updated_at = datetime.now(timezone.utc)
