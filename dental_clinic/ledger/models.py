"""
Transaction Model - The clinic's money ledger.

appointment_id is a plain column, not a foreign key: deleting an appointment
leaves its transactions in place with a dangling reference.
"""
from sqlalchemy import Column, Integer, String, Numeric, DateTime, Enum, CheckConstraint, func
import enum
from ..database import Base, UTCDateTime
from ..appointments.models import PaymentMethod

class TransactionType(str, enum.Enum):
    """Enum for ledger transaction types"""
    PAYMENT = "payment"
    REFUND = "refund"
    ADJUSTMENT = "adjustment"


class Transaction(Base):
    """
    Transaction Model - Stores a single ledger entry
    
    Fields:
    - id: Primary key
    - date: When the money moved (UTC)
    - subject_id: Patient the transaction belongs to
    - appointment_id: Appointment it pays for, if any
    - amount: Non-negative amount
    - type: payment, refund or adjustment
    - payment_method: cash, card, insurance or other
    - notes: Free text
    - created_by: Staff member who recorded it
    - created_at: When it was recorded
    """
    __tablename__ = "transactions"
    __table_args__ = (
        CheckConstraint("amount >= 0", name="ck_transactions_amount_non_negative"),
    )

    id = Column(Integer, primary_key=True, index=True)
    date = Column(UTCDateTime, nullable=False, index=True)
    subject_id = Column(String, nullable=True)
    appointment_id = Column(Integer, nullable=True, index=True)
    amount = Column(Numeric(10, 2), nullable=False)
    type = Column(
        Enum(TransactionType, name="transaction_type", values_callable=lambda e: [m.value for m in e]),
        nullable=False,
    )
    payment_method = Column(
        Enum(PaymentMethod, name="payment_method", values_callable=lambda e: [m.value for m in e]),
        nullable=False,
    )
    notes = Column(String, nullable=True)
    created_by = Column(String, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    def __repr__(self):
        """String representation of the Transaction model"""
        return f"<Transaction(id={self.id}, type='{self.type}', amount={self.amount}, appointment_id={self.appointment_id})>"
