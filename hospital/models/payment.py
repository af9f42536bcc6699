"""Payment model definitions."""

from enum import Enum

from sqlalchemy import Column, DateTime, ForeignKey, Integer, Numeric, String
from hospital.database import Base, utc_now


class PaymentStatus(str, Enum):
    PAID = "paid"
    REFUNDED = "refunded"


class Payment(Base):
    """Represents the payment recorded together with an appointment."""
    __tablename__ = "payments"

    id = Column("PaymentID", Integer, primary_key=True)
    appointment_id = Column(
        "AppointmentID",
        Integer,
        ForeignKey("appointments.AppointmentID", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )
    amount = Column("Amount", Numeric(10, 2), nullable=False)
    currency = Column("Currency", String(3), nullable=False)
    method = Column("Method", String(32), nullable=False)
    status = Column("Status", String(16), nullable=False, default=PaymentStatus.PAID.value)
    transaction_reference = Column("TransactionReference", String(128))
    paid_at = Column("PaidAt", DateTime(timezone=True), default=utc_now)
