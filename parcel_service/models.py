import uuid
from datetime import datetime, timezone

from sqlalchemy import JSON, CheckConstraint, Column, DateTime, Numeric, String

from parcel_service.database import Base

UNPAID = "unpaid"
PAID = "paid"


def utcnow():
    return datetime.now(timezone.utc)


def isoformat_utc(value):
    if value is None:
        return None
    # sqlite drops the offset on read
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.isoformat()


class Parcel(Base):
    __tablename__ = "parcels"
    __table_args__ = (
        CheckConstraint(
            "(payment_status = 'paid' AND tracking_id IS NOT NULL)"
            " OR (payment_status = 'unpaid' AND tracking_id IS NULL)",
            name="ck_parcels_tracking_id_iff_paid",
        ),
    )

    id = Column(String(32), primary_key=True, default=lambda: uuid.uuid4().hex)
    parcel_name = Column(String, nullable=False)
    sender_email = Column(String, nullable=False, index=True)
    cost = Column(Numeric(12, 2, asdecimal=False), nullable=False)
    payment_status = Column(String(16), nullable=False, default=UNPAID)  # unpaid | paid
    tracking_id = Column(String(32), unique=True, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    details = Column(JSON, nullable=False, default=dict)

    def to_dict(self):
        data = dict(self.details or {})
        data.update({
            "id": self.id,
            "parcelName": self.parcel_name,
            "senderEmail": self.sender_email,
            "cost": self.cost,
            "paymentStatus": self.payment_status,
            "trackingId": self.tracking_id,
            "createdAt": isoformat_utc(self.created_at),
        })
        return data


class Payment(Base):
    __tablename__ = "payments"

    transaction_id = Column(String, primary_key=True)   # Stripe PaymentIntent ID
    parcel_id = Column(String(32), nullable=False, index=True)
    amount = Column(Numeric(12, 2, asdecimal=False), nullable=False)
    currency = Column(String(3), nullable=False)
    customer_email = Column(String, nullable=True)
    tracking_id = Column(String(32), nullable=False)
    payment_status = Column(String(16), nullable=False)  # provider-reported, e.g. "paid"
    paid_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    def to_dict(self):
        return {
            "transactionId": self.transaction_id,
            "parcelId": self.parcel_id,
            "amount": self.amount,
            "currency": self.currency,
            "customerEmail": self.customer_email,
            "trackingId": self.tracking_id,
            "paymentStatus": self.payment_status,
            "paidAt": isoformat_utc(self.paid_at),
        }
