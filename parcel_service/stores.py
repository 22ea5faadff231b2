from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError

from parcel_service.exceptions import DuplicateTransaction, ParcelNotFound, TrackingIdCollision
from parcel_service.models import PAID, UNPAID, Parcel, Payment


class ParcelStore:
    def __init__(self, db):
        self.db = db

    def list(self, sender_email=None):
        query = select(Parcel).order_by(Parcel.created_at.desc())
        if sender_email:
            query = query.where(Parcel.sender_email == sender_email)
        return list(self.db.scalars(query))

    def get(self, parcel_id):
        return self.db.get(Parcel, parcel_id)

    def create(self, parcel_name, sender_email, cost, details=None):
        parcel = Parcel(
            parcel_name=parcel_name,
            sender_email=sender_email,
            cost=cost,
            payment_status=UNPAID,
            details=details or {},
        )
        self.db.add(parcel)
        self.db.commit()
        self.db.refresh(parcel)
        return parcel

    def delete(self, parcel_id):
        parcel = self.get(parcel_id)
        if parcel is None:
            return False
        self.db.delete(parcel)
        self.db.commit()
        return True

    def mark_paid(self, parcel_id, tracking_id):
        """Stamp an unpaid parcel as paid and return its tracking id.

        A parcel that is already paid keeps the tracking id it has. Does not
        commit.
        """
        stmt = (
            update(Parcel)
            .where(Parcel.id == parcel_id, Parcel.payment_status == UNPAID)
            .values(payment_status=PAID, tracking_id=tracking_id)
            .execution_options(synchronize_session=False)
        )
        try:
            result = self.db.execute(stmt)
        except IntegrityError as exc:
            raise TrackingIdCollision(tracking_id) from exc
        if result.rowcount == 1:
            return tracking_id

        current = self.db.execute(
            select(Parcel.tracking_id).where(Parcel.id == parcel_id)
        ).first()
        if current is None:
            raise ParcelNotFound(parcel_id)
        return current.tracking_id


class PaymentLedger:
    """Append-only ledger of confirmed payments keyed by transaction id."""

    def __init__(self, db):
        self.db = db

    def find(self, transaction_id):
        return self.db.get(Payment, transaction_id)

    def list_for_parcel(self, parcel_id):
        query = select(Payment).where(Payment.parcel_id == parcel_id).order_by(Payment.paid_at)
        return list(self.db.scalars(query))

    def append(self, payment):
        """Insert a ledger row; the primary key rejects a second row for the same transaction."""
        self.db.add(payment)
        try:
            self.db.flush()
        except IntegrityError as exc:
            raise DuplicateTransaction(payment.transaction_id) from exc
        return payment
