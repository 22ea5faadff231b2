from dataclasses import dataclass
from typing import Optional

import structlog
from sqlalchemy.exc import SQLAlchemyError

from parcel_service.checkout import from_minor_units
from parcel_service.exceptions import (
    DuplicateTransaction,
    InvalidSessionError,
    ParcelNotFound,
    StoreError,
    TrackingIdCollision,
)
from parcel_service.models import Payment, utcnow
from parcel_service.stores import ParcelStore, PaymentLedger
from parcel_service.tracking import generate_tracking_id

logger = structlog.get_logger(__name__)

MAX_TRACKING_ID_ATTEMPTS = 5

# Checkout Session payment_status reported by Stripe once funds are captured
PROVIDER_PAID = "paid"


@dataclass(frozen=True)
class ReconciliationResult:
    success: bool
    tracking_id: Optional[str] = None
    transaction_id: Optional[str] = None
    parcel_id: Optional[str] = None
    payment_status: Optional[str] = None
    already_reconciled: bool = False

    @classmethod
    def from_payment(cls, payment, already_reconciled):
        return cls(
            success=True,
            tracking_id=payment.tracking_id,
            transaction_id=payment.transaction_id,
            parcel_id=payment.parcel_id,
            payment_status=payment.payment_status,
            already_reconciled=already_reconciled,
        )

    def to_dict(self):
        if not self.success:
            return {"success": False}
        return {
            "success": True,
            "trackingId": self.tracking_id,
            "transactionId": self.transaction_id,
            "parcelId": self.parcel_id,
            "paymentStatus": self.payment_status,
            "alreadyReconciled": self.already_reconciled,
        }


class PaymentReconciler:
    def __init__(self, db, provider, generate=generate_tracking_id):
        self.db = db
        self.provider = provider
        self.generate = generate
        self.parcels = ParcelStore(db)
        self.ledger = PaymentLedger(db)

    def confirm(self, session_ref):
        session = self.provider.retrieve_session(session_ref)
        log = logger.bind(session_id=session_ref, transaction_id=session.transaction_id)

        if session.transaction_id:
            existing = self._find_payment(session.transaction_id)
            if existing is not None:
                log.info("payment_already_reconciled", tracking_id=existing.tracking_id)
                return ReconciliationResult.from_payment(existing, already_reconciled=True)

        if session.payment_status != PROVIDER_PAID:
            log.info("payment_not_paid", payment_status=session.payment_status)
            return ReconciliationResult(success=False, payment_status=session.payment_status)

        parcel_id = session.metadata.get("parcelId")
        if not session.transaction_id or not parcel_id:
            log.warning("checkout_session_incomplete", parcel_id=parcel_id)
            raise InvalidSessionError("Checkout session is missing its payment or parcel reference")

        return self._commit(session, parcel_id, log)

    def _commit(self, session, parcel_id, log):
        amount = from_minor_units(session.amount_total or 0, session.currency or "usd")

        for attempt in range(1, MAX_TRACKING_ID_ATTEMPTS + 1):
            candidate = self.generate()
            try:
                tracking_id = self.parcels.mark_paid(parcel_id, candidate)
                payment = self.ledger.append(Payment(
                    transaction_id=session.transaction_id,
                    parcel_id=parcel_id,
                    amount=float(amount),
                    currency=session.currency,
                    customer_email=session.customer_email,
                    tracking_id=tracking_id,
                    payment_status=session.payment_status,
                    paid_at=utcnow(),
                ))
                self.db.commit()
            except TrackingIdCollision:
                self.db.rollback()
                log.warning("tracking_id_collision", tracking_id=candidate, attempt=attempt)
                continue
            except DuplicateTransaction:
                # Lost the race to a concurrent confirmation of the same transaction
                self.db.rollback()
                existing = self._find_payment(session.transaction_id)
                if existing is None:
                    raise StoreError("Ledger rejected the payment but holds no row for it")
                log.info("payment_already_reconciled", tracking_id=existing.tracking_id, raced=True)
                return ReconciliationResult.from_payment(existing, already_reconciled=True)
            except ParcelNotFound:
                self.db.rollback()
                log.error("payment_for_unknown_parcel", parcel_id=parcel_id)
                raise
            except SQLAlchemyError as exc:
                self.db.rollback()
                log.error("payment_commit_failed", parcel_id=parcel_id, error=str(exc))
                raise StoreError("Unable to record payment") from exc

            if tracking_id != candidate:
                log.warning("parcel_already_paid", parcel_id=parcel_id, tracking_id=tracking_id)
            log.info("payment_reconciled", parcel_id=parcel_id, tracking_id=tracking_id)
            return ReconciliationResult.from_payment(payment, already_reconciled=False)

        raise StoreError("Unable to allocate a unique tracking id")

    def _find_payment(self, transaction_id):
        try:
            return self.ledger.find(transaction_id)
        except SQLAlchemyError as exc:
            raise StoreError("Unable to read the payment ledger") from exc
