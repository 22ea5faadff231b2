from dataclasses import dataclass, field
from typing import Optional

import stripe
import structlog

from parcel_service.config import STRIPE_SECRET_KEY
from parcel_service.exceptions import PaymentInitiationError, ProviderError

stripe.api_key = STRIPE_SECRET_KEY

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class ProviderSession:
    """Authoritative view of a Checkout Session as reported by Stripe."""

    session_id: str
    transaction_id: Optional[str]
    payment_status: str
    amount_total: Optional[int]
    currency: Optional[str]
    customer_email: Optional[str]
    metadata: dict = field(default_factory=dict)


class StripeProvider:
    def create_session(self, line_items, customer_email, metadata, success_url, cancel_url):
        try:
            session = stripe.checkout.Session.create(
                mode="payment",
                payment_method_types=["card"],
                line_items=line_items,
                customer_email=customer_email,
                metadata=metadata,
                success_url=success_url,
                cancel_url=cancel_url,
            )
        except stripe.StripeError as exc:
            logger.error(
                "stripe_api_error",
                operation="checkout.Session.create",
                error_code=getattr(exc, "code", None),
                error_message=str(exc),
            )
            raise PaymentInitiationError("Stripe rejected the checkout session") from exc

        logger.info("checkout_session_created", session_id=session.id)
        return session.url

    def retrieve_session(self, session_id):
        try:
            session = stripe.checkout.Session.retrieve(session_id)
        except stripe.StripeError as exc:
            logger.error(
                "stripe_api_error",
                operation="checkout.Session.retrieve",
                session_id=session_id,
                error_code=getattr(exc, "code", None),
                error_message=str(exc),
            )
            raise ProviderError("Unable to retrieve checkout session") from exc

        customer_email = session.customer_email
        if not customer_email and session.customer_details:
            customer_email = session.customer_details.email

        return ProviderSession(
            session_id=session.id,
            transaction_id=_expandable_id(session.payment_intent),
            payment_status=session.payment_status,
            amount_total=session.amount_total,
            currency=session.currency,
            customer_email=customer_email,
            metadata=dict(session.metadata or {}),
        )


def _expandable_id(value):
    # payment_intent is an id string unless the caller expanded it
    if value is None or isinstance(value, str):
        return value
    return value.id


def get_provider():
    return StripeProvider()
