from decimal import ROUND_DOWN, Decimal, InvalidOperation

import structlog

from parcel_service.exceptions import InvalidCheckoutRequest

logger = structlog.get_logger(__name__)

# https://docs.stripe.com/currencies#zero-decimal
ZERO_DECIMAL_CURRENCIES = frozenset({
    "bif", "clp", "djf", "gnf", "jpy", "kmf", "krw", "mga",
    "pyg", "rwf", "ugx", "vnd", "vuv", "xaf", "xof", "xpf",
})


def minor_unit_factor(currency: str) -> int:
    return 1 if currency.lower() in ZERO_DECIMAL_CURRENCIES else 100


def to_minor_units(cost, currency: str = "usd") -> int:
    """Convert a major-unit cost to the provider's integer minor units.

    Any fractional minor-unit remainder is truncated, so ``12.5`` becomes
    ``1250`` and ``10.999`` becomes ``1099``.
    """
    try:
        amount = Decimal(str(cost))
    except (InvalidOperation, ValueError) as exc:
        raise InvalidCheckoutRequest(f"Invalid cost: {cost!r}") from exc
    if not amount.is_finite():
        raise InvalidCheckoutRequest(f"Invalid cost: {cost!r}")
    scaled = amount * minor_unit_factor(currency)
    return int(scaled.to_integral_value(rounding=ROUND_DOWN))


def from_minor_units(amount: int, currency: str = "usd") -> Decimal:
    return Decimal(amount) / minor_unit_factor(currency)


class CheckoutInitiator:
    """Opens a provider-hosted checkout session for a parcel.

    Nothing is written locally; the parcel id and name travel to the provider
    as session metadata and come back on confirmation.
    """

    def __init__(self, provider, currency: str, success_url: str, cancel_url: str):
        self.provider = provider
        self.currency = currency.lower()
        self.success_url = success_url
        self.cancel_url = cancel_url

    def start(self, parcel_id: str, parcel_name: str, sender_email: str, cost) -> str:
        amount = to_minor_units(cost, self.currency)
        if amount <= 0:
            raise InvalidCheckoutRequest("Cost must be greater than zero")

        line_items = [{
            "price_data": {
                "currency": self.currency,
                "unit_amount": amount,
                "product_data": {"name": parcel_name},
            },
            "quantity": 1,
        }]
        metadata = {"parcelId": parcel_id, "parcelName": parcel_name}

        url = self.provider.create_session(
            line_items=line_items,
            customer_email=sender_email,
            metadata=metadata,
            success_url=self.success_url,
            cancel_url=self.cancel_url,
        )
        logger.info(
            "checkout_started",
            parcel_id=parcel_id,
            amount=amount,
            currency=self.currency,
        )
        return url
