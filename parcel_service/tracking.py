import secrets
from datetime import datetime, timezone

PREFIX = "PRCL"


def generate_tracking_id(now=None):
    """Return a tracking id like ``PRCL-20260115-3FA9C2``.

    The date segment is the UTC calendar date; the suffix is 3 random bytes
    rendered as uppercase hex.
    """
    now = now or datetime.now(timezone.utc)
    if now.tzinfo is not None:
        now = now.astimezone(timezone.utc)
    return f"{PREFIX}-{now:%Y%m%d}-{secrets.token_hex(3).upper()}"
