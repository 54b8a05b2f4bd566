"""Merchant reference generation."""

import hashlib
import secrets
import time
import uuid
from typing import Optional

REFERENCE_PREFIX = "WED-"

_BASE36 = "0123456789abcdefghijklmnopqrstuvwxyz"


def to_base36(value: int) -> str:
    if value == 0:
        return "0"
    digits = []
    while value:
        value, rem = divmod(value, 36)
        digits.append(_BASE36[rem])
    return "".join(reversed(digits))


def phone_hash(phone: str) -> str:
    """8-char digest of the phone number, for readability only."""
    return hashlib.sha256(phone.encode("utf-8")).hexdigest()[:8]


def generate_reference(phone: str, now_ms: Optional[int] = None) -> str:
    """
    Contribution reference: WED-<epoch-ms>-<phone-hash>-<random-base36>.

    Unique without a central sequence; 64 random bits make same-millisecond
    collisions for the same phone negligible.
    """
    if now_ms is None:
        now_ms = int(time.time() * 1000)
    suffix = to_base36(secrets.randbits(64))
    return f"{REFERENCE_PREFIX}{now_ms}-{phone_hash(phone)}-{suffix}"


def pledge_reference(contribution_id: uuid.UUID) -> str:
    """Pledge fulfillment reference: WED-<contribution-id>."""
    return f"{REFERENCE_PREFIX}{contribution_id}"


def contribution_id_from_reference(merchant_reference: str) -> Optional[uuid.UUID]:
    """Recover the contribution id from a WED-<uuid> reference, if it is one."""
    if not merchant_reference or not merchant_reference.startswith(REFERENCE_PREFIX):
        return None
    try:
        return uuid.UUID(merchant_reference[len(REFERENCE_PREFIX):])
    except ValueError:
        return None
