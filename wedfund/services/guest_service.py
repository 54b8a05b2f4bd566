"""
Guest Service - phone normalization and guest lookup/creation.
"""

import logging
from typing import Optional, List

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from wedfund.config import settings
from wedfund.errors import ValidationError
from wedfund.models.guest import Guest

logger = logging.getLogger(__name__)

MIN_PHONE_DIGITS = 9
MAX_PHONE_DIGITS = 15


def normalize_phone(phone: str, dial_code: Optional[str] = None) -> str:
    """
    Normalize a phone number to digits with country code.

    "+256 700-000 000" -> "256700000000"
    "0700000000"       -> "256700000000" (local trunk prefix replaced)

    Applying it to its own output returns the same number.
    """
    dial_code = dial_code or settings.default_country_dial_code
    digits = "".join(c for c in (phone or "") if c.isdigit())

    # International prefix first, so "00" + a local number still gets the dial code
    while digits.startswith("00"):
        digits = digits[2:]
    if digits.startswith("0") and len(digits) == 10:
        digits = dial_code + digits[1:]

    if not MIN_PHONE_DIGITS <= len(digits) <= MAX_PHONE_DIGITS:
        raise ValidationError("Please enter a valid phone number")

    return digits


def split_name(full_name: str) -> tuple:
    """First token and last token of a full name."""
    parts = (full_name or "").split()
    first = parts[0] if parts else ""
    last = parts[-1] if len(parts) > 1 else ""
    return first, last


class GuestService:
    """Service for guest lookup and registration."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_or_create(
        self,
        phone: str,
        full_name: str,
        email: Optional[str] = None,
        message: Optional[str] = None,
    ) -> Guest:
        """
        Get the guest for a phone number, creating it if needed.

        The insert runs in a savepoint; losing a race to a concurrent
        insert of the same phone falls back to the lookup.
        """
        phone = normalize_phone(phone)

        guest = await self.get_by_phone(phone)
        if guest:
            if email and not guest.email:
                guest.email = email
            return guest

        guest = Guest(
            full_name=full_name.strip(),
            phone=phone,
            email=email or None,
            message=message or None,
        )
        try:
            async with self.db.begin_nested():
                self.db.add(guest)
        except IntegrityError:
            logger.info(f"Guest {phone} created concurrently, using existing row")
            existing = await self.get_by_phone(phone)
            if existing is None:
                raise
            return existing

        logger.info(f"Created new guest: {phone}")
        return guest

    async def get_by_phone(self, phone: str) -> Optional[Guest]:
        """Get guest by already-normalized phone number."""
        result = await self.db.execute(
            select(Guest).where(Guest.phone == phone)
        )
        return result.scalar_one_or_none()

    async def list_guests(self) -> List[Guest]:
        result = await self.db.execute(
            select(Guest).order_by(Guest.created_at.desc())
        )
        return list(result.scalars().all())
