"""
Message Service - guestbook entries.
"""

import logging
from typing import List

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from wedfund.errors import ValidationError
from wedfund.models.guest import Guest
from wedfund.models.guest_message import GuestMessage
from wedfund.services.guest_service import GuestService

logger = logging.getLogger(__name__)

MAX_MESSAGE_LENGTH = 2000


class MessageService:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def post_message(self, name: str, phone: str, message: str) -> GuestMessage:
        """Add a guestbook message; it stays hidden until approved."""
        text = (message or "").strip()
        if not text:
            raise ValidationError("Message cannot be empty")
        if len(text) > MAX_MESSAGE_LENGTH:
            raise ValidationError(f"Message must be at most {MAX_MESSAGE_LENGTH} characters")

        guest = await GuestService(self.db).get_or_create(phone, name)

        entry = GuestMessage(guest_id=guest.id, message=text, is_approved=False)
        self.db.add(entry)
        await self.db.flush()

        logger.info(f"Guestbook message {entry.id} from {guest.phone}")
        return entry

    async def list_approved(self, limit: int = 100) -> List[tuple]:
        """(GuestMessage, guest name) pairs, newest first."""
        result = await self.db.execute(
            select(GuestMessage, Guest.full_name)
            .outerjoin(Guest, Guest.id == GuestMessage.guest_id)
            .where(GuestMessage.is_approved.is_(True))
            .order_by(GuestMessage.created_at.desc())
            .limit(limit)
        )
        return list(result.all())
