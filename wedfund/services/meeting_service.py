"""
Meeting Service - listing meetings and registering guest attendance.
"""

import uuid
import logging
from typing import List, Optional

from sqlalchemy import select, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from wedfund.errors import NotFoundError, ConflictError
from wedfund.fsm.states import AttendanceStatus
from wedfund.models.guest import Guest
from wedfund.models.meeting import Meeting, Attendance
from wedfund.services.guest_service import GuestService

logger = logging.getLogger(__name__)


class MeetingService:
    """Service for meetings and RSVPs."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def list_active(self) -> List[Meeting]:
        result = await self.db.execute(
            select(Meeting)
            .where(Meeting.is_active.is_(True))
            .order_by(Meeting.starts_at)
        )
        return list(result.scalars().all())

    async def attendee_count(self, meeting_id: uuid.UUID) -> int:
        result = await self.db.execute(
            select(func.count(Attendance.id)).where(
                Attendance.meeting_id == meeting_id,
                Attendance.status != AttendanceStatus.CANCELLED.value,
            )
        )
        return result.scalar() or 0

    async def register(
        self,
        meeting_id: uuid.UUID,
        name: str,
        phone: str,
        email: Optional[str] = None,
    ) -> Attendance:
        """
        Register a guest for a meeting.

        An existing registration is returned unchanged.
        """
        meeting = await self.db.get(Meeting, meeting_id)
        if not meeting or not meeting.is_active:
            raise NotFoundError("Meeting not found")

        guest = await GuestService(self.db).get_or_create(phone, name, email=email)

        existing = await self._get_attendance(meeting.id, guest.id)
        if existing:
            return existing

        if meeting.max_attendees is not None:
            if await self.attendee_count(meeting.id) >= meeting.max_attendees:
                raise ConflictError("This meeting is fully booked")

        attendance = Attendance(
            meeting_id=meeting.id,
            guest_id=guest.id,
            status=AttendanceStatus.REGISTERED.value,
        )
        try:
            async with self.db.begin_nested():
                self.db.add(attendance)
        except IntegrityError:
            existing = await self._get_attendance(meeting.id, guest.id)
            if existing is None:
                raise
            return existing

        logger.info(f"Guest {guest.phone} registered for meeting {meeting.title}")
        return attendance

    async def _get_attendance(self, meeting_id: uuid.UUID, guest_id: uuid.UUID) -> Optional[Attendance]:
        result = await self.db.execute(
            select(Attendance).where(
                Attendance.meeting_id == meeting_id,
                Attendance.guest_id == guest_id,
            )
        )
        return result.scalar_one_or_none()

    async def list_attendees(self, meeting_id: uuid.UUID) -> List[tuple]:
        """(Attendance, Guest) pairs for a meeting."""
        result = await self.db.execute(
            select(Attendance, Guest)
            .join(Guest, Guest.id == Attendance.guest_id)
            .where(Attendance.meeting_id == meeting_id)
            .order_by(Attendance.created_at)
        )
        return list(result.all())
