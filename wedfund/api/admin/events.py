"""
Admin Meeting Endpoints.
"""

import uuid
import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field, field_validator
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from wedfund.api.admin.common import (
    audited_create,
    audited_delete,
    audited_update,
    get_or_404,
    reject_null,
)
from wedfund.api.deps import get_admin_user
from wedfund.database import get_db
from wedfund.models.meeting import Meeting
from wedfund.services.meeting_service import MeetingService
from wedfund.services.site_service import serialize_meeting

router = APIRouter()
logger = logging.getLogger(__name__)


class MeetingCreate(BaseModel):
    title: str = Field(min_length=1, max_length=255)
    location: str = Field(min_length=1, max_length=255)
    starts_at: datetime
    ends_at: Optional[datetime] = None
    description: Optional[str] = None
    address: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    max_attendees: Optional[int] = Field(None, ge=1)
    is_active: bool = True
    is_wedding: bool = False
    cover_image_url: Optional[str] = None


class MeetingUpdate(BaseModel):
    title: Optional[str] = None
    location: Optional[str] = None
    starts_at: Optional[datetime] = None
    ends_at: Optional[datetime] = None
    description: Optional[str] = None
    address: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    max_attendees: Optional[int] = Field(None, ge=1)
    is_active: Optional[bool] = None
    is_wedding: Optional[bool] = None
    cover_image_url: Optional[str] = None

    @field_validator("title", "location", "starts_at", "is_active", "is_wedding")
    @classmethod
    def _required_columns(cls, v):
        return reject_null(v)


@router.get("/meetings")
async def list_meetings(
    db: AsyncSession = Depends(get_db),
    _: str = Depends(get_admin_user),
):
    """All meetings, including inactive ones, with attendee counts."""
    result = await db.execute(select(Meeting).order_by(Meeting.starts_at.desc()))
    service = MeetingService(db)

    items = []
    for meeting in result.scalars().all():
        items.append({
            **serialize_meeting(meeting),
            "attendee_count": await service.attendee_count(meeting.id),
        })
    return {"status": "success", "items": items}


@router.post("/meetings")
async def create_meeting(
    request: MeetingCreate,
    db: AsyncSession = Depends(get_db),
    admin_key: str = Depends(get_admin_user),
):
    data = request.model_dump()
    meeting = Meeting(**data)
    await audited_create(db, admin_key, meeting, data)
    logger.info(f"Meeting created: {meeting.title}")
    return {"status": "success", "meeting": serialize_meeting(meeting)}


@router.patch("/meetings/{meeting_id}")
async def update_meeting(
    meeting_id: uuid.UUID,
    request: MeetingUpdate,
    db: AsyncSession = Depends(get_db),
    admin_key: str = Depends(get_admin_user),
):
    meeting = await get_or_404(db, Meeting, meeting_id, "Meeting")
    await audited_update(db, admin_key, meeting, request.model_dump(exclude_unset=True))
    return {"status": "success", "meeting": serialize_meeting(meeting)}


@router.delete("/meetings/{meeting_id}")
async def delete_meeting(
    meeting_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    admin_key: str = Depends(get_admin_user),
):
    meeting = await get_or_404(db, Meeting, meeting_id, "Meeting")
    await audited_delete(db, admin_key, meeting)
    return {"status": "success"}


@router.get("/meetings/{meeting_id}/attendees")
async def list_attendees(
    meeting_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    _: str = Depends(get_admin_user),
):
    await get_or_404(db, Meeting, meeting_id, "Meeting")
    rows = await MeetingService(db).list_attendees(meeting_id)
    return {
        "status": "success",
        "items": [
            {
                "attendance_id": str(attendance.id),
                "guest_id": str(guest.id),
                "full_name": guest.full_name,
                "phone": guest.phone,
                "email": guest.email,
                "status": attendance.status,
                "registered_at": attendance.created_at.isoformat() if attendance.created_at else None,
            }
            for attendance, guest in rows
        ],
    }
