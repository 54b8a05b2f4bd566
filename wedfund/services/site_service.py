"""
Site Service - public site metadata and fundraising totals.
"""

import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, Optional

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from wedfund.config import settings
from wedfund.fsm.states import ContributionStatus
from wedfund.models.contribution import Contribution
from wedfund.models.gallery import GalleryItem
from wedfund.models.guest import Guest
from wedfund.models.meeting import Meeting
from wedfund.models.pledge import Pledge
from wedfund.models.site_setting import SiteSetting

logger = logging.getLogger(__name__)

COUPLE_SETTING_KEY = "couple"

DEFAULT_COUPLE = {
    "bride_name": "",
    "groom_name": "",
    "names": "",
    "wedding_date": None,
    "location": "",
    "venue": "",
    "tagline": "",
}


class SiteService:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_setting(self, key: str, default: Any = None) -> Any:
        setting = await self.db.get(SiteSetting, key)
        return setting.value if setting else default

    async def put_setting(self, key: str, value: Any) -> SiteSetting:
        setting = await self.db.get(SiteSetting, key)
        if setting:
            setting.value = value
            setting.updated_at = datetime.now(timezone.utc)
        else:
            setting = SiteSetting(key=key, value=value)
            self.db.add(setting)
        await self.db.flush()
        return setting

    async def contribution_summary(self) -> Dict[str, Any]:
        """Total and count of completed contributions."""
        result = await self.db.execute(
            select(func.coalesce(func.sum(Contribution.amount), 0), func.count(Contribution.id))
            .where(Contribution.status == ContributionStatus.COMPLETED.value)
        )
        total, count = result.one()
        return {
            "total": float(Decimal(str(total or 0))),
            "currency": settings.default_currency,
            "count": count,
        }

    async def next_meeting(self) -> Optional[Meeting]:
        result = await self.db.execute(
            select(Meeting)
            .where(
                Meeting.is_active.is_(True),
                Meeting.starts_at >= datetime.now(timezone.utc),
            )
            .order_by(Meeting.starts_at)
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def metadata(self) -> Dict[str, Any]:
        """Everything the public landing page needs in one payload."""
        couple = {**DEFAULT_COUPLE, **(await self.get_setting(COUPLE_SETTING_KEY, {}) or {})}
        if not couple["names"] and couple["bride_name"] and couple["groom_name"]:
            couple["names"] = f"{couple['bride_name']} & {couple['groom_name']}"

        async def count(column, *where) -> int:
            result = await self.db.execute(select(func.count(column)).where(*where))
            return result.scalar() or 0

        meeting = await self.next_meeting()

        gallery_result = await self.db.execute(
            select(GalleryItem).order_by(GalleryItem.display_order, GalleryItem.created_at)
        )

        return {
            "couple": couple,
            "next_meeting": serialize_meeting(meeting) if meeting else None,
            "counts": {
                "total_contributions": await count(
                    Contribution.id, Contribution.status == ContributionStatus.COMPLETED.value
                ),
                "total_pledges": await count(Pledge.id),
                "total_guests": await count(Guest.id),
                "total_meetings": await count(Meeting.id, Meeting.is_active.is_(True)),
            },
            "gallery": [serialize_gallery_item(item) for item in gallery_result.scalars().all()],
        }


def serialize_meeting(meeting: Meeting) -> Dict[str, Any]:
    return {
        "id": str(meeting.id),
        "title": meeting.title,
        "description": meeting.description,
        "location": meeting.location,
        "address": meeting.address,
        "latitude": meeting.latitude,
        "longitude": meeting.longitude,
        "starts_at": meeting.starts_at.isoformat() if meeting.starts_at else None,
        "ends_at": meeting.ends_at.isoformat() if meeting.ends_at else None,
        "max_attendees": meeting.max_attendees,
        "is_active": meeting.is_active,
        "is_wedding": meeting.is_wedding,
        "cover_image_url": meeting.cover_image_url,
    }


def serialize_gallery_item(item: GalleryItem) -> Dict[str, Any]:
    return {
        "id": str(item.id),
        "title": item.title,
        "image_url": item.image_url,
        "caption": item.caption,
        "display_order": item.display_order,
        "is_featured": item.is_featured,
    }
