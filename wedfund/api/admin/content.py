"""
Admin Content Endpoints.
Guestbook moderation, gallery and site settings.
"""

import uuid
import logging
from typing import Any, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field, field_validator
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from wedfund.api.admin.common import (
    actor_name,
    audited_create,
    audited_delete,
    audited_update,
    get_or_404,
    reject_null,
)
from wedfund.api.deps import get_admin_user
from wedfund.database import get_db
from wedfund.fsm.states import AuditAction
from wedfund.models.gallery import GalleryItem
from wedfund.models.guest import Guest
from wedfund.models.guest_message import GuestMessage
from wedfund.services.audit_service import AuditService
from wedfund.services.site_service import SiteService, serialize_gallery_item

router = APIRouter()
logger = logging.getLogger(__name__)


class GalleryCreate(BaseModel):
    image_url: str = Field(min_length=1, max_length=1000)
    title: Optional[str] = None
    caption: Optional[str] = None
    display_order: int = 0
    is_featured: bool = False


class GalleryUpdate(BaseModel):
    image_url: Optional[str] = None
    title: Optional[str] = None
    caption: Optional[str] = None
    display_order: Optional[int] = None
    is_featured: Optional[bool] = None

    @field_validator("image_url", "display_order", "is_featured")
    @classmethod
    def _required_columns(cls, v):
        return reject_null(v)


class SettingValue(BaseModel):
    value: Any


# --- Guestbook ---

@router.get("/messages")
async def list_messages(
    approved: Optional[bool] = None,
    db: AsyncSession = Depends(get_db),
    _: str = Depends(get_admin_user),
):
    query = (
        select(GuestMessage, Guest.full_name, Guest.phone)
        .outerjoin(Guest, Guest.id == GuestMessage.guest_id)
        .order_by(GuestMessage.created_at.desc())
    )
    if approved is not None:
        query = query.where(GuestMessage.is_approved.is_(approved))

    result = await db.execute(query)
    return {
        "status": "success",
        "items": [
            {
                "id": str(entry.id),
                "name": name,
                "phone": phone,
                "message": entry.message,
                "is_approved": entry.is_approved,
                "created_at": entry.created_at.isoformat() if entry.created_at else None,
            }
            for entry, name, phone in result.all()
        ],
    }


@router.post("/messages/{message_id}/approve")
async def approve_message(
    message_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    admin_key: str = Depends(get_admin_user),
):
    entry = await get_or_404(db, GuestMessage, message_id, "Message")
    await audited_update(db, admin_key, entry, {"is_approved": True})
    return {"status": "success", "id": str(entry.id), "is_approved": True}


@router.delete("/messages/{message_id}")
async def delete_message(
    message_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    admin_key: str = Depends(get_admin_user),
):
    entry = await get_or_404(db, GuestMessage, message_id, "Message")
    await audited_delete(db, admin_key, entry)
    return {"status": "success"}


# --- Gallery ---

@router.get("/gallery")
async def list_gallery(
    db: AsyncSession = Depends(get_db),
    _: str = Depends(get_admin_user),
):
    result = await db.execute(
        select(GalleryItem).order_by(GalleryItem.display_order, GalleryItem.created_at)
    )
    return {
        "status": "success",
        "items": [serialize_gallery_item(item) for item in result.scalars().all()],
    }


@router.post("/gallery")
async def create_gallery_item(
    request: GalleryCreate,
    db: AsyncSession = Depends(get_db),
    admin_key: str = Depends(get_admin_user),
):
    data = request.model_dump()
    item = GalleryItem(**data)
    await audited_create(db, admin_key, item, data)
    return {"status": "success", "item": serialize_gallery_item(item)}


@router.patch("/gallery/{item_id}")
async def update_gallery_item(
    item_id: uuid.UUID,
    request: GalleryUpdate,
    db: AsyncSession = Depends(get_db),
    admin_key: str = Depends(get_admin_user),
):
    item = await get_or_404(db, GalleryItem, item_id, "Gallery item")
    await audited_update(db, admin_key, item, request.model_dump(exclude_unset=True))
    return {"status": "success", "item": serialize_gallery_item(item)}


@router.delete("/gallery/{item_id}")
async def delete_gallery_item(
    item_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    admin_key: str = Depends(get_admin_user),
):
    item = await get_or_404(db, GalleryItem, item_id, "Gallery item")
    await audited_delete(db, admin_key, item)
    return {"status": "success"}


# --- Site settings ---

@router.get("/settings/{key}")
async def get_setting(
    key: str,
    db: AsyncSession = Depends(get_db),
    _: str = Depends(get_admin_user),
):
    value = await SiteService(db).get_setting(key)
    if value is None:
        raise HTTPException(status_code=404, detail="Setting not found")
    return {"status": "success", "key": key, "value": value}


@router.put("/settings/{key}")
async def put_setting(
    key: str,
    request: SettingValue,
    db: AsyncSession = Depends(get_db),
    admin_key: str = Depends(get_admin_user),
):
    service = SiteService(db)
    old = await service.get_setting(key)
    await service.put_setting(key, request.value)

    await AuditService(db, actor=actor_name(admin_key)).record(
        AuditAction.UPDATE if old is not None else AuditAction.CREATE,
        "site_settings",
        key,
        {"value": [old, request.value]},
    )
    logger.info(f"Site setting updated: {key}")
    return {"status": "success", "key": key, "value": request.value}
