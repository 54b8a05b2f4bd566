"""
Admin Guest Endpoints.
"""

import uuid
import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, EmailStr, field_validator
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
from wedfund.errors import ValidationError
from wedfund.models.guest import Guest
from wedfund.services.guest_service import GuestService, normalize_phone

router = APIRouter()
logger = logging.getLogger(__name__)


class GuestCreate(BaseModel):
    full_name: str
    phone: str
    email: Optional[EmailStr] = None
    address: Optional[str] = None
    is_attending: Optional[bool] = None
    plus_ones: int = 0
    dietary_restrictions: List[str] = []
    message: Optional[str] = None


class GuestUpdate(BaseModel):
    full_name: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[EmailStr] = None
    address: Optional[str] = None
    is_attending: Optional[bool] = None
    plus_ones: Optional[int] = None
    dietary_restrictions: Optional[List[str]] = None
    message: Optional[str] = None

    @field_validator("full_name", "phone", "plus_ones", "dietary_restrictions")
    @classmethod
    def _required_columns(cls, v):
        return reject_null(v)


def serialize_guest(guest: Guest) -> dict:
    return {
        "id": str(guest.id),
        "full_name": guest.full_name,
        "phone": guest.phone,
        "email": guest.email,
        "address": guest.address,
        "is_attending": guest.is_attending,
        "plus_ones": guest.plus_ones,
        "dietary_restrictions": guest.dietary_restrictions or [],
        "message": guest.message,
        "created_at": guest.created_at.isoformat() if guest.created_at else None,
    }


def _normalized(phone: str) -> str:
    try:
        return normalize_phone(phone)
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=e.message)


@router.get("/guests")
async def list_guests(
    db: AsyncSession = Depends(get_db),
    _: str = Depends(get_admin_user),
):
    guests = await GuestService(db).list_guests()
    return {"status": "success", "items": [serialize_guest(g) for g in guests]}


@router.post("/guests")
async def create_guest(
    request: GuestCreate,
    db: AsyncSession = Depends(get_db),
    admin_key: str = Depends(get_admin_user),
):
    data = request.model_dump()
    data["phone"] = _normalized(request.phone)

    if await GuestService(db).get_by_phone(data["phone"]):
        raise HTTPException(status_code=409, detail="A guest with this phone already exists")

    guest = Guest(**data)
    await audited_create(db, admin_key, guest, data)
    return {"status": "success", "guest": serialize_guest(guest)}


@router.patch("/guests/{guest_id}")
async def update_guest(
    guest_id: uuid.UUID,
    request: GuestUpdate,
    db: AsyncSession = Depends(get_db),
    admin_key: str = Depends(get_admin_user),
):
    guest = await get_or_404(db, Guest, guest_id, "Guest")
    updates = request.model_dump(exclude_unset=True)
    if "phone" in updates:
        updates["phone"] = _normalized(updates["phone"])
        other = await GuestService(db).get_by_phone(updates["phone"])
        if other and other.id != guest.id:
            raise HTTPException(status_code=409, detail="A guest with this phone already exists")

    await audited_update(db, admin_key, guest, updates)
    return {"status": "success", "guest": serialize_guest(guest)}


@router.delete("/guests/{guest_id}")
async def delete_guest(
    guest_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    admin_key: str = Depends(get_admin_user),
):
    guest = await get_or_404(db, Guest, guest_id, "Guest")
    await audited_delete(db, admin_key, guest)
    logger.info(f"Guest {guest_id} deleted")
    return {"status": "success"}
