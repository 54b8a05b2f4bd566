"""
Pledge Service - guest pledge submission and admin status changes.
"""

import uuid
import logging
from datetime import datetime, timezone
from typing import Optional, List

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from wedfund.errors import NotFoundError, PledgeError, ValidationError
from wedfund.fsm.states import PledgeStatus, PledgeType
from wedfund.models.pledge import Pledge
from wedfund.services.guest_service import GuestService, normalize_phone
from wedfund.services.payment_service import parse_amount

logger = logging.getLogger(__name__)


class PledgeService:
    """Service for money and item pledges."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def create_pledge(
        self,
        name: str,
        phone: str,
        pledge_type: str,
        amount: Optional[object] = None,
        item_description: Optional[str] = None,
        quantity: Optional[int] = None,
        email: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> Pledge:
        """
        Create a pending pledge for the guest identified by phone.

        Money pledges need an amount and no item fields; item pledges need
        a description and a positive quantity and no amount.
        """
        try:
            kind = PledgeType(pledge_type)
        except ValueError:
            raise ValidationError("Pledge type must be 'money' or 'item'")

        if kind == PledgeType.MONEY:
            if item_description or quantity:
                raise ValidationError("Money pledges cannot include item details")
            pledge_amount = parse_amount(amount)
        else:
            if amount is not None:
                raise ValidationError("Item pledges cannot include an amount")
            if not item_description or not item_description.strip():
                raise ValidationError("Please describe the item you are pledging")
            if not quantity or quantity < 1:
                raise ValidationError("Quantity must be at least 1")
            pledge_amount = None

        phone = normalize_phone(phone)
        guest = await GuestService(self.db).get_or_create(phone, name, email=email)

        pledge = Pledge(
            guest_id=guest.id,
            type=kind.value,
            amount=pledge_amount,
            item_description=item_description.strip() if item_description else None,
            quantity=quantity if kind == PledgeType.ITEM else None,
            status=PledgeStatus.PENDING.value,
            phone=phone,
            email=email or None,
            notes=notes or None,
        )
        self.db.add(pledge)
        await self.db.flush()

        logger.info(f"Pledge {pledge.id} ({kind.value}) created for {phone}")
        return pledge

    async def get_pledge(self, pledge_id: uuid.UUID) -> Pledge:
        pledge = await self.db.get(Pledge, pledge_id)
        if not pledge:
            raise NotFoundError("Pledge not found")
        return pledge

    async def list_pledges(self, phone: Optional[str] = None) -> List[Pledge]:
        query = select(Pledge).order_by(Pledge.created_at.desc())
        if phone:
            query = query.where(Pledge.phone == normalize_phone(phone))
        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def update_status(self, pledge_id: uuid.UUID, status: str) -> Pledge:
        """Admin status change. fulfilled_at tracks the fulfilled status."""
        try:
            new_status = PledgeStatus(status)
        except ValueError:
            raise PledgeError(f"Unknown pledge status: {status}")

        pledge = await self.get_pledge(pledge_id)
        pledge.status = new_status.value
        pledge.fulfilled_at = (
            datetime.now(timezone.utc) if new_status == PledgeStatus.FULFILLED else None
        )
        logger.info(f"Pledge {pledge.id} status set to {new_status.value}")
        return pledge
