"""
Admin Contribution and Pledge Endpoints.
"""

import uuid
import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from wedfund.api.admin.common import audited_delete, audited_update, get_or_404, actor_name
from wedfund.api.deps import get_admin_user, get_payment_service, error_response
from wedfund.api.public import serialize_pledge
from wedfund.database import get_db
from wedfund.errors import WeddingFundError
from wedfund.fsm.states import AuditAction, ContributionStatus
from wedfund.models.contribution import Contribution
from wedfund.models.pledge import Pledge
from wedfund.services.audit_service import AuditService
from wedfund.services.payment_service import PaymentService
from wedfund.services.pledge_service import PledgeService

router = APIRouter()
logger = logging.getLogger(__name__)


class ContributionUpdate(BaseModel):
    """Editable fields. Status changes go through reconciliation, not here."""
    contributor_name: Optional[str] = None
    contributor_email: Optional[str] = None
    contributor_phone: Optional[str] = None
    message: Optional[str] = None


class PledgeStatusUpdate(BaseModel):
    status: str


def serialize_contribution(contribution: Contribution) -> dict:
    return {
        "id": str(contribution.id),
        "guest_id": str(contribution.guest_id) if contribution.guest_id else None,
        "amount": float(contribution.amount),
        "currency": contribution.currency,
        "reference": contribution.reference,
        "gateway_tracking_id": contribution.gateway_tracking_id,
        "gateway_reference": contribution.gateway_reference,
        "status": contribution.status,
        "metadata": contribution.meta or {},
        "contributor_name": contribution.contributor_name,
        "contributor_email": contribution.contributor_email,
        "contributor_phone": contribution.contributor_phone,
        "message": contribution.message,
        "created_at": contribution.created_at.isoformat() if contribution.created_at else None,
        "updated_at": contribution.updated_at.isoformat() if contribution.updated_at else None,
    }


# --- Contributions ---

@router.get("/contributions")
async def list_contributions(
    status: Optional[str] = Query(None),
    db: AsyncSession = Depends(get_db),
    _: str = Depends(get_admin_user),
):
    query = select(Contribution).order_by(Contribution.created_at.desc())
    if status:
        try:
            query = query.where(Contribution.status == ContributionStatus(status).value)
        except ValueError:
            raise HTTPException(status_code=400, detail=f"Unknown status: {status}")

    result = await db.execute(query)
    return {
        "status": "success",
        "items": [serialize_contribution(c) for c in result.scalars().all()],
    }


@router.patch("/contributions/{contribution_id}")
async def update_contribution(
    contribution_id: uuid.UUID,
    request: ContributionUpdate,
    db: AsyncSession = Depends(get_db),
    admin_key: str = Depends(get_admin_user),
):
    contribution = await get_or_404(db, Contribution, contribution_id, "Contribution")
    await audited_update(db, admin_key, contribution, request.model_dump(exclude_unset=True))
    return {"status": "success", "contribution": serialize_contribution(contribution)}


@router.post("/contributions/{contribution_id}/cancel-order")
async def cancel_contribution_order(
    contribution_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    service: PaymentService = Depends(get_payment_service),
    admin_key: str = Depends(get_admin_user),
):
    """Abandon an unpaid order at Pesapal and mark it cancelled."""
    contribution = await get_or_404(db, Contribution, contribution_id, "Contribution")
    try:
        await service.cancel_order(contribution)
    except WeddingFundError as e:
        logger.error(f"Cancel order failed for {contribution.reference}: {e.message}")
        return error_response(e)

    await AuditService(db, actor=actor_name(admin_key)).record(
        AuditAction.UPDATE, "contributions", contribution.id, {"status": contribution.status}
    )
    return {"status": "success", "contribution": serialize_contribution(contribution)}


@router.delete("/contributions/{contribution_id}")
async def delete_contribution(
    contribution_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    admin_key: str = Depends(get_admin_user),
):
    contribution = await get_or_404(db, Contribution, contribution_id, "Contribution")
    await audited_delete(db, admin_key, contribution)
    return {"status": "success"}


# --- Pledges ---

@router.get("/pledges")
async def list_pledges(
    db: AsyncSession = Depends(get_db),
    _: str = Depends(get_admin_user),
):
    pledges = await PledgeService(db).list_pledges()
    return {
        "status": "success",
        "items": [
            {**serialize_pledge(p), "phone": p.phone, "email": p.email, "notes": p.notes}
            for p in pledges
        ],
    }


@router.patch("/pledges/{pledge_id}/status")
async def update_pledge_status(
    pledge_id: uuid.UUID,
    request: PledgeStatusUpdate,
    db: AsyncSession = Depends(get_db),
    admin_key: str = Depends(get_admin_user),
):
    try:
        pledge = await PledgeService(db).update_status(pledge_id, request.status)
    except WeddingFundError as e:
        return error_response(e)

    await AuditService(db, actor=actor_name(admin_key)).record(
        AuditAction.UPDATE, "pledges", pledge.id, {"status": pledge.status}
    )
    return {"status": "success", "pledge": serialize_pledge(pledge)}


@router.delete("/pledges/{pledge_id}")
async def delete_pledge(
    pledge_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    admin_key: str = Depends(get_admin_user),
):
    pledge = await get_or_404(db, Pledge, pledge_id, "Pledge")
    await audited_delete(db, admin_key, pledge)
    return {"status": "success"}
