"""
Admin Dashboard Endpoints.
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from wedfund.api.deps import get_admin_user
from wedfund.database import get_db
from wedfund.fsm.states import ContributionStatus, PledgeStatus
from wedfund.models.contribution import Contribution
from wedfund.models.guest import Guest
from wedfund.models.guest_message import GuestMessage
from wedfund.models.meeting import Meeting
from wedfund.models.pledge import Pledge
from wedfund.services.audit_service import AuditService
from wedfund.services.site_service import SiteService

router = APIRouter()
logger = logging.getLogger(__name__)


@router.get("/stats")
async def get_stats(
    db: AsyncSession = Depends(get_db),
    _: str = Depends(get_admin_user),
):
    """Dashboard totals: money raised, contribution funnel, pledges, guests."""
    try:
        status_rows = await db.execute(
            select(Contribution.status, func.count(Contribution.id)).group_by(Contribution.status)
        )
        by_status = {s.value: 0 for s in ContributionStatus}
        by_status.update({status: count for status, count in status_rows.all()})

        pledge_rows = await db.execute(
            select(
                Pledge.status,
                func.count(Pledge.id),
                func.coalesce(func.sum(Pledge.amount), 0),
                func.coalesce(func.sum(Pledge.fulfilled_amount), 0),
            ).group_by(Pledge.status)
        )
        pledges = {s.value: {"count": 0, "amount": 0.0, "fulfilled_amount": 0.0} for s in PledgeStatus}
        for status, count, amount, fulfilled in pledge_rows.all():
            pledges[status] = {
                "count": count,
                "amount": float(amount),
                "fulfilled_amount": float(fulfilled),
            }

        guests = (await db.execute(select(func.count(Guest.id)))).scalar() or 0
        attending = (
            await db.execute(select(func.count(Guest.id)).where(Guest.is_attending.is_(True)))
        ).scalar() or 0
        meetings = (
            await db.execute(select(func.count(Meeting.id)).where(Meeting.is_active.is_(True)))
        ).scalar() or 0
        pending_messages = (
            await db.execute(
                select(func.count(GuestMessage.id)).where(GuestMessage.is_approved.is_(False))
            )
        ).scalar() or 0

        return {
            "raised": await SiteService(db).contribution_summary(),
            "contributions_by_status": by_status,
            "pledges": pledges,
            "guests": {"total": guests, "attending": attending},
            "active_meetings": meetings,
            "messages_pending_approval": pending_messages,
        }
    except Exception as e:
        logger.error(f"Error fetching stats: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=str(e))


@router.get("/audit-logs")
async def list_audit_logs(
    limit: int = Query(100, ge=1, le=1000),
    db: AsyncSession = Depends(get_db),
    _: str = Depends(get_admin_user),
):
    entries = await AuditService(db).recent(limit=limit)
    return {
        "status": "success",
        "items": [
            {
                "id": str(e.id),
                "action": e.action,
                "table_name": e.table_name,
                "record_id": e.record_id,
                "changes": e.changes,
                "actor": e.actor,
                "created_at": e.created_at.isoformat() if e.created_at else None,
            }
            for e in entries
        ],
    }
