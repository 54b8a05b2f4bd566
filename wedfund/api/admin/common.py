"""Helpers shared by the admin routers."""

import uuid
from typing import Any, Dict, Type

from fastapi import HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from wedfund.fsm.states import AuditAction
from wedfund.services.audit_service import AuditService


async def get_or_404(db: AsyncSession, model: Type, record_id: uuid.UUID, label: str):
    record = await db.get(model, record_id)
    if not record:
        raise HTTPException(status_code=404, detail=f"{label} not found")
    return record


def reject_null(value: Any) -> Any:
    """Partial updates may omit a required field but not clear it."""
    if value is None:
        raise ValueError("may be omitted but not null")
    return value


def apply_changes(record: Any, updates: Dict[str, Any]) -> Dict[str, Any]:
    """Set changed attributes and return {field: [old, new]}."""
    changes = {}
    for field, value in updates.items():
        old = getattr(record, field)
        if old != value:
            setattr(record, field, value)
            changes[field] = [old, value]
    return changes


async def audited_update(
    db: AsyncSession,
    admin_key: str,
    record: Any,
    updates: Dict[str, Any],
) -> Dict[str, Any]:
    changes = apply_changes(record, updates)
    if changes:
        await AuditService(db, actor=actor_name(admin_key)).record(
            AuditAction.UPDATE, record.__tablename__, record.id, changes
        )
        await db.flush()
    return changes


async def audited_create(db: AsyncSession, admin_key: str, record: Any, data: Dict[str, Any]) -> None:
    db.add(record)
    await db.flush()
    await AuditService(db, actor=actor_name(admin_key)).record(
        AuditAction.CREATE, record.__tablename__, record.id, data
    )


async def audited_delete(db: AsyncSession, admin_key: str, record: Any) -> None:
    await AuditService(db, actor=actor_name(admin_key)).record(
        AuditAction.DELETE, record.__tablename__, record.id
    )
    await db.delete(record)
    await db.flush()


def actor_name(admin_key: str) -> str:
    """Admin key is a shared secret; log only its tail."""
    return f"admin:...{admin_key[-4:]}" if admin_key else "admin"
