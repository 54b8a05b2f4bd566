"""Contribution model - one payment attempt routed through Pesapal."""

import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional, Dict, Any

from sqlalchemy import String, DateTime, ForeignKey, Numeric, Text, JSON, CheckConstraint
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from wedfund.database import Base
from wedfund.fsm.states import ContributionStatus


class Contribution(Base):
    """
    Contribution record.

    `reference` is the merchant reference sent to the gateway. It is set once
    at creation and is the correlation key until `gateway_tracking_id` is known.
    Status only reaches a terminal value through reconciliation.
    """

    __tablename__ = "contributions"
    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_contributions_amount_positive"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )

    guest_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("guests.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )

    amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)

    currency: Mapped[str] = mapped_column(String(3), default="UGX", nullable=False)

    # Merchant reference (immutable)
    reference: Mapped[str] = mapped_column(
        String(100),
        unique=True,
        nullable=False,
        index=True,
    )

    # Assigned by Pesapal after SubmitOrderRequest
    gateway_tracking_id: Mapped[Optional[str]] = mapped_column(
        String(100),
        nullable=True,
        index=True,
    )

    # Pesapal's own OrderReference, reported in IPN
    gateway_reference: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)

    status: Mapped[str] = mapped_column(
        String(20),
        default=ContributionStatus.PENDING.value,
        nullable=False,
        index=True,
    )

    # Column is named "metadata"; the attribute name is reserved by SQLAlchemy.
    # Always reassign a new dict so the change is tracked.
    meta: Mapped[Dict[str, Any]] = mapped_column(
        "metadata",
        JSON,
        default=dict,
        nullable=False,
    )

    # Snapshot of submitter identity
    contributor_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    contributor_email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    contributor_phone: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)

    message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False,
    )

    @property
    def status_enum(self) -> ContributionStatus:
        return ContributionStatus(self.status)

    @property
    def is_terminal(self) -> bool:
        return self.status_enum.is_terminal

    @property
    def pledge_id(self) -> Optional[str]:
        return (self.meta or {}).get("pledge_id")

    def __repr__(self) -> str:
        return f"<Contribution {self.reference} {self.status}>"
