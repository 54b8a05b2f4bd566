"""Guest model - one row per normalized phone number."""

import uuid
from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy import String, DateTime, Boolean, Integer, Text, JSON
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from wedfund.database import Base


class Guest(Base):
    """
    Guest record created lazily on first interaction.
    Phone is the natural key; the unique constraint makes inserts race-free.
    """

    __tablename__ = "guests"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )

    full_name: Mapped[str] = mapped_column(String(255), nullable=False)

    # Digits only, country code prefixed
    phone: Mapped[str] = mapped_column(
        String(20),
        unique=True,
        nullable=False,
        index=True,
    )

    email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    address: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # RSVP details
    is_attending: Mapped[Optional[bool]] = mapped_column(Boolean, nullable=True)
    plus_ones: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    dietary_restrictions: Mapped[List[str]] = mapped_column(JSON, default=list, nullable=False)

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

    def __repr__(self) -> str:
        return f"<Guest {self.phone}>"
