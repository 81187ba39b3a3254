"""SQLAlchemy models for slot reservations."""
from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Optional

from sqlalchemy import DateTime, Enum as SqlEnum, Index, Integer, JSON, String
from sqlalchemy.orm import Mapped, mapped_column

from .database import Base
from .intervals import utcnow


class RoleEnum(str, Enum):
    ADMIN = "admin"
    REGULAR = "regular"
    SERVICE = "service"


class ReservationStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"
    EXPIRED = "expired"


# Statuses that hold their interval against other reservations.
OCCUPYING_STATUSES = (ReservationStatus.PENDING, ReservationStatus.CONFIRMED)


class Reservation(Base):
    __tablename__ = "slot_reservations"
    __table_args__ = (
        Index("ix_slot_reservations_conflict", "resource_id", "start", "end", "status"),
        Index("ix_slot_reservations_status_created", "status", "created_at"),
        Index("ix_slot_reservations_owner_status", "owner_id", "status"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    start: Mapped[datetime] = mapped_column(DateTime, nullable=False, index=True)
    end: Mapped[datetime] = mapped_column(DateTime, nullable=False, index=True)
    resource_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    status: Mapped[ReservationStatus] = mapped_column(
        SqlEnum(ReservationStatus, values_callable=lambda enum: [member.value for member in enum]),
        default=ReservationStatus.PENDING,
        nullable=False,
    )
    owner_id: Mapped[str] = mapped_column(String(64), nullable=False)
    appointment_id: Mapped[Optional[str]] = mapped_column(String(64), default=None)
    ttl_ms: Mapped[int] = mapped_column(Integer, nullable=False, default=30_000)
    metadata_: Mapped[dict[str, Any]] = mapped_column("metadata", JSON, default=dict)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    expires_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, index=True)

    def __repr__(self) -> str:
        return (
            f"<Reservation id={self.id} resource={self.resource_id} "
            f"[{self.start.isoformat()}, {self.end.isoformat()}) {self.status.value}>"
        )
