"""Pydantic schemas for the reservations API."""
from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import AliasChoices, BaseModel, Field

from .models import ReservationStatus, RoleEnum


class Principal(BaseModel):
    subject: str
    role: RoleEnum = RoleEnum.REGULAR


class IntervalIn(BaseModel):
    start: datetime
    end: datetime
    resource_id: str = Field(..., min_length=1, max_length=64)


class ConflictCheckRequest(IntervalIn):
    exclude_id: Optional[int] = None


class ReserveRequest(IntervalIn):
    ttl: Optional[int] = Field(None, description="Hold time in milliseconds")
    metadata: Dict[str, Any] = Field(default_factory=dict)


class ConfirmRequest(BaseModel):
    appointment_id: str = Field(..., min_length=1, max_length=64)


class ConflictRead(BaseModel):
    id: int
    start: datetime
    end: datetime
    status: ReservationStatus
    owner_id: str

    model_config = {"from_attributes": True}


class ConflictCheckResult(BaseModel):
    has_conflicts: bool
    conflicts: List[ConflictRead]


class ReservationRead(BaseModel):
    id: int
    start: datetime
    end: datetime
    resource_id: str
    status: ReservationStatus
    owner_id: str
    appointment_id: Optional[str] = None
    ttl_ms: int
    metadata: Dict[str, Any] = Field(default_factory=dict, validation_alias=AliasChoices("metadata_", "metadata"))
    created_at: datetime
    updated_at: datetime
    expires_at: datetime

    model_config = {"from_attributes": True}


class SlotRead(BaseModel):
    start: datetime
    end: datetime
    duration: int


class RequestedRange(BaseModel):
    start: datetime
    end: datetime


class AvailableSlots(BaseModel):
    available_slots: List[SlotRead]
    total_slots: int
    requested_range: RequestedRange


class CleanupResult(BaseModel):
    deleted_count: int
    message: str
