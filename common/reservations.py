"""Slot reservation lifecycle, conflict detection and slot enumeration.

A reservation is created ``pending`` and holds its interval until it is
confirmed, cancelled, or its TTL lapses. Liveness of a pending hold is always
computed from ``created_at + ttl_ms`` at read time; rows physically removed by
the reclamation sweep or the admin cleanup are gone, but a row that is still
stored is never trusted to be live just because it exists.
"""
from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy import or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Query, Session

from . import intervals
from .appointments import AppointmentVerifier
from .config import Settings, get_settings
from .errors import ConflictError, ExpiredError, NotFoundError, ValidationError
from .events import publish_event, reservation_event
from .locks import ResourceLockRegistry, resource_lock, resource_locks
from .models import OCCUPYING_STATUSES, Reservation, ReservationStatus

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]
Publisher = Callable[[Dict[str, Any]], Any]


def is_expired(reservation: Reservation, now: datetime) -> bool:
    return intervals.is_expired(reservation.created_at, reservation.ttl_ms, now)


def conflict_summary(reservation: Reservation) -> Dict[str, Any]:
    return {
        "id": reservation.id,
        "start": reservation.start.isoformat(),
        "end": reservation.end.isoformat(),
        "status": reservation.status.value,
        "owner_id": reservation.owner_id,
    }


class ReservationService:
    """Unit-of-work style facade over the ``slot_reservations`` table."""

    def __init__(
        self,
        db: Session,
        settings: Optional[Settings] = None,
        clock: Clock = intervals.utcnow,
        verifier: Optional[AppointmentVerifier] = None,
        publisher: Publisher = publish_event,
        locks: ResourceLockRegistry = resource_locks,
    ) -> None:
        self.db = db
        self.settings = settings or get_settings()
        self.clock = clock
        self.verifier = verifier or AppointmentVerifier()
        self.publisher = publisher
        self.locks = locks

    def now(self) -> datetime:
        return intervals.normalize(self.clock())

    # validation

    def _interval(self, start: datetime, end: datetime) -> tuple[datetime, datetime]:
        start, end = intervals.normalize(start), intervals.normalize(end)
        if start >= end:
            raise ValidationError("End time must be after start time")
        return start, end

    @staticmethod
    def _resource(resource_id: str) -> str:
        if not resource_id or not resource_id.strip():
            raise ValidationError("Resource ID required")
        return resource_id

    def _ttl(self, ttl_ms: Optional[int]) -> int:
        if ttl_ms is None:
            return self.settings.default_ttl_ms
        if not self.settings.min_ttl_ms <= ttl_ms <= self.settings.max_ttl_ms:
            raise ValidationError(
                f"TTL must be between {self.settings.min_ttl_ms // 1000}-{self.settings.max_ttl_ms // 1000} seconds"
            )
        return ttl_ms

    # conflict detection

    def _occupying(self, resource_id: str, start: datetime, end: datetime, now: datetime) -> Query:
        return self.db.query(Reservation).filter(
            Reservation.resource_id == resource_id,
            Reservation.status.in_(OCCUPYING_STATUSES),
            Reservation.start < end,
            Reservation.end > start,
            or_(
                Reservation.status == ReservationStatus.CONFIRMED,
                Reservation.expires_at >= now,
            ),
        )

    def find_conflicts(
        self,
        start: datetime,
        end: datetime,
        resource_id: str,
        exclude_id: Optional[int] = None,
    ) -> List[Reservation]:
        start, end = self._interval(start, end)
        query = self._occupying(self._resource(resource_id), start, end, self.now())
        if exclude_id is not None:
            query = query.filter(Reservation.id != exclude_id)
        return query.order_by(Reservation.start).all()

    def has_conflict(
        self,
        start: datetime,
        end: datetime,
        resource_id: str,
        exclude_id: Optional[int] = None,
    ) -> bool:
        return bool(self.find_conflicts(start, end, resource_id, exclude_id))

    # lifecycle

    def reserve(
        self,
        start: datetime,
        end: datetime,
        resource_id: str,
        owner_id: str,
        ttl_ms: Optional[int] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Reservation:
        start, end = self._interval(start, end)
        if end - start < timedelta(minutes=self.settings.min_duration_minutes):
            raise ValidationError(f"Minimum appointment duration is {self.settings.min_duration_minutes} minutes")
        resource_id = self._resource(resource_id)
        ttl_ms = self._ttl(ttl_ms)

        with resource_lock(self.db, resource_id, self.locks):
            try:
                conflicts = self.find_conflicts(start, end, resource_id)
                if conflicts:
                    summaries = [conflict_summary(c) for c in conflicts]
                    self.db.rollback()
                    logger.warning(
                        "Reservation on %s for [%s, %s) rejected: %d conflict(s)",
                        resource_id,
                        start.isoformat(),
                        end.isoformat(),
                        len(summaries),
                    )
                    raise ConflictError("Slot is already reserved", summaries)

                now = self.now()
                reservation = Reservation(
                    start=start,
                    end=end,
                    resource_id=resource_id,
                    owner_id=owner_id,
                    status=ReservationStatus.PENDING,
                    ttl_ms=ttl_ms,
                    metadata_=dict(metadata or {}),
                    created_at=now,
                    updated_at=now,
                    expires_at=intervals.expiry_of(now, ttl_ms),
                )
                self.db.add(reservation)
                self.db.commit()
            except SQLAlchemyError:
                self.db.rollback()
                raise
        self.db.refresh(reservation)
        logger.info("Reserved %s on %s for owner %s", reservation.id, resource_id, owner_id)
        self.publisher(reservation_event("reservation_reserved", reservation))
        return reservation

    def get(self, reservation_id: int, owner_id: str) -> Reservation:
        self.expire_lapsed(owner_id=owner_id)
        reservation = (
            self.db.query(Reservation)
            .filter(Reservation.id == reservation_id, Reservation.owner_id == owner_id)
            .first()
        )
        if not reservation:
            raise NotFoundError("Reservation not found")
        return reservation

    def list_reservations(
        self,
        owner_id: str,
        status: Optional[ReservationStatus] = None,
        resource_id: Optional[str] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> List[Reservation]:
        self.expire_lapsed(owner_id=owner_id)
        query = self.db.query(Reservation).filter(Reservation.owner_id == owner_id)
        if status is not None:
            query = query.filter(Reservation.status == status)
        if resource_id:
            query = query.filter(Reservation.resource_id == resource_id)
        # A range only applies when both ends are given.
        if start is not None and end is not None:
            query = query.filter(
                Reservation.start >= intervals.normalize(start),
                Reservation.end <= intervals.normalize(end),
            )
        return query.order_by(Reservation.created_at.desc(), Reservation.id.desc()).all()

    def _owned(self, reservation_id: int, owner_id: str) -> Reservation:
        reservation = (
            self.db.query(Reservation)
            .filter(Reservation.id == reservation_id, Reservation.owner_id == owner_id)
            .first()
        )
        if not reservation:
            raise NotFoundError("Reservation not found or already processed")
        return reservation

    def _pending_for(self, reservation_id: int, owner_id: str) -> Reservation:
        reservation = self._owned(reservation_id, owner_id)
        if reservation.status != ReservationStatus.PENDING:
            raise NotFoundError("Reservation not found or already processed")
        return reservation

    def _transition(
        self,
        reservation: Reservation,
        target: ReservationStatus,
        now: datetime,
        appointment_id: Optional[str] = None,
    ) -> bool:
        """Move a pending reservation to ``target``; False if another writer got there first."""

        values: Dict[Any, Any] = {Reservation.status: target, Reservation.updated_at: now}
        if appointment_id is not None:
            values[Reservation.appointment_id] = appointment_id
        try:
            updated = (
                self.db.query(Reservation)
                .filter(Reservation.id == reservation.id, Reservation.status == ReservationStatus.PENDING)
                .update(values, synchronize_session=False)
            )
            if updated != 1:
                self.db.rollback()
                return False
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            raise
        self.db.refresh(reservation)
        return True

    def confirm(self, reservation_id: int, appointment_id: str, owner_id: str) -> Reservation:
        reservation = self._owned(reservation_id, owner_id)
        now = self.now()
        # A lapsed hold answers "expired" whether or not a read already flipped its status.
        if reservation.status == ReservationStatus.EXPIRED:
            raise ExpiredError("Reservation has expired")
        if reservation.status != ReservationStatus.PENDING:
            raise NotFoundError("Reservation not found or already processed")
        if is_expired(reservation, now):
            self._transition(reservation, ReservationStatus.EXPIRED, now)
            raise ExpiredError("Reservation has expired")

        self.verifier.verify(appointment_id, owner_id)
        if not self._transition(reservation, ReservationStatus.CONFIRMED, now, appointment_id=appointment_id):
            raise NotFoundError("Reservation not found or already processed")
        logger.info("Confirmed reservation %s with appointment %s", reservation.id, appointment_id)
        self.publisher(reservation_event("reservation_confirmed", reservation))
        return reservation

    def cancel(self, reservation_id: int, owner_id: str) -> Reservation:
        reservation = self._pending_for(reservation_id, owner_id)
        now = self.now()
        if is_expired(reservation, now):
            self._transition(reservation, ReservationStatus.EXPIRED, now)
            raise NotFoundError("Reservation not found or already processed")
        if not self._transition(reservation, ReservationStatus.CANCELLED, now):
            raise NotFoundError("Reservation not found or already processed")
        logger.info("Cancelled reservation %s", reservation.id)
        self.publisher(reservation_event("reservation_cancelled", reservation))
        return reservation

    def expire_lapsed(self, owner_id: Optional[str] = None) -> int:
        """Mark stored-pending rows whose TTL has lapsed as ``expired``."""

        query = self.db.query(Reservation).filter(
            Reservation.status == ReservationStatus.PENDING,
            Reservation.expires_at < self.now(),
        )
        if owner_id is not None:
            query = query.filter(Reservation.owner_id == owner_id)
        try:
            count = query.update(
                {Reservation.status: ReservationStatus.EXPIRED, Reservation.updated_at: self.now()},
                synchronize_session=False,
            )
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            raise
        return count

    # slot enumeration

    def enumerate_slots(
        self,
        window_start: datetime,
        window_end: datetime,
        resource_id: str,
        duration_minutes: int = 30,
        step_minutes: Optional[int] = None,
    ) -> List[intervals.Slot]:
        window_start, window_end = self._interval(window_start, window_end)
        resource_id = self._resource(resource_id)
        if not self.settings.min_slot_minutes <= duration_minutes <= self.settings.max_slot_minutes:
            raise ValidationError(
                f"Duration must be {self.settings.min_slot_minutes}-{self.settings.max_slot_minutes} minutes"
            )
        step_minutes = self.settings.slot_step_minutes if step_minutes is None else step_minutes
        if step_minutes <= 0:
            raise ValidationError("Step must be a positive number of minutes")

        occupied = (
            self._occupying(resource_id, window_start, window_end, self.now())
            .order_by(Reservation.start)
            .all()
        )
        return list(
            intervals.free_slots(
                window_start,
                window_end,
                timedelta(minutes=duration_minutes),
                timedelta(minutes=step_minutes),
                occupied,
            )
        )

    # cleanup

    def _delete(self, query: Query) -> int:
        try:
            count = query.delete(synchronize_session=False)
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            raise
        return count

    def cleanup_expired(self, older_than_ms: Optional[int] = None) -> int:
        """Delete pending rows created more than ``older_than_ms`` ago, whatever their TTL."""

        if older_than_ms is None:
            older_than_ms = self.settings.cleanup_age_ms
        if older_than_ms < 0:
            raise ValidationError("Age threshold must not be negative")
        cutoff = self.now() - timedelta(milliseconds=older_than_ms)
        deleted = self._delete(
            self.db.query(Reservation).filter(
                Reservation.status == ReservationStatus.PENDING,
                Reservation.created_at < cutoff,
            )
        )
        logger.info("Cleanup removed %d pending reservation(s) older than %dms", deleted, older_than_ms)
        return deleted

    def purge_lapsed(self, grace_seconds: Optional[float] = None) -> int:
        """Physically remove lapsed holds, stored as ``pending`` or ``expired``.

        Only rows whose expiry lies more than ``grace_seconds`` in the past are
        removed, so ``confirm`` keeps answering "expired" for that long.
        """

        if grace_seconds is None:
            grace_seconds = self.settings.sweeper_grace_seconds
        cutoff = self.now() - timedelta(seconds=grace_seconds)
        return self._delete(
            self.db.query(Reservation).filter(
                Reservation.status.in_((ReservationStatus.PENDING, ReservationStatus.EXPIRED)),
                Reservation.expires_at < cutoff,
            )
        )
