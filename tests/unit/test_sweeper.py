"""Unit tests for the background reclamation sweep."""
import asyncio
from datetime import timedelta
from unittest.mock import MagicMock

from sqlalchemy.exc import OperationalError

from common.config import Settings
from common.database import SessionLocal
from common.intervals import utcnow
from common.models import Reservation, ReservationStatus
from common.sweeper import ExpirySweeper


def add_hold(db, expires_in: timedelta, status: ReservationStatus = ReservationStatus.PENDING) -> int:
    now = utcnow()
    reservation = Reservation(
        start=now + timedelta(hours=1),
        end=now + timedelta(hours=2),
        resource_id="room-1",
        owner_id="dr-meier",
        status=status,
        ttl_ms=max(int(expires_in.total_seconds() * 1000), 1000),
        created_at=now,
        updated_at=now,
        expires_at=now + expires_in,
    )
    db.add(reservation)
    db.commit()
    return reservation.id


def sweeper_settings(**overrides) -> Settings:
    return Settings(_env_file=None, sweeper_grace_seconds=0, **overrides)


def test_run_once_reclaims_lapsed_rows(db_session):
    lapsed_id = add_hold(db_session, timedelta(seconds=-5))
    marked_id = add_hold(db_session, timedelta(seconds=-5), ReservationStatus.EXPIRED)
    live_id = add_hold(db_session, timedelta(minutes=5))

    deleted = ExpirySweeper(SessionLocal, sweeper_settings()).run_once()

    db_session.expire_all()
    assert deleted == 2
    assert db_session.get(Reservation, lapsed_id) is None
    assert db_session.get(Reservation, marked_id) is None
    assert db_session.get(Reservation, live_id) is not None


def test_default_grace_keeps_recently_lapsed_rows(db_session):
    lapsed_id = add_hold(db_session, timedelta(seconds=-5))

    deleted = ExpirySweeper(SessionLocal, Settings(_env_file=None)).run_once()

    db_session.expire_all()
    assert deleted == 0
    assert db_session.get(Reservation, lapsed_id) is not None


def test_run_once_logs_and_swallows_database_errors(caplog):
    broken = MagicMock()
    broken.query.side_effect = OperationalError("DELETE", {}, Exception("disk I/O error"))

    deleted = ExpirySweeper(lambda: broken, sweeper_settings()).run_once()

    assert deleted == 0
    broken.close.assert_called_once()
    assert "Reservation sweep failed" in caplog.text


def test_start_and_stop(db_session):
    add_hold(db_session, timedelta(seconds=-1))
    sweeper = ExpirySweeper(SessionLocal, sweeper_settings(sweeper_interval_seconds=0.01))

    async def exercise():
        sweeper.start()
        assert sweeper.running
        await asyncio.sleep(0.2)
        await sweeper.stop()

    asyncio.run(exercise())

    assert sweeper.running is False
    assert db_session.query(Reservation).count() == 0


def test_loop_survives_unexpected_errors(db_session, caplog):
    add_hold(db_session, timedelta(seconds=-1))
    calls = []

    def flaky_factory():
        calls.append(None)
        if len(calls) == 1:
            raise RuntimeError("pool exhausted")
        return SessionLocal()

    sweeper = ExpirySweeper(flaky_factory, sweeper_settings(sweeper_interval_seconds=0.01))

    async def exercise():
        sweeper.start()
        await asyncio.sleep(0.2)
        assert sweeper.running
        await sweeper.stop()

    asyncio.run(exercise())

    assert len(calls) > 1
    assert "Reservation sweep crashed" in caplog.text
    assert db_session.query(Reservation).count() == 0
