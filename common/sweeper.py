"""Background reclamation of lapsed pending reservations."""
from __future__ import annotations

import asyncio
import logging
from typing import Callable, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .config import Settings, get_settings
from .reservations import ReservationService

logger = logging.getLogger(__name__)


class ExpirySweeper:
    """Periodically deletes holds whose TTL has run out.

    This only frees storage. Whether a hold is still live is decided by the
    reservation service on every read. Rows are kept for
    ``sweeper_grace_seconds`` past expiry so confirming a lapsed hold still
    reports it as expired. A failing pass is logged and retried on the next
    interval.
    """

    def __init__(self, session_factory: Callable[[], Session], settings: Optional[Settings] = None) -> None:
        self.session_factory = session_factory
        self.settings = settings or get_settings()
        self._task: Optional[asyncio.Task] = None

    def run_once(self) -> int:
        db = self.session_factory()
        try:
            deleted = ReservationService(db, self.settings).purge_lapsed()
        except SQLAlchemyError:
            logger.exception("Reservation sweep failed")
            return 0
        finally:
            db.close()
        if deleted:
            logger.info("Reservation sweep reclaimed %d row(s)", deleted)
        return deleted

    async def _loop(self) -> None:
        while True:
            try:
                await asyncio.to_thread(self.run_once)
            except Exception:
                logger.exception("Reservation sweep crashed; retrying next interval")
            await asyncio.sleep(self.settings.sweeper_interval_seconds)

    def start(self) -> None:
        if self._task is None or self._task.done():
            self._task = asyncio.get_running_loop().create_task(self._loop())

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()
