"""Verification of appointment references against the appointments service."""
from __future__ import annotations

import logging
from typing import Optional

import httpx
from circuitbreaker import CircuitBreakerError, circuit

from .config import get_settings
from .errors import DependencyUnavailableError, NotFoundError, ValidationError

logger = logging.getLogger(__name__)


@circuit(failure_threshold=5, recovery_timeout=60, expected_exception=httpx.HTTPError)
def _fetch_appointment(url: str, timeout: float) -> httpx.Response:
    response = httpx.get(url, timeout=timeout)
    if response.status_code != 404:
        response.raise_for_status()
    return response


class AppointmentVerifier:
    """Checks that an appointment id refers to an appointment of the caller.

    With no ``base_url`` configured any non-empty reference is accepted.
    """

    def __init__(self, base_url: Optional[str] = None, timeout: float = 5.0, owner_field: str = "doctor") -> None:
        self.base_url = base_url.rstrip("/") if base_url else None
        self.timeout = timeout
        self.owner_field = owner_field

    def verify(self, appointment_id: str, owner_id: str) -> None:
        if not appointment_id or not appointment_id.strip():
            raise ValidationError("Valid appointment ID required")
        if self.base_url is None:
            return
        url = f"{self.base_url}/appointments/{appointment_id}"
        try:
            response = _fetch_appointment(url, self.timeout)
        except CircuitBreakerError as exc:
            logger.warning("Appointment lookups suspended: %s", exc)
            raise DependencyUnavailableError("Appointment service unavailable") from exc
        except httpx.HTTPError as exc:
            logger.error("Appointment lookup for %s failed: %s", appointment_id, exc)
            raise DependencyUnavailableError("Appointment service unavailable") from exc
        if response.status_code == 404:
            raise NotFoundError("Appointment not found")

        try:
            appointment = response.json()
        except ValueError as exc:
            logger.error("Appointment lookup for %s returned a malformed body", appointment_id)
            raise DependencyUnavailableError("Appointment service unavailable") from exc
        owner = appointment.get(self.owner_field) if isinstance(appointment, dict) else None
        if owner is None or str(owner) != owner_id:
            # Someone else's appointment is reported exactly like a missing one.
            logger.warning("Appointment %s does not belong to %s", appointment_id, owner_id)
            raise NotFoundError("Appointment not found")


def get_appointment_verifier() -> AppointmentVerifier:
    settings = get_settings()
    return AppointmentVerifier(
        settings.appointments_service_url,
        settings.appointments_timeout_seconds,
        settings.appointments_owner_field,
    )
