"""Unit tests for the reservation error taxonomy."""
import json

from common.errors import (
    ConflictError,
    DependencyUnavailableError,
    ExpiredError,
    NotFoundError,
    ReservationError,
    ValidationError,
    reservation_error_handler,
)


def test_status_codes():
    assert ValidationError("x").status_code == 400
    assert ConflictError("x").status_code == 409
    assert NotFoundError("x").status_code == 404
    assert ExpiredError("x").status_code == 410
    assert DependencyUnavailableError("x").status_code == 503


def test_all_errors_share_base():
    for error in (ValidationError, ConflictError, NotFoundError, ExpiredError):
        assert issubclass(error, ReservationError)


def test_expired_is_distinct_from_not_found():
    assert not issubclass(ExpiredError, NotFoundError)


def test_conflict_payload_lists_conflicts():
    conflict = {"id": 3, "start": "2025-03-03T10:00:00", "end": "2025-03-03T10:20:00", "status": "pending", "owner_id": "a"}

    response = reservation_error_handler(None, ConflictError("Slot is already reserved", [conflict]))

    assert response.status_code == 409
    assert json.loads(response.body) == {"detail": "Slot is already reserved", "conflicts": [conflict]}


def test_plain_payload():
    response = reservation_error_handler(None, ExpiredError("Reservation has expired"))

    assert response.status_code == 410
    assert json.loads(response.body) == {"detail": "Reservation has expired"}
