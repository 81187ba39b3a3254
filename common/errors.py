"""Reservation error taxonomy and its HTTP rendering."""
from __future__ import annotations

from typing import Any, Dict, Sequence

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse


class ReservationError(Exception):
    """Base class for errors raised by the reservation core."""

    status_code: int = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def to_payload(self) -> Dict[str, Any]:
        return {"detail": self.message}


class ValidationError(ReservationError):
    """Malformed or out-of-range input."""

    status_code = status.HTTP_400_BAD_REQUEST


class ConflictError(ReservationError):
    """The requested interval overlaps an active reservation."""

    status_code = status.HTTP_409_CONFLICT

    def __init__(self, message: str, conflicts: Sequence[Dict[str, Any]] = ()) -> None:
        super().__init__(message)
        self.conflicts = list(conflicts)

    def to_payload(self) -> Dict[str, Any]:
        return {"detail": self.message, "conflicts": self.conflicts}


class NotFoundError(ReservationError):
    """Missing, owned by someone else, or in the wrong state."""

    status_code = status.HTTP_404_NOT_FOUND


class ExpiredError(ReservationError):
    """The reservation's hold has lapsed."""

    status_code = status.HTTP_410_GONE


class DependencyUnavailableError(ReservationError):
    """A collaborating service could not be reached."""

    status_code = status.HTTP_503_SERVICE_UNAVAILABLE


def reservation_error_handler(_: Request, exc: ReservationError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content=exc.to_payload())


def request_validation_handler(_: Request, exc: RequestValidationError) -> JSONResponse:
    errors = [
        {"loc": list(err.get("loc", ())), "msg": err.get("msg", "")}
        for err in exc.errors()
    ]
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"detail": "Invalid request", "errors": errors})


def register_error_handlers(app: FastAPI) -> None:
    """Attach the reservation error handlers to an app."""

    app.add_exception_handler(ReservationError, reservation_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
