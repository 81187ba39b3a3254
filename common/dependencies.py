"""Reusable FastAPI dependencies for auth and service wiring."""
from typing import Callable

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.orm import Session

from .appointments import get_appointment_verifier
from .auth import decode_token
from .database import get_db
from .models import RoleEnum
from .reservations import ReservationService
from .schemas import Principal

oauth_scheme = OAuth2PasswordBearer(tokenUrl="/users/login")


def get_current_principal(token: str = Depends(oauth_scheme)) -> Principal:
    payload = decode_token(token)
    subject = payload.get("sub")
    if subject is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing subject in token")
    try:
        role = RoleEnum(payload.get("role", RoleEnum.REGULAR.value))
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unknown role in token") from exc
    return Principal(subject=str(subject), role=role)


def allow_roles(*roles: RoleEnum) -> Callable[[Principal], Principal]:
    def dependency(principal: Principal = Depends(get_current_principal)) -> Principal:
        if principal.role not in roles:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Insufficient permissions")
        return principal

    return dependency


def get_reservation_service(db: Session = Depends(get_db)) -> ReservationService:
    return ReservationService(db, verifier=get_appointment_verifier())
