# backend/wvpdb/security.py
"""
Request identity for the compliance API.

Employees sign in with the external identity provider, which issues an
HS256 bearer token whose `sub` claim is the employee id. This module only
verifies such tokens (and mints them for tooling and tests). The reminder
trigger is a machine caller and authenticates with a shared secret instead.
"""

from __future__ import annotations

import hmac
import os
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from fastapi import Depends, Header, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError, jwt
from sqlalchemy.orm import Session

from .database import get_db
from wvpdb.apps.accounts import models as account_models

SECRET_KEY = os.getenv("SECRET_KEY", "CHANGE_ME_IN_PRODUCTION")
JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
try:
    ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", "60"))
except ValueError:
    ACCESS_TOKEN_EXPIRE_MINUTES = 60

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/token")


class InvalidToken(Exception):
    pass


def create_access_token(*, data: Dict[str, Any], expires_delta: Optional[timedelta] = None) -> str:
    """Sign `data` (which should carry `sub`) with an expiry claim."""
    lifetime = expires_delta if expires_delta is not None else timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES)
    claims = {**data, "exp": datetime.now(timezone.utc) + lifetime}
    return jwt.encode(claims, SECRET_KEY, algorithm=JWT_ALGORITHM)


def decode_subject(token: str) -> str:
    """Return the `sub` claim of a valid, unexpired token."""
    try:
        claims = jwt.decode(token, SECRET_KEY, algorithms=[JWT_ALGORITHM])
    except JWTError as exc:
        raise InvalidToken(str(exc)) from exc
    subject = claims.get("sub")
    if not subject:
        raise InvalidToken("token has no subject")
    return str(subject).strip()


def get_employee_by_id(db: Session, employee_id: Optional[str]) -> Optional[account_models.Employee]:
    if not employee_id:
        return None
    return db.query(account_models.Employee).filter(account_models.Employee.id == employee_id).first()


def _unauthorized(detail: str, *, bearer: bool = True) -> HTTPException:
    headers = {"WWW-Authenticate": "Bearer"} if bearer else None
    return HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=detail, headers=headers)


def get_current_employee(
    token: str = Depends(oauth2_scheme),
    db: Session = Depends(get_db),
) -> account_models.Employee:
    try:
        employee_id = decode_subject(token)
    except InvalidToken:
        raise _unauthorized("Could not validate credentials")

    employee = get_employee_by_id(db, employee_id)
    if employee is None or not employee.is_active:
        raise _unauthorized("Could not validate credentials")
    return employee


def verify_cron_secret(authorization: Optional[str] = Header(default=None)) -> None:
    """
    `Authorization: Bearer <CRON_SECRET>` guard for the scheduler. The secret
    is read per request so it can be rotated without a restart.
    """
    secret = os.getenv("CRON_SECRET")
    if not secret:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Cron trigger is not configured",
        )
    supplied = (authorization or "").encode()
    if not hmac.compare_digest(supplied, f"Bearer {secret}".encode()):
        raise _unauthorized("Unauthorized", bearer=False)
