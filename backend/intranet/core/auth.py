from datetime import UTC, datetime, timedelta
from typing import Any

import jwt
from fastapi import Depends, HTTPException, Request
from sqlalchemy.orm import Session

from intranet.core.config import settings
from intranet.core.database import get_db
from intranet.core.errors import NoTenantAvailable, NotAuthenticated
from intranet.models.employee import Employee
from intranet.services.identity_service import IdentityResolver, Principal
from intranet.services.permission_service import UserPermissions, derive_permissions

JWT_ALGORITHM = "HS256"


def encode_access_token(
    user_id: str,
    email: str | None,
    *,
    metadata: dict[str, Any] | None = None,
    email_verified_at: datetime | None = None,
    expires_in: timedelta = timedelta(hours=1),
) -> str:
    """Issue a token shaped like the identity provider's access tokens."""
    now = datetime.now(UTC)
    payload: dict[str, Any] = {
        "sub": user_id,
        "email": email,
        "aud": settings.AUTH_JWT_AUDIENCE,
        "iat": now,
        "exp": now + expires_in,
        "user_metadata": metadata or {},
    }
    if email_verified_at is not None:
        payload["email_confirmed_at"] = email_verified_at.isoformat()
    return jwt.encode(payload, settings.AUTH_JWT_SECRET, algorithm=JWT_ALGORITHM)


def decode_principal(token: str) -> Principal:
    """Decode an access token. Raises ``jwt.InvalidTokenError`` when invalid."""
    payload = jwt.decode(
        token,
        settings.AUTH_JWT_SECRET,
        algorithms=[JWT_ALGORITHM],
        audience=settings.AUTH_JWT_AUDIENCE,
    )
    confirmed = payload.get("email_confirmed_at")
    return Principal(
        id=str(payload["sub"]),
        email=payload.get("email"),
        email_verified_at=datetime.fromisoformat(confirmed) if confirmed else None,
        metadata=dict(payload.get("user_metadata") or {}),
    )


def principal_from_token(token: str | None) -> Principal:
    if not token:
        raise HTTPException(status_code=401, detail="Access token is required")
    try:
        return decode_principal(token)
    except jwt.ExpiredSignatureError:
        raise HTTPException(status_code=401, detail="Access token has expired") from None
    except (jwt.InvalidTokenError, KeyError, ValueError):
        raise HTTPException(status_code=401, detail="Invalid access token") from None


def get_current_principal(request: Request) -> Principal:
    """Extract the principal from the bearer token in the Authorization header."""
    auth_header = request.headers.get("Authorization")
    if not auth_header:
        raise HTTPException(status_code=401, detail="Not authenticated")

    if not auth_header.startswith("Bearer "):
        raise HTTPException(status_code=401, detail="Invalid authorization header format")

    return principal_from_token(auth_header[7:])


def resolve_employee_or_raise(db: Session, principal: Principal) -> Employee:
    try:
        return IdentityResolver(db).resolve_employee(principal)
    except NotAuthenticated as exc:
        raise HTTPException(status_code=401, detail=str(exc)) from None
    except NoTenantAvailable as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from None


def get_current_employee(
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
) -> Employee:
    """Resolve the caller's employee record, provisioning it on first access."""
    return resolve_employee_or_raise(db, principal)


def get_user_permissions(
    employee: Employee = Depends(get_current_employee),
) -> UserPermissions:
    return derive_permissions(employee)
