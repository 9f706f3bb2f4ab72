"""Bearer token authentication shared by the HTTP API and the realtime hub.

Tokens are HS256 JWTs signed with ``settings.JWT_SECRET`` carrying the
principal id in ``sub`` and its role in ``role``. ``decode_access_token`` is
the stateless gate; the FastAPI dependencies below wrap it for routes.
"""

import enum
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Annotated

import jwt
from fastapi import Depends, HTTPException, Security, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from sgmi.core.config import settings


class UserRole(str, enum.Enum):
    OPERATOR = "OPERATOR"
    MANAGER = "MANAGER"
    DIRECTOR = "DIRECTOR"


class InvalidCredential(Exception):
    """Raised when a token is missing, malformed, expired or badly signed."""


@dataclass(frozen=True)
class Principal:
    """Authenticated identity attached to a request or a connection."""

    subject: str
    role: UserRole
    expires_at: datetime | None = None

    def is_expired(self, now: datetime | None = None) -> bool:
        if self.expires_at is None:
            return False
        return (now or datetime.now(timezone.utc)) >= self.expires_at


def decode_access_token(
    token: str | None,
    secret: str,
    algorithm: str = "HS256",
) -> Principal:
    """Verify ``token`` and return the principal it names.

    Raises:
        InvalidCredential: for a missing token, a bad signature, an expired
            token, or claims without a subject or with an unknown role.
    """
    if not token:
        raise InvalidCredential("Missing token")
    if not secret:
        raise InvalidCredential("Token secret is not configured")

    try:
        payload = jwt.decode(token, secret, algorithms=[algorithm])
    except jwt.ExpiredSignatureError as exc:
        raise InvalidCredential("Token has expired") from exc
    except jwt.InvalidTokenError as exc:
        raise InvalidCredential("Invalid token") from exc

    subject = payload.get("sub")
    if not subject:
        raise InvalidCredential("Token has no subject")

    try:
        role = UserRole(payload.get("role"))
    except ValueError as exc:
        raise InvalidCredential(f"Unknown role: {payload.get('role')!r}") from exc

    expires_at = None
    if "exp" in payload:
        expires_at = datetime.fromtimestamp(payload["exp"], tz=timezone.utc)

    return Principal(subject=str(subject), role=role, expires_at=expires_at)


def create_access_token(
    subject: str,
    role: UserRole,
    secret: str | None = None,
    expires_in: timedelta | None = None,
    algorithm: str | None = None,
) -> str:
    """Sign an access token. Used by seeding and tests; login lives elsewhere."""
    now = datetime.now(timezone.utc)
    if expires_in is None:
        expires_in = timedelta(minutes=settings.JWT_ACCESS_EXPIRE_MINUTES)
    payload = {
        "sub": subject,
        "role": UserRole(role).value,
        "iat": now,
        "exp": now + expires_in,
    }
    return jwt.encode(
        payload,
        secret or settings.JWT_SECRET,
        algorithm=algorithm or settings.JWT_ALGORITHM,
    )


_bearer = HTTPBearer(auto_error=False)


async def get_current_principal(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Security(_bearer)] = None,
) -> Principal:
    """Resolve the request principal from the ``Authorization: Bearer`` header.

    Raises HTTP 401 when the header is absent or the token does not verify.
    """
    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authorization token is required",
            headers={"WWW-Authenticate": "Bearer"},
        )
    try:
        return decode_access_token(
            credentials.credentials, settings.JWT_SECRET, settings.JWT_ALGORITHM
        )
    except InvalidCredential as exc:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"},
        ) from exc


CurrentPrincipal = Annotated[Principal, Depends(get_current_principal)]


def require_roles(*roles: UserRole):
    """Dependency factory rejecting principals whose role is not in ``roles``."""

    async def role_checker(principal: CurrentPrincipal) -> Principal:
        if principal.role not in roles:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="You do not have permission to access this resource",
            )
        return principal

    return role_checker


BATCH_OPERATOR_ROLES = (UserRole.OPERATOR, UserRole.MANAGER, UserRole.DIRECTOR)
DIRECTOR_ROLES = (UserRole.DIRECTOR, UserRole.MANAGER)

RequireBatchOperator = Depends(require_roles(*BATCH_OPERATOR_ROLES))
RequirePlanner = Depends(require_roles(*DIRECTOR_ROLES))
