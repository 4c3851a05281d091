"""Session tokens, the access guard and the ownership policy."""

from datetime import datetime, timedelta, timezone
from typing import Annotated, Any

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt

from .config import Settings, get_settings
from .errors import ForbiddenError, UnauthorizedError
from .logging_config import log_auth_event

# Make bearer optional to allow cookie-first auth
security = HTTPBearer(auto_error=False)

# Registered JWT claims; never copied from the caller's identity payload.
# An aud or iss claim would make decode reject every token we issue.
_RESERVED_CLAIMS = ("exp", "iat", "nbf", "sub", "aud", "iss", "jti")


def create_access_token(
    identity: dict[str, Any],
    settings: Settings,
    expires_delta: timedelta | None = None,
) -> str:
    """Create a signed session token for an identity payload.

    The payload must carry an ``email``; any other fields ride along as
    claims so handlers can read them back from ``SessionIdentity.claims``.
    """
    email = identity.get("email")
    if not email:
        raise ValueError("identity payload must include an email")

    now = datetime.now(timezone.utc)
    if expires_delta is not None:
        expire = now + expires_delta
    else:
        expire = now + timedelta(minutes=settings.jwt_expire_minutes)

    to_encode = {k: v for k, v in identity.items() if k not in _RESERVED_CLAIMS}
    to_encode.update({"sub": email, "exp": expire, "iat": now})
    return jwt.encode(to_encode, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def decode_token(token: str, settings: Settings) -> dict:
    """Decode and validate a session token (signature and expiry)."""
    try:
        return jwt.decode(
            token,
            settings.jwt_secret_key,
            algorithms=[settings.jwt_algorithm],
        )
    except JWTError as e:
        raise UnauthorizedError() from e


class SessionIdentity:
    """Identity decoded from a session token."""

    def __init__(self, email: str, claims: dict | None = None):
        self.email = email
        self.claims = claims or {}

    @property
    def name(self) -> str | None:
        name = self.claims.get("name")
        return name if isinstance(name, str) else None

    def __repr__(self) -> str:
        return f"SessionIdentity(email={self.email!r})"


def verify_session(token: str | None, settings: Settings) -> SessionIdentity:
    """Turn a raw token into an identity, or raise ``UnauthorizedError``."""
    if not token:
        raise UnauthorizedError()
    payload = decode_token(token, settings)
    email = payload.get("email") or payload.get("sub")
    if not email:
        raise UnauthorizedError()
    return SessionIdentity(email=email, claims=payload)


async def get_current_user(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(security)],
    settings: Annotated[Settings, Depends(get_settings)],
    request: Request,
) -> SessionIdentity:
    """Access guard: resolve the session from the cookie or bearer header.

    Raises before the route handler runs, so a rejected request never
    reaches the store.
    """
    token = request.cookies.get(settings.cookie_name)
    if not token and credentials:
        token = credentials.credentials

    try:
        return verify_session(token, settings)
    except UnauthorizedError:
        log_auth_event(
            "guard",
            None,
            False,
            f"{request.method} {request.url.path} | token={'present' if token else 'missing'}",
        )
        raise


# Type alias for dependency injection
CurrentUser = Annotated[SessionIdentity, Depends(get_current_user)]


def require_same_email(identity: SessionIdentity, email: str) -> None:
    """Owner-scoped reads addressed by email: caller must be that email."""
    if identity.email != email:
        raise UnauthorizedError()


def require_owner(identity: SessionIdentity, owner_email: str | None) -> None:
    """Mutations on an existing resource: caller must own it."""
    if not owner_email or identity.email != owner_email:
        raise ForbiddenError()
