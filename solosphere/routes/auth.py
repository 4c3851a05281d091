"""Session routes: issue and clear the cookie-based JWT."""

from typing import Annotated

from fastapi import APIRouter, Depends, Request, Response

from ..auth import create_access_token
from ..config import Settings, get_settings
from ..logging_config import get_logger, log_auth_event
from ..models import SessionRequest, SuccessResponse
from ..rate_limit import limiter

logger = get_logger("solosphere.auth")
router = APIRouter(tags=["auth"])


# =============================================================================
# Cookie Helpers
# =============================================================================

def _cookie_flags(settings: Settings) -> dict:
    # Cross-site frontend in production needs SameSite=None, which requires Secure
    if settings.is_production:
        return {"secure": True, "samesite": "none"}
    return {"secure": False, "samesite": "strict"}


def set_session_cookie(response: Response, token: str, settings: Settings):
    """Set the httpOnly session cookie."""
    response.set_cookie(
        key=settings.cookie_name,
        value=token,
        max_age=settings.jwt_expire_minutes * 60,
        httponly=True,
        path="/",
        **_cookie_flags(settings),
    )


def clear_session_cookie(response: Response, settings: Settings):
    """Expire the session cookie immediately."""
    response.delete_cookie(
        key=settings.cookie_name,
        path="/",
        httponly=True,
        **_cookie_flags(settings),
    )


# =============================================================================
# Routes
# =============================================================================

@router.post("/jwt", response_model=SuccessResponse)
@limiter.limit("10/minute")
async def issue_session(
    request: Request,
    response: Response,
    identity: SessionRequest,
    settings: Annotated[Settings, Depends(get_settings)],
):
    """
    Issue a session for the given identity.

    The token is valid for one day and is only ever returned as an
    httpOnly cookie.
    """
    token = create_access_token(identity.model_dump(exclude_none=True), settings)
    set_session_cookie(response, token, settings)
    log_auth_event("issue", identity.email, True)
    return SuccessResponse()


@router.get("/logout", response_model=SuccessResponse)
@limiter.limit("30/minute")
async def logout(
    request: Request,
    response: Response,
    settings: Annotated[Settings, Depends(get_settings)],
):
    """Clear the session cookie."""
    clear_session_cookie(response, settings)
    log_auth_event("logout", None, True)
    return SuccessResponse()
