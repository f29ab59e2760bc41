"""
Admin authentication dependencies.

The same key protects the admin routes and the client write routes: both are called
by the chat layer, never directly by end users.
"""
from fastapi import Header, HTTPException, Security
from fastapi.security import APIKeyHeader

from bookingbot.core.config import settings

# API Key header name
API_KEY_HEADER = "X-Admin-API-Key"
STAFF_ID_HEADER = "X-Staff-Id"

# Security scheme
api_key_header = APIKeyHeader(name=API_KEY_HEADER, auto_error=False)


def get_admin_auth(api_key: str | None = Security(api_key_header)) -> bool:
    """
    Verify admin API key from header.

    Raises:
        HTTPException: If API key is missing or invalid
        RuntimeError: If in production without admin_api_key configured
    """
    if settings.app_env == "production" and not settings.admin_api_key:
        raise RuntimeError(
            "ADMIN_API_KEY must be set in production environment. "
            "Set ADMIN_API_KEY environment variable or set APP_ENV=dev for development."
        )

    # If no admin_api_key is configured, allow access (dev mode only)
    if not settings.admin_api_key:
        return True

    if not api_key:
        raise HTTPException(status_code=401, detail="Missing API key. Provide X-Admin-API-Key header.")

    if api_key != settings.admin_api_key:
        raise HTTPException(status_code=403, detail="Invalid API key.")

    return True


def get_staff_actor(x_staff_id: int | None = Header(default=None, alias=STAFF_ID_HEADER)) -> int | None:
    """
    Staff member acting through the chat layer, if the caller says who it is.

    The id is checked against STAFF_IDS by the booking operations themselves.
    """
    return x_staff_id


def require_staff_actor(x_staff_id: int | None = Header(default=None, alias=STAFF_ID_HEADER)) -> int:
    """Like get_staff_actor, for routes that are keyed by the staff member (session context)."""
    if x_staff_id is None:
        raise HTTPException(status_code=400, detail=f"Missing {STAFF_ID_HEADER} header.")
    if x_staff_id not in settings.staff_id_set:
        raise HTTPException(status_code=403, detail="Not a staff member.")
    return x_staff_id
