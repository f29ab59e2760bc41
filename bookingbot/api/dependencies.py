"""FastAPI dependencies for API routes."""

from fastapi import Depends, HTTPException
from sqlalchemy.orm import Session

from bookingbot.db.deps import get_db
from bookingbot.db.models import BookingRequest
from bookingbot.services import request_ledger
from bookingbot.services.notifier import Notifier, get_notifier
from bookingbot.services.session_context import SessionStore, get_session_store


def get_request_or_404(request_id: str, db: Session = Depends(get_db)) -> BookingRequest:
    """
    Resolve a booking request by path parameter request_id; raise 404 if not found.
    """
    request = request_ledger.get_request(db, request_id)
    if not request:
        raise HTTPException(status_code=404, detail="Request not found")
    return request


def get_app_notifier() -> Notifier:
    return get_notifier()


def get_sessions() -> SessionStore:
    return get_session_store()
