"""
Telegram messaging service with dry-run mode for development.
"""

import logging
import os

from bookingbot.core.config import settings
from bookingbot.services.integrations.http_client import create_httpx_client

logger = logging.getLogger(__name__)

TELEGRAM_API_BASE = "https://api.telegram.org"


def send_telegram_message(
    chat_id: int | str,
    text: str,
    dry_run: bool = True,
) -> dict:
    """
    Send a Telegram message through the Bot API.

    Args:
        chat_id: Telegram user or chat id
        text: Message text to send
        dry_run: If True, only log the message (don't actually send)

    Returns:
        dict with status and message_id (or None in dry-run)

    Raises:
        ValueError: If real sending is requested without a bot token
        httpx.HTTPError / RuntimeError: If the API call fails
    """
    # Policy guard: Check for missing credentials
    if not dry_run and not settings.telegram_bot_token:
        logger.error("Telegram bot token missing - cannot send message")
        raise ValueError("Telegram bot token not configured. Cannot send message.")

    # Force dry-run in tests
    if os.environ.get("PYTEST_CURRENT_TEST"):
        dry_run = True

    if dry_run:
        logger.info(f"[DRY-RUN] Would send Telegram message to {chat_id}: {text}")
        return {
            "status": "dry_run",
            "message_id": None,
            "chat_id": chat_id,
            "text": text,
        }

    url = f"{TELEGRAM_API_BASE}/bot{settings.telegram_bot_token}/sendMessage"
    payload = {
        "chat_id": chat_id,
        "text": text,
        "disable_web_page_preview": True,
    }

    try:
        with create_httpx_client() as client:
            response = client.post(url, json=payload)
            response.raise_for_status()
            data = response.json()
    except Exception as e:
        logger.error(f"Failed to send Telegram message to {chat_id}: {e}")
        raise

    if not data.get("ok", False):
        raise RuntimeError(f"Telegram API error: {data}")

    return {
        "status": "sent",
        "message_id": data.get("result", {}).get("message_id"),
        "chat_id": chat_id,
    }


def format_request_line(request) -> str:
    """One-line description of a request for staff messages."""
    who = f"@{request.subject_handle}" if request.subject_handle else (request.subject_name or "Client")
    return f"{who} - {request.slot_label or '-'} - {request.procedure_name or '-'}"
