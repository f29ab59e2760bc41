"""
Notification capability used by the booking core: "notify subject" and "notify staff".

The core only ever needs to send text to an identity. Tests swap in their own Notifier.
"""

import logging

from bookingbot.core.config import settings
from bookingbot.services.messaging import send_telegram_message

logger = logging.getLogger(__name__)


class Notifier:
    """Base notifier; subclasses deliver text to a subject or to all staff."""

    def notify_subject(self, subject_id: int, text: str) -> None:
        raise NotImplementedError

    def notify_staff(self, text: str) -> None:
        raise NotImplementedError


class TelegramNotifier(Notifier):
    def __init__(self, staff_ids: set[int] | None = None, dry_run: bool | None = None):
        self.staff_ids = staff_ids if staff_ids is not None else settings.staff_id_set
        self.dry_run = settings.telegram_dry_run if dry_run is None else dry_run

    def notify_subject(self, subject_id: int, text: str) -> None:
        """
        Send to one subject. Raises on failure so callers that gate on delivery
        (reminders) can leave their flag unset and retry.
        """
        if not settings.feature_notifications_enabled:
            logger.debug(f"Notifications disabled (feature flag) - not sending to {subject_id}")
            return
        send_telegram_message(subject_id, text, dry_run=self.dry_run)

    def notify_staff(self, text: str) -> None:
        """Best-effort broadcast: one failing staff chat does not stop the others."""
        if not settings.feature_notifications_enabled:
            logger.debug("Notifications disabled (feature flag) - not notifying staff")
            return
        for staff_id in sorted(self.staff_ids):
            try:
                send_telegram_message(staff_id, text, dry_run=self.dry_run)
            except Exception as e:
                logger.warning(f"Failed to notify staff {staff_id} ({type(e).__name__}: {e})")


_default_notifier: Notifier | None = None


def get_notifier() -> Notifier:
    global _default_notifier
    if _default_notifier is None:
        _default_notifier = TelegramNotifier()
    return _default_notifier


def set_notifier(notifier: Notifier | None) -> None:
    """Replace the process-wide notifier (None resets to Telegram)."""
    global _default_notifier
    _default_notifier = notifier
