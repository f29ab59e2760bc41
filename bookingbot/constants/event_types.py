"""
Event type constants for SystemEvent.

Use these instead of string literals to ensure consistency.
"""

# ---- Promotion scheduler ----
EVENT_PROMOTION_FAILURE = "promotion.failure"
EVENT_PROMOTION_REJECTED_SLOT_GONE = "promotion.rejected_slot_gone"

# ---- Reminders ----
EVENT_REMINDER_SEND_FAILURE = "reminder.send_failure"


def reminder_event_type(kind: str) -> str:
    """e.g. reminder.evening, reminder.final"""
    return f"reminder.{kind}"
