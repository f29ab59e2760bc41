"""
Booking request status constants - centralized to avoid circular imports.
"""

# Live statuses
STATUS_PENDING = "pending"  # Waiting for staff approval
STATUS_APPROVED = "approved"  # Slot claimed, reminders scheduled
STATUS_MOVE_PENDING = "move_pending"  # Staff proposed another slot, subject must confirm

# Deferred statuses (a later slot was chosen while an earlier one was open)
STATUS_CONDITIONAL = "conditional"
STATUS_RESERVED_LATER = "reserved_later"

# Terminal statuses
STATUS_REJECTED = "rejected"
STATUS_COMPLETED = "completed"
STATUS_NO_SHOW = "no_show"

DEFERRED_STATUSES = (STATUS_CONDITIONAL, STATUS_RESERVED_LATER)
TERMINAL_STATUSES = (STATUS_REJECTED, STATUS_COMPLETED, STATUS_NO_SHOW)
ACTIVE_STATUSES = (STATUS_PENDING, STATUS_APPROVED, STATUS_MOVE_PENDING) + DEFERRED_STATUSES

ALL_STATUSES = (
    STATUS_PENDING,
    STATUS_CONDITIONAL,
    STATUS_RESERVED_LATER,
    STATUS_APPROVED,
    STATUS_MOVE_PENDING,
    STATUS_REJECTED,
    STATUS_COMPLETED,
    STATUS_NO_SHOW,
)

# History outcome labels
OUTCOME_COMPLETED = "Completed"
OUTCOME_NO_SHOW = "No-show"
