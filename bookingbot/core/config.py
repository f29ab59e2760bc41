from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from bookingbot.constants.statuses import STATUS_CONDITIONAL, STATUS_RESERVED_LATER


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore",
        validate_assignment=True,
    )

    app_env: str = "dev"
    database_url: str

    admin_api_key: str | None = (
        None  # Optional - if not set, admin endpoints are unprotected (dev mode)
    )
    staff_ids: str = ""  # Comma-separated Telegram user ids of staff members

    # Telegram (outbound notifications only)
    telegram_bot_token: str | None = None
    telegram_dry_run: bool = True  # Set to False in production to enable real sending

    # Local clock used for the evening reminder and slot labels
    timezone: str = "Europe/Moscow"

    # Status given to a request for a slot that is not the earliest open slot
    deferred_status: str = STATUS_CONDITIONAL

    # Promotion rules
    promotion_threshold_hours: int = 12  # conditional: time gate before slot start
    reserved_later_window_hours: int = 3  # reserved_later: promote unconditionally inside this window

    # Reminders
    reminder_evening_hour: int = 20  # Local hour on the day before the slot
    reminder_final_minutes: int = 60  # Minutes before slot start

    # Background schedulers
    scheduler_tick_seconds: int = 60
    schedulers_enabled: bool = False  # Start both loops in-process on app startup

    # Feature flags
    feature_promotion_enabled: bool = True
    feature_reminders_enabled: bool = True
    feature_notifications_enabled: bool = True

    # Per-actor interaction scratch state
    session_ttl_seconds: int = 900

    @field_validator("deferred_status")
    @classmethod
    def _check_deferred_status(cls, value: str) -> str:
        if value not in (STATUS_CONDITIONAL, STATUS_RESERVED_LATER):
            raise ValueError(
                f"deferred_status must be '{STATUS_CONDITIONAL}' or '{STATUS_RESERVED_LATER}'"
            )
        return value

    @property
    def staff_id_set(self) -> set[int]:
        """Parse STAFF_IDS into a set of ints, ignoring blanks and junk."""
        result: set[int] = set()
        for part in self.staff_ids.split(","):
            part = part.strip()
            if not part:
                continue
            try:
                result.add(int(part))
            except ValueError:
                continue
        return result


# Settings will load from environment variables or .env file
# Required fields will raise ValidationError if missing (fail-fast)
settings = Settings()
