import logging

from fastapi import Depends, FastAPI
from sqlalchemy.orm import Session

from bookingbot.api.admin import router as admin_router
from bookingbot.api.client import router as client_router
from bookingbot.api.errors import booking_error_handler
from bookingbot.core.config import settings
from bookingbot.db.deps import get_db
from bookingbot.services.errors import BookingError

logger = logging.getLogger(__name__)

app = FastAPI(title="Slot Booking Bot")

app.add_exception_handler(BookingError, booking_error_handler)

# Background scheduler threads (only when SCHEDULERS_ENABLED)
_scheduler_threads: list = []


def validate_production_settings() -> list[str]:
    """Return the list of production configuration problems (empty when fine)."""
    production_errors = []
    if not settings.admin_api_key:
        production_errors.append(
            "ADMIN_API_KEY is required in production. "
            "Set ADMIN_API_KEY environment variable with a strong random key."
        )
    if not settings.telegram_bot_token:
        production_errors.append(
            "TELEGRAM_BOT_TOKEN is required in production. "
            "Set TELEGRAM_BOT_TOKEN environment variable with your bot token."
        )
    if settings.telegram_dry_run:
        production_errors.append(
            "TELEGRAM_DRY_RUN must be False in production. "
            "Set TELEGRAM_DRY_RUN=false so notifications are actually delivered."
        )
    return production_errors


@app.on_event("startup")
def startup_event():
    """Run startup checks and start the schedulers."""
    if settings.app_env == "production":
        production_errors = validate_production_settings()
        if production_errors:
            error_message = (
                "Production environment validation failed:\n\n"
                + "\n".join(f"  - {error}" for error in production_errors)
                + "\n\n"
                "The application cannot start in production with these missing or invalid settings."
            )
            logger.error(error_message)
            raise RuntimeError(error_message)

    logger.info(
        "Startup: Configuration loaded - "
        f"Environment: {settings.app_env}, "
        f"Timezone: {settings.timezone}, "
        f"Deferred status: {settings.deferred_status}, "
        f"Staff: {len(settings.staff_id_set)}, "
        f"Telegram dry-run: {settings.telegram_dry_run}"
    )

    if settings.schedulers_enabled:
        from bookingbot.jobs.scheduler import SchedulerThread
        from bookingbot.services.promotion_scheduler import run_promotion_tick
        from bookingbot.services.reminders import run_reminder_tick

        for tick, name in ((run_promotion_tick, "promotion"), (run_reminder_tick, "reminders")):
            thread = SchedulerThread(tick, name)
            thread.start()
            _scheduler_threads.append(thread)
        logger.info(f"Startup: {len(_scheduler_threads)} scheduler threads started")


@app.on_event("shutdown")
def shutdown_event():
    while _scheduler_threads:
        _scheduler_threads.pop().stop()


@app.get("/health")
def health():
    """
    Health check endpoint with feature flag visibility.

    Returns 200 immediately - used for basic health checks.
    """
    return {
        "ok": True,
        "features": {
            "promotion_enabled": settings.feature_promotion_enabled,
            "reminders_enabled": settings.feature_reminders_enabled,
            "notifications_enabled": settings.feature_notifications_enabled,
        },
        "schedulers": {
            "enabled": settings.schedulers_enabled,
            "running": [t.name for t in _scheduler_threads if t.is_alive()],
        },
    }


@app.get("/ready")
def ready(db: Session = Depends(get_db)):
    """
    Readiness check endpoint - verifies database connectivity.

    Returns 200 if database is accessible, 503 if not.
    """
    from sqlalchemy import text

    try:
        db.execute(text("SELECT 1"))
        return {"ok": True, "database": "connected"}
    except Exception as e:
        logger.error(f"Readiness check failed: {e}")
        from fastapi import status
        from fastapi.responses import JSONResponse

        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={"ok": False, "database": "disconnected", "error": str(e)},
        )


app.include_router(admin_router, prefix="/admin", tags=["admin"])
app.include_router(client_router, tags=["client"])
