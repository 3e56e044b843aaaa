"""
Reminder worker - periodic reminder sweeps.

Runs booking.reminders.sweep() every REMINDER_SWEEP_INTERVAL_MINUTES on a
single event loop. The interval must be shorter than the narrowest reminder
window (3h +/- 1h, i.e. 2 hours) or bookings could slip through a window
between two sweeps.

Architecture:
    - One asyncio loop, checks once a minute whether a sweep is due
    - Sweep failures are logged and the loop keeps running
    - Writes a JSON health check file after every sweep
    - Graceful shutdown on SIGTERM/SIGINT
"""

import asyncio
import json
import logging
import signal
import time
from datetime import datetime
from pathlib import Path
from typing import Any

from booking.reminders import REMINDER_WINDOWS, SweepResult, sweep
from booking.schedule import load_schedule_config
from database.store import SqlAlchemyStore
from shared.config import get_settings
from shared.errors import ConfigError
from shared.logging_config import configure_logging
from shared.whatsapp_client import get_whatsapp_client

logger = logging.getLogger(__name__)

HEALTH_FILE_NAME = "reminder_worker_health.json"

# Polling granularity of the main loop
TICK_SECONDS = 60

# Global flag for graceful shutdown
shutdown_requested = False


def signal_handler(signum: int, frame: Any) -> None:
    """
    Handle SIGTERM/SIGINT for graceful shutdown.
    """
    global shutdown_requested
    logger.info(f"Received signal {signum}, initiating graceful shutdown...")
    shutdown_requested = True


def validate_sweep_interval(interval_minutes: int) -> None:
    """
    Check that sweeps run often enough to hit every reminder window.

    Raises:
        ConfigError: If the interval is not positive or not shorter than the
            narrowest window width
    """
    narrowest_minutes = min(w.tolerance * 2 for w in REMINDER_WINDOWS) * 60
    if interval_minutes <= 0 or interval_minutes >= narrowest_minutes:
        raise ConfigError(
            f"REMINDER_SWEEP_INTERVAL_MINUTES must be between 1 and "
            f"{narrowest_minutes - 1}, got {interval_minutes}"
        )


# =============================================================================
# Health Check
# =============================================================================

def update_health_check(
    last_run: datetime,
    status: str,
    result: SweepResult | None = None,
    health_dir: str | None = None,
) -> None:
    """
    Write the health check file.

    Args:
        last_run: Timestamp of sweep completion
        status: Health status ('healthy' or 'unhealthy')
        result: Counters of the last sweep
        health_dir: Directory for the file (default: HEALTH_CHECK_DIR)
    """
    directory = Path(health_dir or get_settings().HEALTH_CHECK_DIR)
    health_file = directory / HEALTH_FILE_NAME
    temp_file = directory / f"reminder_worker_health.{int(time.time())}.tmp"

    health_data = {
        "last_run": last_run.isoformat(),
        "status": status,
        "last_sweep": result.to_dict() if result else None,
    }

    try:
        directory.mkdir(parents=True, exist_ok=True)
        temp_file.write_text(json.dumps(health_data, indent=2))
        temp_file.rename(health_file)
        logger.debug(f"Health check file updated: {health_file}")
    except OSError as e:
        logger.error(f"Failed to write health check file: {e}", exc_info=True)


# =============================================================================
# Sweep job
# =============================================================================

async def run_sweep(store: SqlAlchemyStore | None = None) -> SweepResult:
    """Load the schedule and run one sweep against the database."""
    store = store or SqlAlchemyStore()
    config = await load_schedule_config(store)
    now = datetime.now(config.tz)

    started = time.monotonic()
    result = await sweep(store, get_whatsapp_client(), config, now)
    logger.info(
        f"Completed reminder sweep in {time.monotonic() - started:.2f}s: {result.to_dict()}"
    )
    return result


# =============================================================================
# Main Entry Point
# =============================================================================

async def async_main() -> None:
    """
    Main async entry point - runs sweeps on a fixed interval using a single event loop.

    Handles graceful shutdown on SIGTERM/SIGINT.
    """
    global shutdown_requested

    settings = get_settings()
    interval_minutes = settings.REMINDER_SWEEP_INTERVAL_MINUTES
    validate_sweep_interval(interval_minutes)

    logger.info(
        f"Reminder worker starting: interval={interval_minutes}min, "
        f"concurrency={settings.REMINDER_SWEEP_CONCURRENCY}, TIMEZONE={settings.TIMEZONE}"
    )

    update_health_check(last_run=datetime.now().astimezone(), status="healthy")

    store = SqlAlchemyStore()
    last_run: float | None = None

    while not shutdown_requested:
        if last_run is None or time.monotonic() - last_run >= interval_minutes * 60:
            try:
                result = await run_sweep(store)
                status = "healthy" if result.errors == 0 else "unhealthy"
                update_health_check(datetime.now().astimezone(), status, result)
            except Exception as e:
                logger.error(f"Error in reminder sweep: {e}", exc_info=True)
                update_health_check(datetime.now().astimezone(), "unhealthy")
            last_run = time.monotonic()

        await asyncio.sleep(TICK_SECONDS)

    logger.info("Reminder worker shutting down gracefully...")


def run_reminder_worker() -> None:
    """
    Synchronous entry point that sets up logging and signal handlers,
    then runs the async main function.
    """
    configure_logging()

    signal.signal(signal.SIGTERM, signal_handler)
    signal.signal(signal.SIGINT, signal_handler)

    asyncio.run(async_main())


if __name__ == "__main__":
    run_reminder_worker()
