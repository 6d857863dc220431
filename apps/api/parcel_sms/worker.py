"""
Background worker for SMS dispatch.

Usage:
    python -m parcel_sms.worker

Polls for due notifications and sends them; periodically sweeps for
upcoming appointments that are missing a reminder. Several workers can run
side by side: records are claimed with conditional updates, so each one is
sent by exactly one worker.
"""

import asyncio
import logging
import time

from parcel_sms.core.config import settings
from parcel_sms.db.session import SessionLocal
from parcel_sms.services import dispatch_service, reminder_service
from parcel_sms.services.sms_provider import SmsTransport, get_transport
from parcel_sms.utils.wall_clock import SystemClock, WallClock

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger(__name__)

POLL_INTERVAL_SECONDS = settings.WORKER_POLL_INTERVAL_SECONDS
BATCH_SIZE = settings.WORKER_BATCH_SIZE
SWEEP_INTERVAL_SECONDS = settings.REMINDER_SWEEP_INTERVAL_SECONDS


def run_sweep(clock: WallClock) -> int:
    with SessionLocal() as db:
        return reminder_service.sweep_missing_reminders(db, clock=clock)


async def run_once(transport: SmsTransport, clock: WallClock) -> dispatch_service.DispatchSummary:
    return await dispatch_service.process_due_notifications(
        SessionLocal,
        transport,
        clock,
        batch_size=BATCH_SIZE,
        send_timeout=settings.SMS_SEND_TIMEOUT_SECONDS,
    )


async def worker_loop() -> None:
    """Main worker loop - polls for and dispatches due notifications."""
    # Raises SmsConfigurationError before the loop starts
    transport = get_transport()
    clock = SystemClock()
    logger.info(
        "Worker starting (poll interval: %ss, batch size: %s, test mode: %s)",
        POLL_INTERVAL_SECONDS,
        BATCH_SIZE,
        settings.sms_test_mode,
    )

    last_sweep = 0.0
    while True:
        try:
            if time.monotonic() - last_sweep >= SWEEP_INTERVAL_SECONDS:
                await asyncio.to_thread(run_sweep, clock)
                last_sweep = time.monotonic()

            summary = await run_once(transport, clock)
            if summary.claimed:
                logger.info("Processed %s notifications", summary.claimed)
        except Exception as e:
            logger.error("Error in worker loop: %s", type(e).__name__)

        await asyncio.sleep(POLL_INTERVAL_SECONDS)


def main() -> None:
    """Entry point for the worker."""
    try:
        asyncio.run(worker_loop())
    except KeyboardInterrupt:
        logger.info("Worker shutting down")
    except Exception:
        logger.exception("Worker crashed")
        raise


if __name__ == "__main__":
    main()
