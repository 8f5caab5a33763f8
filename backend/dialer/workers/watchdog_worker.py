"""
Watchdog Worker
Background worker that times out calls whose completion webhook never arrived

Run as separate process:
    python -m dialer.workers.watchdog_worker
"""
import asyncio
import logging
import os
import signal
import time
from typing import Optional

from dotenv import load_dotenv
from supabase import create_client

from dialer.core.config import ConfigManager, get_settings
from dialer.domain.services.call_dispatcher import CallDispatcher
from dialer.domain.services.deadline_tracker import CallDeadlineTracker
from dialer.domain.services.queue_runner import QueueRunner
from dialer.infrastructure.storage.supabase_agent_directory import SupabaseAgentDirectory
from dialer.infrastructure.storage.supabase_call_log_store import SupabaseCallLogStore
from dialer.infrastructure.storage.supabase_job_store import SupabaseJobStore
from dialer.infrastructure.voice.elevenlabs_gateway import ElevenLabsGateway

load_dotenv()

logger = logging.getLogger(__name__)

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)


class WatchdogWorker:
    """
    Expires in-flight calls past their deadline.

    Responsibilities:
    - Pop due deadlines from Redis
    - Record a timeout for the job's current lead and dial the next one

    Runs as a separate process from FastAPI and shares its Supabase and
    Redis instances.
    """

    DEFAULT_POLL_INTERVAL = 15.0
    MAX_CONSECUTIVE_ERRORS = 10

    def __init__(
        self,
        runner: Optional[QueueRunner] = None,
        deadlines: Optional[CallDeadlineTracker] = None,
        poll_interval: Optional[float] = None
    ):
        self.config = ConfigManager()
        self.runner = runner
        self.deadlines = deadlines
        self.poll_interval = poll_interval or self.config.get(
            "queue.watchdog.poll_interval_seconds", self.DEFAULT_POLL_INTERVAL
        )

        self.running = False
        self._gateway: Optional[ElevenLabsGateway] = None

        # Stats
        self._calls_expired = 0
        self._errors = 0

    async def initialize(self) -> None:
        """Build the queue runner on top of Supabase, Redis and ElevenLabs."""
        logger.info("Initializing Watchdog Worker...")

        if self.deadlines is None:
            redis_url = os.getenv("REDIS_URL", "redis://localhost:6379")
            self.deadlines = CallDeadlineTracker(redis_url=redis_url)
        await self.deadlines.initialize()

        if self.runner is None:
            settings = get_settings()
            if not settings.supabase_url or not settings.supabase_service_key:
                raise RuntimeError("SUPABASE_URL and SUPABASE_SERVICE_KEY must be set")

            supabase = create_client(settings.supabase_url, settings.supabase_service_key)
            self._gateway = ElevenLabsGateway(
                api_key=settings.elevenlabs_api_key,
                base_url=settings.elevenlabs_base_url,
            )
            dispatcher = CallDispatcher(
                gateway=self._gateway,
                agents=SupabaseAgentDirectory(supabase),
                max_attempts=self.config.get("queue.dispatch_retry.max_attempts", 3),
                backoff_seconds=self.config.get("queue.dispatch_retry.backoff_seconds", 0.5),
                test_mode=settings.test_mode,
                test_phone_number=settings.test_phone_number,
            )
            self.runner = QueueRunner(
                store=SupabaseJobStore(supabase),
                dispatcher=dispatcher,
                deadlines=self.deadlines,
                call_timeout_seconds=self.config.get("queue.call_timeout_seconds", 900),
                max_leads_per_job=self.config.get("queue.max_leads_per_job", 500),
                call_logs=SupabaseCallLogStore(supabase),
            )

        logger.info("Watchdog Worker initialized successfully")

    async def run(self) -> None:
        """
        Main worker loop.

        Sweeps due deadlines every poll interval. Backs off after
        MAX_CONSECUTIVE_ERRORS failed sweeps in a row.
        """
        await self.initialize()

        self.running = True
        consecutive_errors = 0

        logger.info(f"Watchdog Worker started - polling every {self.poll_interval}s")

        while self.running:
            try:
                await self.sweep()
                consecutive_errors = 0
                await asyncio.sleep(self.poll_interval)

            except asyncio.CancelledError:
                logger.info("Worker cancelled")
                break

            except Exception as e:
                consecutive_errors += 1
                self._errors += 1
                logger.error(f"Watchdog loop error: {e}", exc_info=True)

                if consecutive_errors >= self.MAX_CONSECUTIVE_ERRORS:
                    logger.critical("Too many consecutive errors, backing off...")
                    await asyncio.sleep(30)
                    consecutive_errors = 0
                else:
                    await asyncio.sleep(self.poll_interval)

    async def sweep(self, now: Optional[float] = None) -> int:
        """
        Expire every call past its deadline. Returns how many jobs advanced.

        A call whose expiry fails is put back and retried on the next sweep.
        """
        now = now if now is not None else time.time()
        due = await self.deadlines.pop_due(now)
        expired = 0

        for job_id, conversation_id in due:
            try:
                if await self.runner.expire(job_id, conversation_id):
                    expired += 1
            except Exception as e:
                # One broken job must not block the rest of the sweep
                self._errors += 1
                logger.error(f"Failed to expire call {conversation_id} of job {job_id}: {e}", exc_info=True)
                await self._retry_later(job_id, conversation_id, now + self.poll_interval)

        if expired:
            self._calls_expired += expired
            logger.info(f"Expired {expired} timed out call(s)")

        return expired

    async def _retry_later(self, job_id: str, conversation_id: str, deadline: float) -> None:
        try:
            await self.deadlines.reschedule(job_id, conversation_id, deadline)
        except Exception as e:
            logger.error(f"Lost deadline for call {conversation_id} of job {job_id}: {e}")

    async def shutdown(self) -> None:
        """Graceful shutdown."""
        logger.info("Shutting down Watchdog Worker...")
        self.running = False

        if self._gateway:
            await self._gateway.close()
        if self.deadlines:
            await self.deadlines.close()

        logger.info(
            f"Watchdog Worker shutdown complete. "
            f"Expired: {self._calls_expired}, Errors: {self._errors}"
        )

    def get_stats(self) -> dict:
        """Get worker statistics."""
        return {
            "running": self.running,
            "calls_expired": self._calls_expired,
            "errors": self._errors,
            "poll_interval": self.poll_interval,
        }


async def main():
    """Entry point for running the watchdog as a separate process."""
    worker = WatchdogWorker()

    loop = asyncio.get_event_loop()

    def signal_handler():
        logger.info("Received shutdown signal")
        worker.running = False

    for sig in (signal.SIGTERM, signal.SIGINT):
        try:
            loop.add_signal_handler(sig, signal_handler)
        except NotImplementedError:
            # Windows doesn't support add_signal_handler
            pass

    try:
        await worker.run()
    except KeyboardInterrupt:
        logger.info("Worker interrupted by user")
    finally:
        await worker.shutdown()


if __name__ == "__main__":
    asyncio.run(main())
