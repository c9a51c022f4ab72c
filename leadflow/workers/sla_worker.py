"""
SLA Monitor Worker
Background worker that re-evaluates SLA breaches on a timer and on realtime changes.

Run as separate process:
    python -m leadflow.workers.sla_worker
"""
import asyncio
import logging
import os
import signal
from datetime import datetime
from typing import Optional, List

import pytz
from dotenv import load_dotenv

from leadflow.core.config import get_settings
from leadflow.core.logging_config import configure_logging
from leadflow.infrastructure.storage.record_store import (
    ChangeEvent,
    REALTIME_TABLES,
    SupabaseRecordStore,
)
from leadflow.services.engine import EngineServices, build_engine

# Load environment variables
load_dotenv()

logger = logging.getLogger(__name__)


class SlaMonitorWorker:
    """
    Background worker for SLA breach evaluation.

    Responsibilities:
    - Re-evaluate breaches every POLL_INTERVAL seconds
    - Re-evaluate early when leads, appointments or follow-up tasks change
    - Announce each (lead, breach type) once per worker session
    """

    # Worker configuration
    POLL_INTERVAL = 30.0  # Seconds between evaluations
    MAX_CONSECUTIVE_ERRORS = 10

    def __init__(
        self,
        tenant_id: Optional[str] = None,
        engine: Optional[EngineServices] = None,
        poll_interval: Optional[float] = None,
    ):
        self.tenant_id = tenant_id
        self.engine = engine
        self.poll_interval = poll_interval or self.POLL_INTERVAL
        self.running = False
        self._wake = asyncio.Event()
        self._unsubscribers: List = []

        # Stats
        self._evaluations = 0
        self._breaches_announced = 0
        self._failures = 0
        self._last_breach_count = 0

    async def initialize(self) -> None:
        """Build services and subscribe to realtime changes."""
        logger.info("Initializing SLA Monitor Worker...")

        if self.engine is None:
            self.engine = build_engine()
        if not self.tenant_id:
            raise RuntimeError("LEADFLOW_TENANT_ID must be set")

        for table in REALTIME_TABLES:
            self._unsubscribers.append(self.engine.store.on_change(table, self._on_change))

        store = self.engine.store
        if isinstance(store, SupabaseRecordStore):
            await self._start_realtime(store)

        logger.info(f"SLA Monitor Worker initialized for tenant {self.tenant_id}")

    async def _start_realtime(self, store: SupabaseRecordStore) -> None:
        settings = get_settings()
        try:
            from supabase import acreate_client
            async_client = await acreate_client(settings.supabase_url, settings.supabase_service_key)
            await store.start_realtime(async_client)
        except Exception as e:
            # Polling still covers every change, only later
            logger.warning(f"Realtime unavailable, polling only: {e}")

    def _on_change(self, event: ChangeEvent) -> None:
        tenant = (event.record or event.old_record).get("tenant_id")
        if tenant and tenant != self.tenant_id:
            return
        logger.debug(f"{event.event_type} on {event.table}; scheduling SLA evaluation")
        self._wake.set()

    async def run_once(self, now: Optional[datetime] = None) -> dict:
        """One evaluation cycle."""
        result = await self.engine.sla.evaluate(self.tenant_id, now=now or datetime.now(pytz.UTC))
        self._evaluations += 1
        if not result["success"]:
            self._failures += 1
            raise RuntimeError(result["error"])
        self._breaches_announced += len(result["new"])
        self._last_breach_count = len(result["breaches"])
        if result["new"]:
            logger.info(f"{len(result['new'])} new SLA breach(es), {len(result['breaches'])} active")
        return result

    async def _wait_for_next_cycle(self) -> None:
        try:
            await asyncio.wait_for(self._wake.wait(), timeout=self.poll_interval)
        except asyncio.TimeoutError:
            pass
        self._wake.clear()

    async def run(self) -> None:
        """
        Main worker loop.

        Continuously:
        1. Evaluate breaches for the tenant
        2. Sleep until the poll interval elapses or a change arrives
        """
        await self.initialize()

        self.running = True
        consecutive_errors = 0

        logger.info(f"SLA Monitor Worker started - evaluating every {self.poll_interval:.0f}s")

        while self.running:
            try:
                await self.run_once()
                consecutive_errors = 0
                await self._wait_for_next_cycle()

            except asyncio.CancelledError:
                logger.info("Worker received cancellation signal")
                break
            except Exception as e:
                consecutive_errors += 1
                logger.error(f"Worker error ({consecutive_errors}): {e}", exc_info=True)

                if consecutive_errors >= self.MAX_CONSECUTIVE_ERRORS:
                    logger.critical("Too many consecutive errors, stopping worker")
                    break

                await asyncio.sleep(min(5 * consecutive_errors, 60))

        await self.shutdown()

    async def shutdown(self) -> None:
        """Graceful shutdown."""
        if not self.running and not self._unsubscribers:
            return
        logger.info("Shutting down SLA Monitor Worker...")
        self.running = False
        self._wake.set()

        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers = []

        if self.engine and isinstance(self.engine.store, SupabaseRecordStore):
            await self.engine.store.stop_realtime()

        logger.info(
            f"SLA Monitor Worker shutdown complete. "
            f"Evaluations: {self._evaluations}, "
            f"Breaches announced: {self._breaches_announced}, "
            f"Failures: {self._failures}"
        )

    def get_stats(self) -> dict:
        """Get worker statistics."""
        return {
            "running": self.running,
            "evaluations": self._evaluations,
            "breaches_announced": self._breaches_announced,
            "active_breaches": self._last_breach_count,
            "failures": self._failures,
        }


async def main():
    """Entry point for running the SLA monitor as separate process."""
    settings = get_settings()
    configure_logging(settings.log_level)

    worker = SlaMonitorWorker(
        tenant_id=os.getenv("LEADFLOW_TENANT_ID"),
        poll_interval=settings.sla_poll_interval_seconds,
    )

    # Handle shutdown signals
    loop = asyncio.get_event_loop()

    def signal_handler():
        logger.info("Received shutdown signal")
        worker.running = False
        worker._wake.set()

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


def cli():
    """Console script entry point."""
    asyncio.run(main())


if __name__ == "__main__":
    cli()
