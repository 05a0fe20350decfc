"""
Poller Service - Scheduled reconciliation.

Runs an async loop that reconciles every record kind on a fixed interval,
as the correctness backstop for missed webhooks and notifications.
"""

import asyncio
import logging
import signal
from datetime import datetime
from typing import Optional

from .config import config
from .models import RecordKind

logger = logging.getLogger(__name__)


class Poller:
    """Async scheduler for periodic reconciliation."""

    def __init__(self, engine, interval: Optional[int] = None, limit: Optional[int] = None):
        self.engine = engine
        self.running = False
        self.interval = interval or config.RECONCILE_INTERVAL
        self.limit = limit or config.RECONCILE_DAILY_LIMIT

        # Stats
        self._runs = 0
        self._created = 0
        self._updated = 0
        self._errors = 0
        self._last_run: Optional[datetime] = None

    def _setup_signal_handlers(self):
        """Setup graceful shutdown handlers."""
        def shutdown_handler(signum, frame):
            logger.info(f"Received signal {signum}, shutting down...")
            self.running = False

        signal.signal(signal.SIGTERM, shutdown_handler)
        signal.signal(signal.SIGINT, shutdown_handler)

    async def run_once(self):
        """Reconcile each kind once, without blocking the event loop."""
        loop = asyncio.get_running_loop()

        for kind in RecordKind:
            try:
                result = await loop.run_in_executor(None, self.engine.reconcile, kind, self.limit)
                self._created += len(result.created)
                self._updated += len(result.updated)
                self._errors += len(result.failed)
            except Exception as e:
                self._errors += 1
                logger.error(f"{kind.value} reconcile error: {e}")

        self._runs += 1
        self._last_run = datetime.now()

    async def reconcile_loop(self):
        while self.running:
            await self.run_once()

            # Sleep in short steps so shutdown is not held up by a long interval
            remaining = self.interval
            while self.running and remaining > 0:
                step = min(1, remaining)
                await asyncio.sleep(step)
                remaining -= step

    def get_status(self) -> dict:
        """Get current poller status."""
        return {
            'running': self.running,
            'config': {
                'interval': self.interval,
                'limit': self.limit,
            },
            'stats': {
                'runs': self._runs,
                'created': self._created,
                'updated': self._updated,
                'errors': self._errors,
            },
            'last_run': self._last_run.isoformat() if self._last_run else None,
        }

    async def run(self):
        """Start the reconciliation loop."""
        self.running = True
        self._setup_signal_handlers()

        logger.info("=" * 60)
        logger.info("Record Sync Poller Starting")
        logger.info("=" * 60)
        logger.info(f"  Reconcile interval: {self.interval}s")
        logger.info(f"  Records per kind: {self.limit}")
        logger.info("=" * 60)

        task = asyncio.create_task(self.reconcile_loop())

        try:
            while self.running:
                await asyncio.sleep(1)
        except asyncio.CancelledError:
            pass

        logger.info("Shutting down reconcile loop...")
        task.cancel()
        await asyncio.gather(task, return_exceptions=True)

        stats = self.get_status()['stats']
        logger.info("Poller stopped")
        logger.info(
            f"Final stats: {stats['runs']} runs, {stats['created']} created, "
            f"{stats['updated']} updated, {stats['errors']} errors"
        )

    def start(self):
        """Start the poller (blocking)."""
        asyncio.run(self.run())
