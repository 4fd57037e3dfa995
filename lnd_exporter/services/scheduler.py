"""Fixed-interval, single-flight polling scheduler."""

import logging
from datetime import datetime
from typing import Optional

from apscheduler.events import EVENT_JOB_MAX_INSTANCES, JobSubmissionEvent
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from ..collectors.base import BaseCollector
from ..utils.errors import CredentialsRejectedError
from ..utils.metrics import Snapshot
from .registry import MetricRegistry


JOB_ID = "collection_pass"


class PollScheduler:
    """
    Drive collection passes and publish their snapshots.

    At most one pass runs at a time: a tick that arrives while a pass is in
    flight is skipped, not queued.
    """

    def __init__(
        self,
        collector: BaseCollector,
        registry: MetricRegistry,
        poll_interval: float,
        logger: logging.Logger
    ):
        """
        Initialize scheduler.

        Args:
            collector: Snapshot producer
            registry: Registry that receives each snapshot
            poll_interval: Seconds between ticks
            logger: Logger instance
        """
        self.collector = collector
        self.registry = registry
        self.poll_interval = poll_interval
        self.logger = logger.getChild("PollScheduler")

        self.scheduler: Optional[AsyncIOScheduler] = None
        self.skipped_ticks = 0
        self._generation = registry.generation
        self._in_flight = False

    @property
    def in_flight(self) -> bool:
        return self._in_flight

    async def run_pass(self) -> Optional[Snapshot]:
        """
        Run one pass and publish its snapshot.

        Returns:
            Snapshot: Published snapshot, or None if the tick was skipped or the
            node rejected the credentials
        """
        if self._in_flight:
            self._record_skip()
            return None

        self._in_flight = True
        try:
            snapshot = await self.collector.collect(generation=self._generation + 1)
        except CredentialsRejectedError as e:
            self.logger.error(
                f"Node rejected credentials, keeping generation {self._generation}: {e}"
            )
            return None
        finally:
            self._in_flight = False

        self.registry.publish(snapshot)
        self._generation = snapshot.generation
        return snapshot

    def start(self) -> None:
        """
        Schedule passes every ``poll_interval`` seconds, the first one immediately.

        Must be called from within the running event loop.
        """
        self.scheduler = AsyncIOScheduler()
        self.scheduler.add_job(
            self.run_pass,
            trigger=IntervalTrigger(seconds=self.poll_interval),
            id=JOB_ID,
            name="LND collection pass",
            max_instances=1,  # Prevent overlapping executions
            coalesce=True,
            next_run_time=datetime.now()
        )
        self.scheduler.add_listener(self._on_tick_skipped, EVENT_JOB_MAX_INSTANCES)
        self.scheduler.start()
        self.logger.info(f"Scheduler started, polling every {self.poll_interval}s")

    def _on_tick_skipped(self, event: JobSubmissionEvent) -> None:
        """Count a tick APScheduler dropped because the previous pass is still running."""
        if event.job_id != JOB_ID:
            return
        self._record_skip()

    def _record_skip(self) -> None:
        self.skipped_ticks += 1
        self.logger.warning(
            "Previous collection pass still running, skipping tick",
            extra={"skipped_ticks": self.skipped_ticks}
        )

    def shutdown(self) -> None:
        """Stop scheduling; an in-flight pass is abandoned, not awaited."""
        if self.scheduler and self.scheduler.running:
            self.scheduler.shutdown(wait=False)
            self.logger.info("Scheduler stopped")
