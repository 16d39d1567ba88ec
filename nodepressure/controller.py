"""
Pressure control loop.

Each tick samples node pressure. While it is high, the loop takes a fresh
pod snapshot, selects the safest candidate and hands it to the evicter
(which enforces the backoff between evictions). High/low transitions also
taint and untaint the node.
"""

import threading
from datetime import datetime, timezone
from typing import Optional

from .config import Settings
from .evicter import EvictionResult, Evicter
from .kube import KubeAPIError, KubeClient
from .logger import get_logger
from .retry import RetryError
from .selection import select_candidate_for_eviction
from .tainter import NodeTainter
from .watcher import PressureEvent, PressureUnavailableError, PressureWatcher


class PressureController:
    def __init__(
        self,
        settings: Settings,
        watcher: PressureWatcher,
        client: KubeClient,
        evicter: Evicter,
        tainter: Optional[NodeTainter] = None,
    ):
        if not settings.node_name:
            raise ValueError("node_name is required to run the controller")
        self.settings = settings
        self.watcher = watcher
        self.client = client
        self.evicter = evicter
        self.tainter = tainter

    def tick(self, now: Optional[datetime] = None) -> Optional[EvictionResult]:
        """
        Run one poll cycle.

        Returns:
            The eviction result if an eviction was attempted, else None
        """
        now = now or datetime.now(timezone.utc)
        try:
            event = self.watcher.poll(now)
        except PressureUnavailableError as e:
            logger = get_logger()
            logger.record_error(type(e).__name__)
            logger.error("reading node pressure failed", node=self.settings.node_name, error=str(e))
            return None
        if event is not None:
            self._on_transition(event)

        if not self.watcher.is_currently_high:
            return None
        if not self.evicter.can_evict(now):
            return None
        return self._evict_one(now)

    def run(self, stop_event: threading.Event) -> None:
        """Tick every poll interval until stop_event is set."""
        logger = get_logger()
        interval = self.settings.poll_interval.total_seconds()
        logger.info(
            "watching node pressure",
            node=self.settings.node_name,
            resource=self.watcher.resource,
            threshold=self.watcher.threshold,
            interval_s=interval,
        )
        try:
            while not stop_event.is_set():
                try:
                    self.tick()
                except Exception as e:
                    logger.record_error(type(e).__name__)
                    logger.error("pressure tick failed", node=self.settings.node_name, error=str(e))
                stop_event.wait(interval)
        finally:
            logger.log_metrics_summary()

    def _on_transition(self, event: PressureEvent) -> None:
        if self.tainter is None:
            return
        try:
            if event.high:
                self.tainter.taint()
            else:
                self.tainter.untaint()
        except (KubeAPIError, RetryError) as e:
            logger = get_logger()
            logger.record_error(type(e).__name__)
            logger.error("updating node taint failed", node=self.settings.node_name, error=str(e))

    def _evict_one(self, now: datetime) -> Optional[EvictionResult]:
        logger = get_logger()
        try:
            pods = self.client.list_node_pods(self.settings.node_name)
        except (KubeAPIError, RetryError, ValueError) as e:
            logger.record_error(type(e).__name__)
            logger.error("listing pods failed", node=self.settings.node_name, error=str(e))
            return None

        candidate = select_candidate_for_eviction(pods, self.settings.min_pod_age, now=now)
        logger.record_selection(candidate is not None)
        if candidate is None:
            logger.warning("no eligible eviction candidate", node=self.settings.node_name, pods=len(pods))
            return None
        return self.evicter.evict(candidate, now=now)
