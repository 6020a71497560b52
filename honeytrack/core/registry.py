"""
In-memory registry of conversation trackers.

The registry owns every SessionTracker in the process. Lookup and creation
happen under a registry-level lock so two first messages for the same id
never create two trackers. A background task sweeps completed trackers
once their retention window has elapsed.
"""

import asyncio
import random
import threading
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, Any, List, Optional

from config.settings import EngagementSettings, RegistrySettings
from honeytrack.core.logging import get_logger
from honeytrack.core.metrics import MetricsCollector
from honeytrack.core.session_tracker import SessionTracker

logger = get_logger(__name__)

THRESHOLD_FLOOR = 65
THRESHOLD_CEILING = 85

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class TrackerRegistry:
    """Owns the per-session trackers for one process."""

    def __init__(
        self,
        engagement: EngagementSettings,
        registry_settings: RegistrySettings,
        clock: Optional[Clock] = None,
        rng: Optional[random.Random] = None,
    ):
        self.engagement = engagement
        self.settings = registry_settings
        self.clock = clock or utc_now
        self.rng = rng or random.Random()
        self._trackers: Dict[str, SessionTracker] = {}
        self._lock = threading.Lock()
        self._sweep_task: Optional[asyncio.Task] = None

    def compute_threshold(self) -> int:
        """Per-session completeness threshold: base +/- jitter, kept within [65, 85]."""
        base = self.engagement.completeness_threshold_base
        jitter = max(self.engagement.completeness_threshold_jitter, 0)
        value = self.rng.randint(base - jitter, base + jitter)
        return min(max(value, THRESHOLD_FLOOR), THRESHOLD_CEILING)

    def get_or_create(self, session_id: str) -> SessionTracker:
        """
        Get the tracker for a conversation, creating it on first reference.

        Args:
            session_id: Conversation identifier

        Returns:
            SessionTracker: Existing or newly created tracker
        """
        with self._lock:
            tracker = self._trackers.get(session_id)
            if tracker is not None:
                return tracker

            now = self.clock()
            tracker = SessionTracker(
                session_id=session_id,
                started_at=now,
                last_activity_at=now,
                completeness_threshold=self.compute_threshold(),
            )
            self._trackers[session_id] = tracker

        logger.info(
            "Created conversation tracker",
            extra={"session_id": session_id, "completeness_threshold": tracker.completeness_threshold},
        )
        self.update_metrics()
        return tracker

    def get(self, session_id: str) -> Optional[SessionTracker]:
        with self._lock:
            return self._trackers.get(session_id)

    def remove(self, session_id: str) -> bool:
        """Drop a tracker regardless of status. Returns False when unknown."""
        with self._lock:
            tracker = self._trackers.pop(session_id, None)

        if tracker is None:
            return False

        logger.info("Removed conversation tracker", extra={"session_id": session_id})
        self.update_metrics()
        return True

    def _snapshot(self) -> List[SessionTracker]:
        with self._lock:
            return list(self._trackers.values())

    def list_active(self) -> List[Dict[str, Any]]:
        """State snapshots of all active trackers."""
        now = self.clock()
        return [t.get_state(now) for t in self._snapshot() if t.is_active]

    def list_completed(self) -> List[Dict[str, Any]]:
        """Final reports of all completed trackers."""
        return [
            t.final_report.to_dict()
            for t in self._snapshot()
            if t.is_completed and t.final_report is not None
        ]

    def counts(self) -> Dict[str, int]:
        trackers = self._snapshot()
        active = sum(1 for t in trackers if t.is_active)
        return {"active": active, "completed": len(trackers) - active, "total": len(trackers)}

    def update_metrics(self) -> None:
        counts = self.counts()
        MetricsCollector.update_session_counts(counts["active"], counts["completed"])

    def __len__(self) -> int:
        with self._lock:
            return len(self._trackers)

    def sweep(self, now: Optional[datetime] = None) -> int:
        """
        Remove completed trackers started before the retention window.

        Active trackers are never removed, however old.

        Returns:
            int: Number of trackers removed
        """
        now = now or self.clock()
        cutoff = now - timedelta(seconds=self.settings.retention_window_seconds)

        expired = [
            t.session_id for t in self._snapshot()
            if t.is_completed and t.started_at < cutoff
        ]

        removed = 0
        with self._lock:
            for session_id in expired:
                tracker = self._trackers.get(session_id)
                # re-check under the lock; the id may have been removed or recreated
                if tracker is not None and tracker.is_completed and tracker.started_at < cutoff:
                    del self._trackers[session_id]
                    removed += 1

        MetricsCollector.record_sweep(removed)
        self.update_metrics()
        if removed > 0:
            logger.info(f"Swept {removed} completed conversation trackers", extra={"removed": removed})
        return removed

    async def start_sweep_task(self, interval_seconds: Optional[int] = None) -> None:
        """
        Start the background sweep loop.

        Args:
            interval_seconds: Sweep interval, defaults to the configured one
        """
        if self._sweep_task and not self._sweep_task.done():
            logger.warning("Sweep task already running")
            return

        interval = interval_seconds or self.settings.sweep_interval_seconds

        async def sweep_loop():
            while True:
                try:
                    await asyncio.sleep(interval)
                    self.sweep()
                except asyncio.CancelledError:
                    logger.info("Tracker sweep task cancelled")
                    break
                except Exception as e:
                    logger.error(f"Error in tracker sweep task: {e}", exc_info=True)

        self._sweep_task = asyncio.create_task(sweep_loop())
        logger.info(f"Started tracker sweep task with {interval} second interval")

    async def stop_sweep_task(self) -> None:
        """Stop the background sweep loop."""
        if self._sweep_task and not self._sweep_task.done():
            self._sweep_task.cancel()
            try:
                await self._sweep_task
            except asyncio.CancelledError:
                pass
            logger.info("Stopped tracker sweep task")
        self._sweep_task = None
