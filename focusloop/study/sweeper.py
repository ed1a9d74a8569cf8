"""
Stale session sweeper.

Cancels planning/active focus sessions that ran past their target duration
plus a grace period. Runs in a background thread while the service is up.

Usage:
    sweeper = SessionSweeper(orchestrator, interval_seconds=60, grace_seconds=600)
    sweeper.start()
    # ... service runs ...
    sweeper.stop()
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from datetime import datetime

from loguru import logger

from focusloop.core.clock import Clock
from focusloop.core.errors import NotFound, StateConflict
from focusloop.study.session_orchestrator import SessionOrchestrator

TIMEOUT_REASON = "timeout"


@dataclass
class SweepStatus:
    is_running: bool = False
    last_sweep_at: datetime | None = None
    last_cancelled: list[str] = field(default_factory=list)
    total_cancelled: int = 0


@dataclass
class SessionSweeper:
    orchestrator: SessionOrchestrator
    interval_seconds: float = 60.0
    grace_seconds: float = 600.0
    clock: Clock | None = None

    _status: SweepStatus = field(default_factory=SweepStatus)
    _thread: threading.Thread | None = field(default=None, repr=False)
    _stop_event: threading.Event = field(default_factory=threading.Event, repr=False)

    @property
    def status(self) -> SweepStatus:
        return self._status

    def sweep_once(self, now: datetime | None = None) -> list[str]:
        """
        Cancel every open session past target duration + grace.

        Returns:
            Ids of the sessions cancelled by this pass
        """
        clock = self.clock or self.orchestrator.clock
        now = now or clock.now()
        cancelled = []

        for session_id in self.orchestrator.open_session_ids():
            # Same lock as loop operations, so a sweep never interleaves with one
            with self.orchestrator.session_lock(session_id):
                try:
                    session = self.orchestrator.get_session(session_id)
                except NotFound:
                    continue
                if session.status.is_terminal:
                    continue

                elapsed = self.orchestrator.elapsed_seconds(session_id, now)
                if elapsed <= session.target_duration_seconds + self.grace_seconds:
                    continue

                try:
                    self.orchestrator.cancel(session_id, TIMEOUT_REASON)
                except StateConflict:
                    continue
                cancelled.append(session_id)
                logger.info(f"Swept stale session {session_id} after {elapsed:.0f}s")

        self._status.last_sweep_at = now
        self._status.last_cancelled = cancelled
        self._status.total_cancelled += len(cancelled)
        return cancelled

    def start(self) -> None:
        if self._status.is_running:
            logger.warning("Session sweeper already running")
            return

        self._stop_event.clear()
        self._status.is_running = True
        self._thread = threading.Thread(
            target=self._sweep_loop,
            name="focusloop-session-sweeper",
            daemon=True,
        )
        self._thread.start()
        logger.info(
            "Session sweeper started (interval: {}s, grace: {}s)",
            self.interval_seconds,
            self.grace_seconds,
        )

    def stop(self) -> None:
        if not self._status.is_running:
            return

        self._stop_event.set()
        if self._thread and self._thread.is_alive():
            self._thread.join(timeout=5.0)
        self._status.is_running = False
        logger.info("Session sweeper stopped")

    def _sweep_loop(self) -> None:
        while not self._stop_event.wait(self.interval_seconds):
            try:
                self.sweep_once()
            except Exception as exc:  # Keep sweeping; one bad pass must not stop the thread
                logger.exception(f"Session sweep failed: {exc}")
