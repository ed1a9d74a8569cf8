"""
Persistence outbox.

Store writes that failed with CollaboratorUnavailable are queued here and
retried with exponential backoff (base * factor ** attempt, capped) on a
background thread. In-memory state stays authoritative while a write waits.

Writes are keyed by label: each label holds at most one pending write, and a
newer write replaces the queued one. Owners call discard(label) once a newer
snapshot reaches the store directly. A write may carry a guard (the owner's
lock); the retry runs under it, so a replay never lands after a newer save.

Usage:
    outbox = PersistenceOutbox(base_delay=0.5, max_delay=30, max_attempts=8)
    outbox.start()
    outbox.enqueue("save_skill:123", lambda: store.save_skill(skill))
    ...
    outbox.stop()
"""

from __future__ import annotations

import threading
import time
from collections.abc import Callable
from contextlib import AbstractContextManager, nullcontext
from dataclasses import dataclass

from loguru import logger

from focusloop.core.errors import CollaboratorUnavailable

Guard = Callable[[], AbstractContextManager]


@dataclass
class PendingWrite:
    label: str
    write: Callable[[], None]
    guard: Guard | None = None
    attempts: int = 0
    next_attempt_at: float = 0.0


class PersistenceOutbox:
    def __init__(
        self,
        base_delay: float = 0.5,
        factor: float = 2.0,
        max_delay: float = 30.0,
        max_attempts: int = 8,
        poll_interval: float = 0.25,
        monotonic: Callable[[], float] = time.monotonic,
    ):
        self.base_delay = base_delay
        self.factor = factor
        self.max_delay = max_delay
        self.max_attempts = max_attempts
        self.poll_interval = poll_interval
        self._monotonic = monotonic
        self._lock = threading.Lock()
        self._pending: dict[str, PendingWrite] = {}
        self._dead_letters: list[PendingWrite] = []
        self._thread: threading.Thread | None = None
        self._stop_event = threading.Event()

    def delay_for(self, attempt: int) -> float:
        """Backoff before retry number `attempt` (0-based)."""
        return min(self.max_delay, self.base_delay * self.factor**attempt)

    def enqueue(self, label: str, write: Callable[[], None], guard: Guard | None = None) -> None:
        """Queue a failed write, replacing any write still queued under the same label."""
        pending = PendingWrite(
            label=label,
            write=write,
            guard=guard,
            next_attempt_at=self._monotonic() + self.delay_for(0),
        )
        with self._lock:
            replaced = self._pending.pop(label, None)
            self._pending[label] = pending
        if replaced is not None:
            logger.debug(f"Deferred write {label} superseded by a newer snapshot")
        else:
            logger.info(f"Queued deferred write {label}")

    def discard(self, label: str) -> bool:
        """Drop the queued write for a label. Returns True if one was pending."""
        with self._lock:
            removed = self._pending.pop(label, None)
        if removed is not None:
            logger.debug(f"Dropped deferred write {label}: a newer write reached the store")
        return removed is not None

    @property
    def pending_count(self) -> int:
        with self._lock:
            return len(self._pending)

    @property
    def pending_labels(self) -> list[str]:
        with self._lock:
            return list(self._pending)

    @property
    def dead_letters(self) -> list[str]:
        with self._lock:
            return [p.label for p in self._dead_letters]

    def retry_due(self, force: bool = False) -> int:
        """
        Attempt every write whose backoff has elapsed.

        Args:
            force: Ignore backoff and attempt every pending write

        Returns:
            Number of writes that succeeded
        """
        now = self._monotonic()
        with self._lock:
            due = [p for p in self._pending.values() if force or p.next_attempt_at <= now]

        succeeded = 0
        for pending in due:
            with pending.guard() if pending.guard else nullcontext():
                if not self._is_current(pending):
                    continue
                try:
                    pending.write()
                except CollaboratorUnavailable as e:
                    self._record_failure(pending, e)
                    continue
                with self._lock:
                    if self._pending.get(pending.label) is pending:
                        del self._pending[pending.label]

            succeeded += 1
            logger.info(f"Deferred write {pending.label} succeeded")

        return succeeded

    def _is_current(self, pending: PendingWrite) -> bool:
        with self._lock:
            return self._pending.get(pending.label) is pending

    def _record_failure(self, pending: PendingWrite, error: CollaboratorUnavailable) -> None:
        pending.attempts += 1
        if pending.attempts >= self.max_attempts:
            logger.error(
                f"Giving up on write {pending.label} after {pending.attempts} attempts: {error}"
            )
            with self._lock:
                if self._pending.get(pending.label) is pending:
                    del self._pending[pending.label]
                self._dead_letters.append(pending)
            return

        pending.next_attempt_at = self._monotonic() + self.delay_for(pending.attempts)
        logger.debug(
            "Write {} failed (attempt {}), next retry in {:.1f}s",
            pending.label,
            pending.attempts,
            self.delay_for(pending.attempts),
        )

    # =========================================================================
    # Background worker
    # =========================================================================

    def start(self) -> None:
        if self._thread and self._thread.is_alive():
            return
        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._run,
            name="focusloop-persistence-outbox",
            daemon=True,
        )
        self._thread.start()
        logger.debug("Persistence outbox worker started")

    def stop(self, flush: bool = True) -> None:
        self._stop_event.set()
        if self._thread and self._thread.is_alive():
            self._thread.join(timeout=5.0)
        self._thread = None
        if flush and self.pending_count:
            self.retry_due(force=True)

    def _run(self) -> None:
        while not self._stop_event.is_set():
            try:
                self.retry_due()
            except Exception as exc:  # Keep the worker alive; individual writes own their errors
                logger.exception(f"Persistence outbox pass failed: {exc}")
            self._stop_event.wait(self.poll_interval)
