"""
Calculation History

Audit records are written after a calculation succeeds. Writing is
fire-and-forget: a slow or failing sink never delays or fails the caller.
"""

import logging
import threading
import time
from abc import ABC, abstractmethod
from collections import deque
from concurrent.futures import Future, ThreadPoolExecutor

from .models import CalculationHistory

logger = logging.getLogger(__name__)

DEFAULT_MAX_RECORDS = 1000


class HistorySink(ABC):
    """Destination for calculation history records."""

    @abstractmethod
    def record(self, history: CalculationHistory) -> None:
        """Persist one record."""


class InMemoryHistorySink(HistorySink):
    """Bounded in-memory history, newest last. The oldest records are evicted first."""

    def __init__(self, max_records: int = DEFAULT_MAX_RECORDS):
        if max_records < 1:
            raise ValueError(f"max_records must be at least 1, got: {max_records}")
        self._lock = threading.Lock()
        self._records: deque[CalculationHistory] = deque(maxlen=max_records)

    def record(self, history: CalculationHistory) -> None:
        with self._lock:
            self._records.append(history)

    def list_records(
        self,
        template_id: str | None = None,
        user_id: str | None = None,
        limit: int = 50,
    ) -> list[CalculationHistory]:
        """Most recent records first, optionally filtered by template and user."""
        with self._lock:
            records = list(self._records)
        if template_id is not None:
            records = [r for r in records if r.template_id == template_id]
        if user_id is not None:
            records = [r for r in records if r.user_id == user_id]
        return list(reversed(records))[:limit]


class HistoryRecorder:
    """
    Hands history records to a sink without blocking the response path.

    In background mode writes run on a small fixed pool of worker threads.
    At most ``max_pending`` writes may be queued or running; further records
    are dropped with a warning. A write that has not started before its
    deadline is skipped. Synchronous mode is meant for tests and batch tools;
    failures are still only logged.
    """

    def __init__(
        self,
        sink: HistorySink,
        background: bool = True,
        max_workers: int = 2,
        max_pending: int = 100,
        timeout: float | None = 30.0,
    ):
        self.sink = sink
        self.background = background
        self.timeout = timeout
        self._slots = threading.BoundedSemaphore(max_pending)
        self._executor = (
            ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="history")
            if background else None
        )

    def submit(self, history: CalculationHistory, timeout: float | None = None) -> Future | None:
        """
        Queue one record.

        Args:
            history: Record to write
            timeout: Seconds the write may wait to start; defaults to the recorder's timeout

        Returns:
            The pending write, or None when written synchronously or dropped
        """
        timeout = timeout if timeout is not None else self.timeout
        if not self.background:
            self._write(history, None)
            return None

        if not self._slots.acquire(blocking=False):
            logger.warning(
                "History queue full; dropping record for template %s", history.template_id
            )
            return None

        deadline = time.monotonic() + timeout if timeout is not None else None
        return self._executor.submit(self._write_and_release, history, deadline)

    def shutdown(self, wait: bool = True) -> None:
        if self._executor is not None:
            self._executor.shutdown(wait=wait)

    def _write_and_release(self, history: CalculationHistory, deadline: float | None) -> None:
        try:
            self._write(history, deadline)
        finally:
            self._slots.release()

    def _write(self, history: CalculationHistory, deadline: float | None) -> None:
        if deadline is not None and time.monotonic() > deadline:
            logger.warning(
                "History write for template %s missed its deadline and was skipped", history.template_id
            )
            return
        try:
            self.sink.record(history)
        except Exception as e:
            # History is best-effort; the calculation has already succeeded
            logger.error(
                f"Failed to record calculation history for template {history.template_id}: {str(e)}",
                exc_info=True,
            )
