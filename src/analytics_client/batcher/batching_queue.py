"""Batching queue that buffers events in front of a transport.

Callers enqueue without ever touching I/O. A background thread flushes the
buffer when it reaches ``batch_size`` or when ``flush_interval_seconds``
have passed since the last flush, whichever comes first. Each batch is
retried with exponential backoff and dropped once attempts run out.
"""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any, Callable, Dict, List, Optional

from loguru import logger

from ..config.settings import ErrorHandler
from ..core.events import BaseEvent
from ..exceptions import DeliveryError, QueueOverflowError, report_error

if TYPE_CHECKING:
    from ..transport.base import Transport


@dataclass
class BatcherConfig:
    """Configuration for a batching queue."""

    batch_size: int = 100  # Flush threshold and maximum events per delivery
    max_queue_size: int = 10000  # Newest events are dropped beyond this
    flush_interval_seconds: float = 10.0  # Maximum time between flushes
    max_attempts: int = 3  # Total delivery attempts per batch
    retry_backoff_base: float = 0.5  # Delay after the first failed attempt
    retry_backoff_max: float = 10.0  # Cap on the backoff delay
    close_timeout_seconds: float = 5.0  # How long close() waits for the flush thread

    def backoff_delay(self, attempt: int) -> float:
        """Delay to wait after failed attempt number ``attempt`` (1-based)."""
        return min(self.retry_backoff_base * (2 ** (attempt - 1)), self.retry_backoff_max)


class QueueState(str, Enum):
    IDLE = "idle"
    BUFFERING = "buffering"
    FLUSHING = "flushing"
    CLOSED = "closed"


class BatchingQueue:
    """Buffers events for one transport and flushes them in the background."""

    def __init__(
        self,
        transport: "Transport",
        config: Optional[BatcherConfig] = None,
        error_handler: Optional[ErrorHandler] = None,
        autostart: bool = True,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """Initialize the queue.

        Args:
            transport: Transport that receives flushed batches
            config: Batching and retry configuration
            error_handler: Error channel for overflow and exhausted batches
            autostart: Start the background flush thread immediately
            sleep: Used for backoff between attempts
        """
        self.transport = transport
        self.name = transport.name
        self.config = config or BatcherConfig()
        self._error_handler = error_handler
        self._sleep = sleep

        self._buffer: List[BaseEvent] = []
        self._lock = threading.Lock()
        self._wakeup = threading.Condition(self._lock)
        self._flush_lock = threading.Lock()
        self._state = QueueState.IDLE
        self._closed = False
        self._flush_thread: Optional[threading.Thread] = None
        self._last_flush = time.monotonic()

        # Statistics
        self._total_enqueued = 0
        self._total_dropped = 0
        self._total_batches_sent = 0
        self._total_batches_failed = 0
        self._total_events_sent = 0
        self._total_retries = 0

        if autostart:
            self.start()

    @property
    def state(self) -> QueueState:
        return self._state

    @property
    def closed(self) -> bool:
        return self._closed

    def start(self) -> None:
        """Start the background flush thread."""
        with self._lock:
            if self._closed:
                logger.warning(f"{self.name} queue is closed, not starting")
                return

            if self._flush_thread is not None and self._flush_thread.is_alive():
                logger.warning(f"{self.name} queue is already running")
                return

            self._flush_thread = threading.Thread(target=self._flush_loop, name=f"analytics-{self.name}-flush", daemon=True)
            self._flush_thread.start()
        logger.debug(f"Started {self.name} flush thread")

    def enqueue(self, event: BaseEvent) -> bool:
        """Add an event to the buffer.

        Returns:
            True if buffered, False if the queue is closed or full
        """
        with self._lock:
            if self._closed:
                logger.warning(f"{self.name} queue is closed, dropping {event.action.value} event")
                return False

            if len(self._buffer) < self.config.max_queue_size:
                self._buffer.append(event)
                self._total_enqueued += 1
                if self._state is QueueState.IDLE:
                    self._state = QueueState.BUFFERING
                if len(self._buffer) >= self.config.batch_size:
                    self._wakeup.notify()
                return True

            self._total_dropped += 1

        logger.warning(f"{self.name} queue full, dropping {event.action.value} event")
        report_error(QueueOverflowError(f"{self.name} queue full ({self.config.max_queue_size} events)"), self._error_handler, self.name)
        return False

    def submit(self, event: BaseEvent) -> bool:
        return self.enqueue(event)

    def size(self) -> int:
        """Return the number of buffered events."""
        with self._lock:
            return len(self._buffer)

    def flush(self) -> bool:
        """Deliver everything buffered so far, in enqueue order.

        Returns:
            True if every batch was delivered
        """
        with self._flush_lock:
            return self._flush_locked()

    def _flush_locked(self) -> bool:
        """Swap out the buffer and deliver it. Caller holds the flush lock."""
        with self._lock:
            events, self._buffer = self._buffer, []
            self._last_flush = time.monotonic()
            if not events:
                if self._state is not QueueState.CLOSED:
                    self._state = QueueState.IDLE
                return True
            self._state = QueueState.FLUSHING

        logger.debug(f"Flushing {len(events)} events to {self.name}")

        success = True
        for start in range(0, len(events), self.config.batch_size):
            if not self._send_with_retries(events[start : start + self.config.batch_size]):
                success = False

        with self._lock:
            if self._state is not QueueState.CLOSED:
                self._state = QueueState.BUFFERING if self._buffer else QueueState.IDLE

        return success

    def close(self) -> None:
        """Stop the flush thread, drain the buffer and close the transport.

        Waiting on the flush thread and on an in-progress flush shares one
        ``close_timeout_seconds`` deadline. Events still buffered when it
        passes are dropped and reported.
        """
        with self._lock:
            if self._closed:
                return
            self._closed = True
            self._wakeup.notify_all()

        deadline = time.monotonic() + self.config.close_timeout_seconds
        if self._flush_thread is not None:
            self._flush_thread.join(timeout=self.config.close_timeout_seconds)

        if self._flush_lock.acquire(timeout=max(0.0, deadline - time.monotonic())):
            try:
                self._flush_locked()
            finally:
                self._flush_lock.release()
        else:
            self._abandon_buffer()

        self.transport.close()

        with self._lock:
            self._state = QueueState.CLOSED

        logger.info(
            f"Closed {self.name} queue. Stats - Enqueued: {self._total_enqueued}, Sent: {self._total_events_sent}, "
            f"Batches failed: {self._total_batches_failed}, Dropped: {self._total_dropped}"
        )

    def get_stats(self) -> Dict[str, Any]:
        """Get queue statistics."""
        with self._lock:
            return {
                "name": self.name,
                "state": self._state.value,
                "current_size": len(self._buffer),
                "max_queue_size": self.config.max_queue_size,
                "total_enqueued": self._total_enqueued,
                "total_dropped": self._total_dropped,
                "total_batches_sent": self._total_batches_sent,
                "total_batches_failed": self._total_batches_failed,
                "total_events_sent": self._total_events_sent,
                "total_retries": self._total_retries,
                "utilization": len(self._buffer) / self.config.max_queue_size,
            }

    def _flush_loop(self) -> None:
        """Wait for a size or time trigger, then flush."""
        logger.debug(f"Started {self.name} flush loop")

        while True:
            with self._lock:
                while not self._closed and len(self._buffer) < self.config.batch_size:
                    remaining = self.config.flush_interval_seconds - (time.monotonic() - self._last_flush)
                    if remaining <= 0:
                        break
                    self._wakeup.wait(remaining)

                if self._closed:
                    break

            try:
                self.flush()
            except Exception as e:
                logger.error(f"Error in {self.name} flush loop: {e}")

        logger.debug(f"{self.name} flush loop finished")

    def _abandon_buffer(self) -> None:
        with self._lock:
            events, self._buffer = self._buffer, []
            self._total_dropped += len(events)

        logger.error(f"{self.name} flush still running after {self.config.close_timeout_seconds}s, dropping {len(events)} buffered events")
        if events:
            report_error(DeliveryError(f"{self.name} queue closed with {len(events)} undelivered events"), self._error_handler, self.name)

    def _send_with_retries(self, events: List[BaseEvent]) -> bool:
        """Deliver one batch, retrying transient failures with backoff."""
        last_error: Optional[Exception] = None
        attempt = 0

        for attempt in range(1, self.config.max_attempts + 1):
            try:
                self.transport.deliver(events)
                self._total_batches_sent += 1
                self._total_events_sent += len(events)
                return True
            except DeliveryError as e:
                last_error = e
                if not e.retryable:
                    break
            except Exception as e:
                logger.exception(f"{self.name} transport raised unexpectedly")
                last_error = DeliveryError(f"Unexpected transport error: {e}")
                break

            if attempt < self.config.max_attempts:
                delay = self.config.backoff_delay(attempt)
                self._total_retries += 1
                logger.warning(f"{self.name} send attempt {attempt} failed: {last_error}. Retrying in {delay:.1f}s...")
                self._sleep(delay)

        self._total_batches_failed += 1
        logger.error(f"Dropping batch of {len(events)} events for {self.name} after {attempt} attempts: {last_error}")
        report_error(last_error, self._error_handler, self.name)
        return False
