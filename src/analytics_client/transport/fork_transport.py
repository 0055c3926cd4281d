"""Forking network transport.

Each delivery serializes the batch and hands it to an independent worker
that performs the POST. The parent returns as soon as the worker exists,
so a ``True`` outcome means "handed off", not "confirmed received". Worker
crashes and HTTP failures are logged but never surface to the caller.

Workers are pool threads by default. ``isolation="process"`` starts a child
process per batch instead; with the ``spawn`` start method the child
re-imports the caller's ``__main__``, so the calling script must guard its
entry point with ``if __name__ == "__main__":``.
"""

from __future__ import annotations

import json
import multiprocessing
import sys
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import wait as wait_futures
from dataclasses import asdict
from typing import Any, Dict, List, Optional, Sequence, Set

from loguru import logger

from ..config.settings import FORK_ISOLATION_MODES, ErrorHandler
from ..core.events import BaseEvent, EventBatch
from ..exceptions import ConfigurationError, DeliveryError, TransientDeliveryError
from ..sender import HTTPSender, SenderConfig
from .base import Transport


def post_body(sender_config: Dict[str, Any], body: bytes) -> bool:
    """Perform one POST with a fresh sender. Runs inside the worker."""
    sender = HTTPSender(SenderConfig(**sender_config))
    success, error_msg = sender.post(body)
    if not success:
        logger.warning(f"Forked delivery failed: {error_msg}")
    return success


def _run_child(sender_config: Dict[str, Any], body: bytes) -> None:
    sys.exit(0 if post_body(sender_config, body) else 1)


class ForkingHTTPTransport(Transport):
    """Hands every batch to a child process or worker thread and moves on."""

    name = "ForkHTTP"

    def __init__(
        self,
        sender_config: SenderConfig,
        isolation: str = "thread",
        start_method: str = "spawn",
        max_workers: int = 4,
        close_timeout_seconds: float = 5.0,
        error_handler: Optional[ErrorHandler] = None,
        name: Optional[str] = None,
    ):
        """Set up the worker pool.

        Args:
            sender_config: Collector settings passed to each worker
            isolation: ``"thread"`` for a pool task, ``"process"`` for a child process per batch
            start_method: multiprocessing start method for child processes
            max_workers: Thread pool size when isolation is ``"thread"``
            close_timeout_seconds: Upper bound on waiting for workers at close

        Raises:
            ConfigurationError: unknown isolation mode or start method
        """
        super().__init__(error_handler=error_handler, name=name)
        if isolation not in FORK_ISOLATION_MODES:
            raise ConfigurationError(f"Unknown fork isolation {isolation!r}, expected one of {', '.join(FORK_ISOLATION_MODES)}")

        self.sender_config = sender_config
        self.isolation = isolation
        self.close_timeout_seconds = close_timeout_seconds
        self._lock = threading.Lock()
        self._children: List[multiprocessing.process.BaseProcess] = []
        self._futures: Set[Future] = set()
        self._executor: Optional[ThreadPoolExecutor] = None
        self._context = None

        if isolation == "process":
            try:
                self._context = multiprocessing.get_context(start_method)
            except ValueError as e:
                raise ConfigurationError(f"Unsupported start method {start_method!r}: {e}") from e
        else:
            self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="analytics-fork")

        # Statistics
        self._total_handoffs = 0
        self._total_worker_failures = 0

    def deliver(self, events: Sequence[BaseEvent]) -> None:
        if self._closed:
            raise DeliveryError(f"{self.name} transport is closed")

        batch = EventBatch(events=list(events))
        body = json.dumps(batch.to_dict(), default=str).encode("utf-8")
        config = asdict(self.sender_config)

        self.reap()

        with self._lock:
            try:
                if self._context is not None:
                    child = self._context.Process(target=_run_child, args=(config, body), name=f"analytics-{batch.batch_id}")
                    child.start()
                    self._children.append(child)
                else:
                    self._futures.add(self._executor.submit(post_body, config, body))
            except (OSError, RuntimeError) as e:
                raise TransientDeliveryError(f"Could not start delivery worker: {e}") from e

            self._total_handoffs += 1

        logger.debug(f"Handed off batch {batch.batch_id} with {batch.size()} events")

    def reap(self) -> int:
        """Collect finished workers without blocking.

        Returns:
            Number of workers collected
        """
        reaped = 0
        with self._lock:
            for child in list(self._children):
                if child.is_alive():
                    continue
                child.join(0)
                if child.exitcode != 0:
                    self._total_worker_failures += 1
                    logger.warning(f"Delivery worker {child.name} exited with code {child.exitcode}")
                child.close()
                self._children.remove(child)
                reaped += 1

            for future in [f for f in self._futures if f.done()]:
                error = future.exception()
                if error is not None or not future.result():
                    self._total_worker_failures += 1
                    logger.warning(f"Delivery worker failed: {error or 'collector rejected request'}")
                self._futures.discard(future)
                reaped += 1

        return reaped

    def pending(self) -> int:
        """Number of workers not yet collected."""
        with self._lock:
            return len(self._children) + len(self._futures)

    def close(self) -> None:
        if self._closed:
            return
        super().close()

        deadline = time.monotonic() + self.close_timeout_seconds
        with self._lock:
            children = list(self._children)
            futures = set(self._futures)

        for child in children:
            child.join(max(0.0, deadline - time.monotonic()))

        if futures:
            wait_futures(futures, timeout=max(0.0, deadline - time.monotonic()))
        if self._executor is not None:
            self._executor.shutdown(wait=False)

        self.reap()
        if self.pending():
            logger.warning(f"{self.name}: {self.pending()} delivery workers still running at close")

    def get_stats(self) -> Dict[str, Any]:
        stats = super().get_stats()
        stats.update(
            isolation=self.isolation,
            total_handoffs=self._total_handoffs,
            total_worker_failures=self._total_worker_failures,
            pending_workers=self.pending(),
        )
        return stats
