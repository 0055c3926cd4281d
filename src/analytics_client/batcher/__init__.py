"""Event batching module for buffered delivery."""

from .batching_queue import BatcherConfig, BatchingQueue, QueueState

__all__ = ["BatchingQueue", "BatcherConfig", "QueueState"]
