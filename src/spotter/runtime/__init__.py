"""
Concurrency primitives: cancellation tokens and producer-backed streams.
"""

from .cancellation import CancellationToken, check_cancelled, to_thread_settled
from .stream import TaskStream

__all__ = ["CancellationToken", "check_cancelled", "to_thread_settled", "TaskStream"]
