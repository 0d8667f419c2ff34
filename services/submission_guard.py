"""
Submission guard: at most one active supplier submission per order.

Acquired before the supplier is called and released on completion or
definitive failure. A second, concurrent approval of the same order fails
fast with SubmissionInProgressError instead of buying a second card.

The guard is in-process. Deployments running several API processes need the
same rule enforced by the database (a unique "active submission" row per
order id).
"""

from __future__ import annotations

import threading
from contextlib import contextmanager
from typing import Iterator, Set

from domain.errors import SubmissionInProgressError


class SubmissionGuard:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._active: Set[str] = set()

    def acquire(self, order_id: str) -> None:
        with self._lock:
            if order_id in self._active:
                raise SubmissionInProgressError(
                    f"A gift card submission for order {order_id} is already in progress",
                    details={"orderId": order_id},
                )
            self._active.add(order_id)

    def release(self, order_id: str) -> None:
        with self._lock:
            self._active.discard(order_id)

    def is_active(self, order_id: str) -> bool:
        with self._lock:
            return order_id in self._active

    @contextmanager
    def hold(self, order_id: str) -> Iterator[None]:
        self.acquire(order_id)
        try:
            yield
        finally:
            self.release(order_id)


__all__ = ["SubmissionGuard"]
