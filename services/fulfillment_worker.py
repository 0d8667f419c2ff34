"""
Background fulfillment worker.

Moves the blocking poll loop off the request path:

    approve (request thread)            worker thread
    ------------------------            -------------
    submit to supplier
    enqueue PollJob  ───────────────▶   poll supplier until delivered
    return "processing"                 publish FulfillmentCompleted / FulfillmentFailed
                                        listeners turn events into recorder calls

Jobs can be cancelled per order. Listener errors are logged and never stop
the worker thread.
"""

from __future__ import annotations

import logging
import queue
import threading
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Union

from domain.errors import FulfillmentError
from domain.transaction import GiftCardTransaction, RedemptionArtifact
from services.completion_poller import CompletionPoller

logger = logging.getLogger(__name__)


@dataclass
class PollJob:
    order_id: str
    transaction: GiftCardTransaction
    product_id: Optional[str] = None
    product_name: Optional[str] = None
    on_finished: Optional[Callable[[str], None]] = None
    cancel: threading.Event = field(default_factory=threading.Event)


@dataclass(frozen=True)
class FulfillmentCompleted:
    order_id: str
    transaction: GiftCardTransaction
    artifact: RedemptionArtifact
    product_name: Optional[str] = None


@dataclass(frozen=True)
class FulfillmentFailed:
    order_id: str
    transaction: GiftCardTransaction
    error: FulfillmentError


FulfillmentEvent = Union[FulfillmentCompleted, FulfillmentFailed]
EventListener = Callable[[FulfillmentEvent], None]

_STOP = object()


class FulfillmentWorker:
    def __init__(self, poller: CompletionPoller, workers: int = 2) -> None:
        if workers < 1:
            raise ValueError("workers must be >= 1")
        self._poller = poller
        self._worker_count = workers
        self._queue: "queue.Queue[object]" = queue.Queue()
        self._listeners: List[EventListener] = []
        self._jobs: Dict[str, PollJob] = {}
        self._lock = threading.Lock()
        self._threads: List[threading.Thread] = []

    def subscribe(self, listener: EventListener) -> None:
        with self._lock:
            self._listeners.append(listener)

    @property
    def running(self) -> bool:
        return any(t.is_alive() for t in self._threads)

    def start(self) -> None:
        if self.running:
            return
        self._threads = [
            threading.Thread(target=self._run, name=f"fulfillment-worker-{i}", daemon=True)
            for i in range(self._worker_count)
        ]
        for thread in self._threads:
            thread.start()
        logger.info("Fulfillment worker started", extra={"workers": self._worker_count})

    def stop(self, timeout: Optional[float] = None) -> None:
        """Cancel outstanding jobs and stop all threads."""

        with self._lock:
            for job in self._jobs.values():
                job.cancel.set()
        for _ in self._threads:
            self._queue.put(_STOP)
        for thread in self._threads:
            thread.join(timeout)
        self._threads = []

    def enqueue(self, job: PollJob) -> None:
        with self._lock:
            self._jobs[job.order_id] = job
        self._queue.put(job)
        logger.info(
            "Queued gift card poll job",
            extra={"order_id": job.order_id, "transaction_id": job.transaction.external_id},
        )

    def cancel(self, order_id: str) -> bool:
        """Cancel the queued or running job for an order. False if none exists."""

        with self._lock:
            job = self._jobs.get(order_id)
        if job is None:
            return False
        job.cancel.set()
        return True

    def join(self) -> None:
        """Block until every queued job has been processed."""

        self._queue.join()

    def _publish(self, event: FulfillmentEvent) -> None:
        with self._lock:
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener(event)
            except Exception:
                logger.exception(
                    "Fulfillment event listener failed",
                    extra={"order_id": event.order_id, "event": type(event).__name__},
                )

    def _process(self, job: PollJob) -> None:
        try:
            artifact = self._poller.poll(
                job.transaction.external_id,
                product_id=job.product_id,
                cancel=job.cancel,
            )
        except FulfillmentError as exc:
            logger.warning(
                "Background gift card polling failed",
                extra={"order_id": job.order_id, "code": exc.code, "error": exc.message},
            )
            self._publish(FulfillmentFailed(order_id=job.order_id, transaction=job.transaction, error=exc))
            return

        self._publish(
            FulfillmentCompleted(
                order_id=job.order_id,
                transaction=job.transaction,
                artifact=artifact,
                product_name=job.product_name,
            )
        )

    def _run(self) -> None:
        while True:
            item = self._queue.get()
            try:
                if item is _STOP:
                    return
                assert isinstance(item, PollJob)
                try:
                    self._process(item)
                except Exception:
                    logger.exception("Unexpected error in fulfillment worker", extra={"order_id": item.order_id})
                finally:
                    with self._lock:
                        if self._jobs.get(item.order_id) is item:
                            del self._jobs[item.order_id]
                    if item.on_finished is not None:
                        item.on_finished(item.order_id)
            finally:
                self._queue.task_done()


__all__ = [
    "PollJob",
    "FulfillmentCompleted",
    "FulfillmentFailed",
    "FulfillmentEvent",
    "FulfillmentWorker",
]
