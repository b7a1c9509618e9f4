# Overview: Rate-limited broadcast queue and the broadcast operation built on it.

"""
Broadcast messaging

BroadcastQueue replaces fixed-delay send loops with a small worker pool:
enqueue() hands back a Future per message, each worker sends one message
and then waits `delay_seconds` before taking the next. The wait goes
through an injected `sleep` callable so tests can run without timers.
"""

from __future__ import annotations

import logging
import queue
import threading
import time
from concurrent.futures import Future
from typing import Callable, Iterable

from ..errors import InvalidInput
from ..extensions import db
from ..models import Customer
from ..models.communications import KIND_BROADCAST
from .notification_service import log_result
from .notifier import NotifierSession, NotifyResult

logger = logging.getLogger(__name__)

_STOP = object()


class BroadcastQueue:
    def __init__(
        self,
        notifier: NotifierSession,
        *,
        concurrency: int = 1,
        delay_seconds: float = 0.0,
        sleep: Callable[[float], None] = time.sleep,
    ):
        if concurrency < 1:
            raise ValueError("concurrency must be >= 1")
        if delay_seconds < 0:
            raise ValueError("delay_seconds must be >= 0")
        self.notifier = notifier
        self.concurrency = concurrency
        self.delay_seconds = delay_seconds
        self._sleep = sleep
        self._queue: queue.Queue = queue.Queue()
        self._workers: list[threading.Thread] = []
        self._lock = threading.Lock()
        self._running = False

    @property
    def running(self) -> bool:
        return self._running

    def start(self) -> "BroadcastQueue":
        with self._lock:
            if self._running:
                return self
            self._running = True
            for i in range(self.concurrency):
                worker = threading.Thread(target=self._work, name=f"broadcast-worker-{i}", daemon=True)
                worker.start()
                self._workers.append(worker)
        return self

    def stop(self, wait: bool = True) -> None:
        """Finish everything already queued, then shut the workers down."""
        with self._lock:
            if not self._running:
                return
            self._running = False
            workers, self._workers = self._workers, []
            for _ in workers:
                self._queue.put(_STOP)
        if wait:
            for worker in workers:
                worker.join()

    def enqueue(self, phone_number: str, message: str) -> Future:
        with self._lock:
            if not self._running:
                raise RuntimeError("Broadcast queue is not running")
            future: Future = Future()
            self._queue.put((phone_number, message, future))
        return future

    def __enter__(self):
        return self.start()

    def __exit__(self, exc_type, exc, tb):
        self.stop()

    def _work(self) -> None:
        while True:
            item = self._queue.get()
            if item is _STOP:
                return
            phone_number, message, future = item
            if not future.set_running_or_notify_cancel():
                continue
            try:
                result = self.notifier.send(phone_number, message)
            except Exception as exc:  # a bad message must not kill the worker
                logger.warning("Broadcast send to %s raised", phone_number, exc_info=True)
                result = NotifyResult(success=False, error=str(exc) or exc.__class__.__name__)
            future.set_result(result)
            if self.delay_seconds:
                self._sleep(self.delay_seconds)


class _TemplateValues(dict):
    """Leaves unknown {placeholders} untouched."""

    def __missing__(self, key):
        return "{" + key + "}"


def render_message(template: str, customer: Customer) -> str:
    return template.format_map(_TemplateValues(
        name=customer.name,
        points=customer.points,
        code=customer.referral_code,
    ))


def send_broadcast(
    broadcast_queue: BroadcastQueue,
    org_id: int,
    template: str,
    customer_ids: Iterable[int] | None = None,
) -> dict:
    """
    Send `template` to active customers of the org (optionally a subset).

    Waits for every message, then writes one NotificationLog row each.
    """
    if not template or not template.strip():
        raise InvalidInput("Message is required")

    q = db.session.query(Customer).filter_by(org_id=org_id, is_active=True)
    if customer_ids is not None:
        ids = list(customer_ids)
        if not ids:
            raise InvalidInput("customerIds must not be empty")
        q = q.filter(Customer.id.in_(ids))
    customers = q.order_by(Customer.id).all()

    pending = []
    for customer in customers:
        message = render_message(template, customer)
        pending.append((customer, message, broadcast_queue.enqueue(customer.phone_number, message)))

    sent = failed = 0
    results = []
    for customer, message, future in pending:
        result: NotifyResult = future.result()
        if result.success:
            sent += 1
        else:
            failed += 1
        log_result(org_id, customer.phone_number, message, KIND_BROADCAST, result, customer_id=customer.id)
        results.append({"customer_id": customer.id, **result.to_dict()})

    db.session.commit()
    logger.info("Broadcast for org %s: %d sent, %d failed", org_id, sent, failed)
    return {"total": len(pending), "sent": sent, "failed": failed, "results": results}
