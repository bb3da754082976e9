"""
Progress bus: per-job multicast of progress events.

Each subscriber gets its own bounded queue. Publishing never blocks on a slow
or vanished subscriber: a handle whose delivery fails is dropped and the
remaining handles still get the event. Events are not buffered for future
subscribers.
"""

import logging
import queue
import threading
import uuid
from typing import Callable

from ytclip.core.constants import SUBSCRIBER_QUEUE_SIZE
from ytclip.core.events import ProgressEvent, connected

logger = logging.getLogger(__name__)


class SubscriberClosed(Exception):
    """Delivery attempted on a closed subscription."""


class Subscription:
    """
    A live output channel for one job's events.
    The bus only references it; the connection that opened it owns it.
    """

    def __init__(self, job_id: str, maxsize: int = SUBSCRIBER_QUEUE_SIZE):
        self.job_id = job_id
        self.id = uuid.uuid4().hex
        self.maxsize = maxsize
        self._queue: queue.Queue = queue.Queue()
        self._lock = threading.Lock()
        self._closed = False
        self._terminated = False
        self._notify: Callable[[], None] | None = None

    def __repr__(self):
        return f"<Subscription {self.id[:8]} job={self.job_id}>"

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def terminated(self) -> bool:
        """True once a terminal event has been queued."""
        return self._terminated

    def deliver(self, event: ProgressEvent) -> bool:
        """
        Queue an event. Returns False if it was ignored because a terminal
        event was already delivered.
        Raises SubscriberClosed or queue.Full.
        """
        with self._lock:
            if self._closed:
                raise SubscriberClosed(self.id)
            if self._terminated:
                return False
            if self._queue.qsize() >= self.maxsize:
                raise queue.Full
            self._queue.put_nowait(event)
            if event.is_terminal:
                self._terminated = True
        self._wake()
        return True

    def get(self, timeout: float | None = None) -> ProgressEvent | None:
        """
        Next event; None once the subscription is closed.
        Raises queue.Empty on timeout.
        """
        return self._queue.get(timeout=timeout)

    def get_nowait(self) -> ProgressEvent | None:
        """Like get() without waiting; raises queue.Empty."""
        return self._queue.get_nowait()

    def close(self):
        with self._lock:
            if self._closed:
                return
            self._closed = True
        # Wake the reader
        self._queue.put_nowait(None)
        self._wake()

    def set_notifier(self, notify: Callable[[], None] | None):
        """
        Register a callback run (on the delivering thread) after every
        queued event and on close. Lets an event-loop reader wait without
        blocking a thread.
        """
        self._notify = notify

    def _wake(self):
        notify = self._notify
        if notify is not None:
            notify()


class ProgressBus:
    """Maps job ids to the set of live subscriptions."""

    def __init__(self, queue_size: int = SUBSCRIBER_QUEUE_SIZE):
        self.queue_size = queue_size
        self._lock = threading.Lock()
        self._subscribers: dict[str, set[Subscription]] = {}

    def subscribe(self, job_id: str) -> Subscription:
        """Register a new subscription; it starts with a 'connected' event."""
        sub = Subscription(job_id, self.queue_size)
        sub.deliver(connected(job_id))
        with self._lock:
            self._subscribers.setdefault(job_id, set()).add(sub)
        logger.debug("Subscribed %r", sub)
        return sub

    def unsubscribe(self, job_id: str, sub: Subscription):
        """Remove a subscription. Safe to call more than once."""
        self._discard(job_id, [sub])
        sub.close()
        logger.debug("Unsubscribed %r", sub)

    def publish(self, job_id: str, event: ProgressEvent) -> int:
        """Deliver to every subscription of job_id; returns the delivery count."""
        with self._lock:
            subs = list(self._subscribers.get(job_id, ()))

        delivered = 0
        failed = []
        for sub in subs:
            try:
                if sub.deliver(event):
                    delivered += 1
            except SubscriberClosed:
                failed.append(sub)
            except queue.Full:
                logger.warning("Subscriber %r is not draining — dropping it", sub)
                failed.append(sub)

        if failed:
            self._discard(job_id, failed)
            for sub in failed:
                sub.close()
        return delivered

    def drop(self, job_id: str):
        """Close and forget every subscription of a job."""
        with self._lock:
            subs = self._subscribers.pop(job_id, set())
        for sub in subs:
            sub.close()

    def subscriber_count(self, job_id: str) -> int:
        with self._lock:
            return len(self._subscribers.get(job_id, ()))

    def job_ids(self) -> list[str]:
        with self._lock:
            return list(self._subscribers)

    def close(self):
        """Close every subscription (server shutdown)."""
        with self._lock:
            all_subs = [s for subs in self._subscribers.values() for s in subs]
            self._subscribers.clear()
        for sub in all_subs:
            sub.close()

    def _discard(self, job_id: str, subs):
        with self._lock:
            current = self._subscribers.get(job_id)
            if current is None:
                return
            current.difference_update(subs)
            if not current:
                del self._subscribers[job_id]
