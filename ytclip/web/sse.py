"""
Server-Sent Events framing for progress subscriptions.

Streams run on the event loop. Publishing happens on worker threads, so a
subscription wakes its stream through ``loop.call_soon_threadsafe``; an idle
stream holds no thread.
"""

import asyncio
import json
import logging
import queue
from typing import AsyncIterator

from ytclip.core.constants import SSE_KEEPALIVE_SEC
from ytclip.core.events import ProgressEvent
from ytclip.core.pipeline import ExtractionService
from ytclip.core.progress_bus import Subscription

logger = logging.getLogger(__name__)

KEEPALIVE_FRAME = ": keep-alive\n\n"


def format_event(event: ProgressEvent) -> str:
    """One event per frame, JSON payload, UTF-8 safe."""
    return f"data: {json.dumps(event.to_dict(), ensure_ascii=False)}\n\n"


def _loop_waker(loop: asyncio.AbstractEventLoop, wakeup: asyncio.Event):
    def wake():
        try:
            loop.call_soon_threadsafe(wakeup.set)
        except RuntimeError:
            # Loop already closed; the stream is gone
            pass
    return wake


async def event_stream(service: ExtractionService, job_id: str, sub: Subscription,
                       keepalive: float = SSE_KEEPALIVE_SEC) -> AsyncIterator[str]:
    """
    Yield SSE frames until the terminal event is sent or the subscription
    is closed. Always unsubscribes on exit, including client disconnects.
    """
    wakeup = asyncio.Event()
    sub.set_notifier(_loop_waker(asyncio.get_running_loop(), wakeup))
    try:
        while True:
            try:
                event = sub.get_nowait()
            except queue.Empty:
                wakeup.clear()
                # Re-check after clearing so a delivery in between is not missed
                try:
                    event = sub.get_nowait()
                except queue.Empty:
                    try:
                        await asyncio.wait_for(wakeup.wait(), timeout=keepalive)
                    except asyncio.TimeoutError:
                        yield KEEPALIVE_FRAME
                    continue
            if event is None:
                break
            yield format_event(event)
            if event.is_terminal:
                break
    finally:
        sub.set_notifier(None)
        service.unsubscribe(job_id, sub)
        logger.debug("Progress stream for job %s closed", job_id)
