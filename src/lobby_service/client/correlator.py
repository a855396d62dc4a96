"""Matches inbound envelopes to the blocking calls waiting for them.

Envelopes are sorted into one FIFO queue per action. A caller waiting for a
JOIN_ROOM answer takes the oldest JOIN_ROOM envelope. Correlation is by
action; ``request_id`` only filters out stale answers to calls that already
timed out, so callers must not have two requests of the same action in
flight at once (``GameClient`` serializes its calls for this).
"""
from __future__ import annotations

import logging
import queue
import threading
import time

from lobby_service.application.exceptions import ConnectionClosedError, RequestTimeoutError
from lobby_service.config import settings
from lobby_service.domain.value_objects.enums import ActionCode
from lobby_service.infrastructure.wire.protocol import Envelope

logger = logging.getLogger(__name__)


class Correlator:
    def __init__(self, poll_interval: float | None = None) -> None:
        self._poll_interval = poll_interval if poll_interval is not None else settings.CLIENT_POLL_INTERVAL
        self._queues: dict[ActionCode, queue.Queue[Envelope]] = {a: queue.Queue() for a in ActionCode}
        self._closed = threading.Event()

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    def close(self) -> None:
        """Wake every waiter; waits on empty queues now fail with ConnectionClosedError."""
        self._closed.set()

    def enqueue(self, envelope: Envelope) -> None:
        self._queues[envelope.action].put(envelope)

    def pending(self, action: ActionCode) -> int:
        return self._queues[action].qsize()

    def poll(self, action: ActionCode) -> Envelope | None:
        try:
            return self._queues[action].get_nowait()
        except queue.Empty:
            return None

    def drain(self, action: ActionCode) -> list[Envelope]:
        drained: list[Envelope] = []
        while (env := self.poll(action)) is not None:
            drained.append(env)
        return drained

    def wait_for(
        self,
        action: ActionCode,
        timeout: float,
        request_id: int | None = None,
    ) -> Envelope:
        """Block until an envelope for ``action`` arrives.

        Raises RequestTimeoutError once ``timeout`` seconds have passed,
        never earlier, and ConnectionClosedError if the correlator is closed
        while nothing is queued.
        """
        q = self._queues[action]
        deadline = time.monotonic() + timeout
        while True:
            remaining = deadline - time.monotonic()
            try:
                env = q.get(timeout=max(0.0, min(self._poll_interval, remaining)))
            except queue.Empty:
                if self._closed.is_set():
                    raise ConnectionClosedError(f"connection closed while waiting for {action}") from None
                if time.monotonic() >= deadline:
                    raise RequestTimeoutError(f"no {action} response within {timeout:.3f}s") from None
                continue

            if request_id is not None and env.request_id is not None and env.request_id != request_id:
                logger.debug("Discarding stale %s response (request %s, waiting for %s)", action, env.request_id, request_id)
                continue
            return env
