"""
EventBus — thread-safe, in-process pub/sub with bounded replay.

Runtime managers publish every lifecycle change here.  Two kinds of
consumers listen:

- SSE clients (``GET /api/events``) subscribe and receive a live stream,
  with replay from a bounded ring buffer on reconnect.
- In-process collaborators (shell integration, process supervisor,
  reverse proxy) register a callback with ``add_listener``.

Message standard (v1)
─────────────────────
Every event is a dict with these fields::

    {
        "v": 1,                       # schema version
        "ts": 1739648400.123,         # server timestamp
        "seq": 47,                    # monotonic sequence
        "type": "runtime:installed",  # <domain>:<action>
        "key": "php:8.3",             # resource identifier
        "data": { ... },              # event-specific payload
    }

Event types published by the runtime managers:

    runtime:installed        runtime:updated        runtime:removing
    runtime:removed          runtime:default_changed
    runtime:reconciled       runtime:progress
    shell:refresh            proxy:reconcile
"""

from __future__ import annotations

import logging
import queue
import threading
import time
from collections import deque
from collections.abc import Callable
from typing import Any, Generator

logger = logging.getLogger(__name__)

_SCHEMA_VERSION = 1

Listener = Callable[[dict], None]


class EventBus:
    """Thread-safe, in-process pub/sub with bounded replay buffer.

    Parameters
    ----------
    buffer_size : int
        Maximum number of events kept for replay.
    subscriber_queue_size : int
        Maximum backlog per SSE client.  A client whose queue fills up
        is dropped.
    """

    def __init__(
        self,
        *,
        buffer_size: int = 500,
        subscriber_queue_size: int = 200,
    ) -> None:
        self._lock = threading.Lock()
        self._seq: int = 0
        self._buffer: deque[dict] = deque(maxlen=buffer_size)
        self._subscribers: list[queue.Queue[dict]] = []
        self._listeners: list[Listener] = []
        self._subscriber_queue_size = subscriber_queue_size
        self._instance_id: str = time.strftime("%Y-%m-%dT%H:%M:%S")
        self._latest: dict[str, dict] = {}  # kind → latest runtime:reconciled payload

    # ── Properties ──────────────────────────────────────────────

    @property
    def instance_id(self) -> str:
        """Server instance identifier (boot timestamp)."""
        return self._instance_id

    @property
    def seq(self) -> int:
        with self._lock:
            return self._seq

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscribers)

    # ── Listeners ───────────────────────────────────────────────

    def add_listener(self, listener: Listener) -> None:
        """Call ``listener(event)`` synchronously for every published event."""
        with self._lock:
            self._listeners.append(listener)

    def remove_listener(self, listener: Listener) -> None:
        with self._lock:
            if listener in self._listeners:
                self._listeners.remove(listener)

    # ── Publishing ──────────────────────────────────────────────

    def publish(
        self,
        event_type: str,
        *,
        key: str = "",
        data: dict[str, Any] | None = None,
        **kw: Any,
    ) -> dict:
        """Broadcast an event to SSE subscribers and listeners.

        Parameters
        ----------
        event_type : str
            Event type in ``<domain>:<action>`` format.
        key : str
            Resource identifier (``php``, ``php:8.3``).
        data : dict | None
            Event-specific payload.
        **kw :
            Additional top-level fields (``error``, ``duration_s``).

        Returns
        -------
        dict
            The full event dict with ``seq`` assigned.
        """
        with self._lock:
            self._seq += 1
            event: dict[str, Any] = {
                "v": _SCHEMA_VERSION,
                "ts": time.time(),
                "seq": self._seq,
                "type": event_type,
                "key": key,
                "data": data or {},
                **kw,
            }
            self._buffer.append(event)

            if event_type == "runtime:reconciled" and key:
                self._latest[key] = {"data": data, "at": event["ts"]}

            dead: list[queue.Queue[dict]] = []
            for q in self._subscribers:
                try:
                    q.put_nowait(event)
                except queue.Full:
                    dead.append(q)
            for q in dead:
                self._subscribers.remove(q)
                logger.info("Dropped unresponsive SSE subscriber (queue full)")

            listeners = list(self._listeners)

        # Outside the lock: listeners may publish in turn
        for listener in listeners:
            try:
                listener(event)
            except Exception:
                logger.exception("Event listener failed on %s", event_type)

        if event_type not in ("sys:heartbeat", "runtime:progress"):
            extra = ""
            if "duration_s" in kw:
                extra = f" ({kw['duration_s']:.2f}s)"
            elif "error" in kw:
                extra = f" error={str(kw['error'])[:80]}"
            logger.debug("event %s key=%s%s", event_type, key or "-", extra)

        return event

    # ── Subscribing ─────────────────────────────────────────────

    def subscribe(
        self,
        *,
        since: int = 0,
        heartbeat_interval: float = 30.0,
    ) -> Generator[dict, None, None]:
        """Yield events for an SSE client.  Blocks between events.

        Parameters
        ----------
        since : int
            Sequence number to resume from (``Last-Event-Id``).  Events
            with ``seq > since`` still in the buffer are replayed;
            otherwise a ``state:snapshot`` is sent first.
        heartbeat_interval : float
            Seconds between heartbeat events when idle.
        """
        q: queue.Queue[dict] = queue.Queue(maxsize=self._subscriber_queue_size)
        need_snapshot = True

        with self._lock:
            if since > 0 and self._buffer and since >= self._buffer[0]["seq"]:
                missed = [e for e in self._buffer if e["seq"] > since]
                if len(missed) <= self._subscriber_queue_size:
                    need_snapshot = False
                    for event in missed:
                        q.put_nowait(event)
            self._subscribers.append(q)

        logger.info(
            "SSE client connected (since=%d, snapshot=%s, subscribers=%d)",
            since, need_snapshot, self.subscriber_count,
        )

        try:
            yield self._make_event("sys:ready", {"instance_id": self._instance_id})

            if need_snapshot:
                yield self._make_event("state:snapshot", self.snapshot())

            while True:
                try:
                    yield q.get(timeout=heartbeat_interval)
                except queue.Empty:
                    yield self.publish("sys:heartbeat")
        finally:
            with self._lock:
                if q in self._subscribers:
                    self._subscribers.remove(q)
            logger.info("SSE client disconnected (subscribers=%d)", self.subscriber_count)

    # ── Snapshot ────────────────────────────────────────────────

    def snapshot(self) -> dict[str, dict]:
        """Latest reconciliation report per kind::

            {"php": {"data": {...}, "at": 1739648400.1, "age_s": 42}}
        """
        with self._lock:
            now = time.time()
            return {
                key: {**entry, "age_s": round(now - entry["at"])}
                for key, entry in self._latest.items()
            }

    def _make_event(self, event_type: str, data: dict) -> dict:
        """Per-client event (not buffered, not broadcast)."""
        with self._lock:
            self._seq += 1
            return {
                "v": _SCHEMA_VERSION,
                "ts": time.time(),
                "seq": self._seq,
                "type": event_type,
                "key": "",
                "data": data,
            }


# ── Module-level singleton ──────────────────────────────────────

bus = EventBus()
"""The global event bus instance.

Import and use::

    from runtimectl.core.services.event_bus import bus
    bus.publish("runtime:installed", key="php:8.3", data={...})
"""
