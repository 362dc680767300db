"""
SSE event stream endpoint.

Provides ``GET /api/events`` — a Server-Sent Events stream of runtime
lifecycle events (installs, progress, reconciliation reports).

Wire format::

    event: runtime:progress
    id: 47
    data: {"v":1,"ts":1739648400.123,"seq":47,"type":"runtime:progress","key":"php:8.4","data":{...}}
"""

from __future__ import annotations

import json

from flask import Blueprint, Response, request

from runtimectl.core.services.event_bus import bus

events_bp = Blueprint("events", __name__)


@events_bp.route("/events")
def event_stream():  # type: ignore[no-untyped-def]
    """SSE endpoint — streams events to the client.

    Query params:
        since (int): Resume from this sequence number. Overridden by the
            ``Last-Event-Id`` header if present.
    """
    since = request.args.get("since", 0, type=int)

    last_event_id = request.headers.get("Last-Event-Id")
    if last_event_id is not None and last_event_id.isdigit():
        since = max(since, int(last_event_id))

    def generate():  # type: ignore[no-untyped-def]
        for event in bus.subscribe(since=since):
            yield (
                f"event: {event['type']}\n"
                f"id: {event['seq']}\n"
                f"data: {json.dumps(event, default=str)}\n\n"
            )

    return Response(
        generate(),
        mimetype="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )
