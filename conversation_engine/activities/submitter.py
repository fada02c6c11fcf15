"""Submits finished activities to the conversation service."""

from __future__ import annotations

from typing import Any

import structlog

from conversation_engine.collaborators import EventSink, Transport
from conversation_engine.events import USER_ACTIVITY_EVENT
from conversation_engine.kernel.serialization import to_jsonable
from conversation_engine.transport.models import RequestDescriptor

logger = structlog.get_logger()

# Read receipts are passive and must not count as user activity.
_PASSIVE_VERBS = frozenset({"acknowledge"})


class ActivitySubmitter:
    """Routes an activity to `content` (shares) or `activities` (everything else)."""

    def __init__(self, transport: Transport, events: EventSink):
        self._transport = transport
        self._events = events

    def build_request(self, activity: dict[str, Any]) -> RequestDescriptor:
        verb = activity.get("verb")
        qs: dict[str, Any] = {"personRefresh": True}
        if verb == "share":
            qs.update({"transcode": True, "async": False})

        return RequestDescriptor(
            method="POST",
            service="conversation",
            resource="content" if verb == "share" else "activities",
            body=to_jsonable(activity),
            qs=qs,
        )

    async def submit(self, activity: dict[str, Any]) -> Any:
        descriptor = self.build_request(activity)

        if activity.get("verb") not in _PASSIVE_VERBS:
            self._events.trigger(USER_ACTIVITY_EVENT)

        logger.info(
            "Submitting activity",
            verb=activity.get("verb"),
            resource=descriptor.resource,
            client_temp_id=activity.get("clientTempId"),
        )
        response = await self._transport.request(descriptor)
        return response.body
