"""
One-on-one conversations.

Two-party conversations are get-or-create: look the conversation up by the
other participant, and only create it when the lookup reports 404. Concurrent
callers may both reach the create call.
"""

from __future__ import annotations

from copy import deepcopy
from typing import Any, Protocol

import structlog

from conversation_engine.activities.builder import ActivityBuilder
from conversation_engine.activities.models import ONE_ON_ONE_TAG, ConversationCreation, IdentityContext
from conversation_engine.kernel.errors import TransportError

logger = structlog.get_logger()


class ConversationGateway(Protocol):
    """The service operations the resolver drives."""

    async def get(self, conversation: dict[str, Any], options: dict[str, Any] | None = None) -> dict[str, Any]: ...

    async def post(self, conversation: dict[str, Any], message: Any, activity: Any = None) -> dict[str, Any]: ...

    async def create_from_payload(self, payload: dict[str, Any]) -> dict[str, Any]: ...


def prepare_conversation_for_creation(
    creation: ConversationCreation,
    builder: ActivityBuilder,
    identity: IdentityContext,
) -> dict[str, Any]:
    """Build the grouped-creation payload: create, add each participant, optional comment."""
    items = [builder.expand("create", identity=identity)]
    for participant in creation.participants:
        items.append(builder.expand("add", {"objectType": "person", "id": participant}, identity=identity))
    if creation.comment:
        items.append(
            builder.expand("post", {"objectType": "comment", "displayName": creation.comment}, identity=identity)
        )

    payload: dict[str, Any] = {
        "activities": {"items": items},
        "objectType": "conversation",
        "kmsMessage": {
            "method": "create",
            "uri": "/resources",
            "userIds": deepcopy(creation.participants),
            "keyUris": [],
        },
    }
    if creation.display_name:
        payload["displayName"] = creation.display_name
    return payload


def append_activity(conversation: dict[str, Any], activity: dict[str, Any]) -> dict[str, Any]:
    activities = conversation.get("activities") or {}
    items = activities.get("items") or []
    items.append(activity)
    activities["items"] = items
    conversation["activities"] = activities
    return conversation


class OneOnOneResolver:
    def __init__(self, gateway: ConversationGateway, builder: ActivityBuilder):
        self._gateway = gateway
        self._builder = builder

    async def create_or_get(
        self,
        creation: ConversationCreation,
        identity: IdentityContext,
        options: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """
        Fetch the existing one-on-one conversation or create it.

        Args:
            creation: Deduplicated participants with the caller at index 0,
                so index 1 is always the other party
            identity: The calling user
            options: Query options forwarded to the lookup

        Raises:
            TransportError: any lookup failure other than 404
        """
        other = creation.participants[1]
        try:
            conversation = await self._gateway.get({"user": other}, options)
        except TransportError as e:
            if not e.is_not_found:
                raise
            logger.info("One-on-one conversation not found, creating it", participant=other)
            payload = prepare_conversation_for_creation(creation, self._builder, identity)
            payload["tags"] = [ONE_ON_ONE_TAG]
            return await self._gateway.create_from_payload(payload)

        if creation.comment:
            activity = await self._gateway.post(conversation, {"displayName": creation.comment})
            append_activity(conversation, activity)

        return conversation
