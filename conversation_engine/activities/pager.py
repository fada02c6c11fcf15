"""
List Pager

Normalizes list responses for conversations, activities and mentions:
default query parameters, chronological order, participant UUID bookkeeping.
"""

from __future__ import annotations

import asyncio
from typing import Any

import structlog

from conversation_engine.collaborators import IdentityResolver, Transport
from conversation_engine.kernel.time import published_sort_key
from conversation_engine.transport.models import RequestDescriptor

logger = structlog.get_logger()

LIST_QUERY_DEFAULTS: dict[str, Any] = {
    "personRefresh": True,
    "uuidEntryFormat": True,
    "activitiesLimit": 0,
    "participantsLimit": 0,
}


async def record_uuids(identity: IdentityResolver, record: dict[str, Any]) -> None:
    """Record the UUID of every participant embedded in a conversation record."""
    participants = record.get("participants")
    if not isinstance(participants, dict) or not participants.get("items"):
        return
    await asyncio.gather(*(identity.record_uuid(participant) for participant in participants["items"]))


def ensure_chronological(items: list[dict[str, Any]]) -> list[dict[str, Any]]:
    """Reverse `items` in place when the backend returned them newest-first."""
    first = published_sort_key(items[0].get("published"))
    last = published_sort_key(items[-1].get("published"))
    if first is not None and last is not None and last < first:
        items.reverse()
    return items


class ListPager:
    def __init__(self, transport: Transport, identity: IdentityResolver):
        self._transport = transport
        self._identity = identity

    async def list(self, descriptor: RequestDescriptor) -> list[dict[str, Any]]:
        """
        Execute a list request and return its items oldest-first.

        Caller query parameters win over `LIST_QUERY_DEFAULTS`.
        """
        descriptor = descriptor.model_copy(update={"qs": {**LIST_QUERY_DEFAULTS, **descriptor.qs}})
        response = await self._transport.request(descriptor)

        body = response.body
        items = body.get("items") if isinstance(body, dict) else None
        if not items:
            return []

        ensure_chronological(items)
        await asyncio.gather(*(record_uuids(self._identity, item) for item in items))

        logger.debug("Listed items", resource=descriptor.resource, item_count=len(items))
        return items
