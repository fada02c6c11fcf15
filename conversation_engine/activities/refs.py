"""
Conversation references.

A conversation reference is a dict carrying at least an `id` or a `url`; the
`url` is canonical. References are resolved lazily and mutated in place the
first time a url is needed.
"""

from __future__ import annotations

from typing import Any

import structlog

from conversation_engine.activities.models import CONVERSATION_FIELDS
from conversation_engine.collaborators import ServiceCatalog
from conversation_engine.config import Settings, get_settings
from conversation_engine.kernel.errors import ConversationNotIdentifiedError
from conversation_engine.kernel.ids import id_from_url

logger = structlog.get_logger()


class ConversationRefResolver:
    """Fills in a conversation's `url` when only its `id` is known."""

    def __init__(self, catalog: ServiceCatalog, settings: Settings | None = None):
        self._catalog = catalog
        self._settings = settings or get_settings()

    async def resolve(self, ref: dict[str, Any]) -> dict[str, Any]:
        if ref.get("url") or not ref.get("id"):
            return ref

        base_url = await self._catalog.get_service_url("conversation")
        ref["url"] = f"{base_url}/conversations/{ref['id']}"
        if not self._settings.is_production:
            logger.warning(
                "conversation: inferred conversation url from conversation id; "
                "please pass whole conversation objects to conversation methods",
                conversation_id=ref["id"],
            )
        return ref


def prepare_conversation(ref: dict[str, Any]) -> dict[str, Any]:
    """Project a conversation onto the fields an activity may reference."""
    prepared = {key: ref[key] for key in CONVERSATION_FIELDS if key in ref}
    prepared.setdefault("objectType", "conversation")
    return prepared


def conversation_id(ref: dict[str, Any]) -> str:
    """Return the conversation id, deriving it from `url` when needed."""
    if ref.get("id"):
        return ref["id"]
    if ref.get("url"):
        ref["id"] = id_from_url(ref["url"])
        return ref["id"]
    raise ConversationNotIdentifiedError()
