"""
Key Binding Policy

Decides how a conversation (or team) gets its encryption key bound, and emits
the matching KMS instruction:

- no `defaultActivityEncryptionKeyUrl` yet: mint a brand-new key resource
  (`create` on `/resources`) naming every recipient
- otherwise: rotate the existing key resource object (`update` on `<KRO>`)

Every call decides against the record it is handed; nothing is cached, so
callers must pass the current server-reported state.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any

import structlog

from conversation_engine.activities.models import KRO, Key, KeyBinding
from conversation_engine.collaborators import KeyManager
from conversation_engine.kernel.errors import KeyManagementError

logger = structlog.get_logger()


def coerce_key(value: Any) -> Key:
    """Accept a `Key`, a key dict, anything with a `uri`, or a bare key URI."""
    if isinstance(value, Key):
        return value
    if isinstance(value, str):
        return Key(uri=value)
    if isinstance(value, Mapping):
        return Key.model_validate(dict(value))
    uri = getattr(value, "uri", None)
    if isinstance(uri, str):
        return Key(uri=uri)
    raise TypeError(f"Cannot interpret {type(value)!r} as an encryption key")


def first_key(keys: Any) -> Key:
    """Take the first key of a collection, or the key itself.

    The KMS is only ever asked for a single key; a collection is treated as a
    batch of one and anything past the first element is ignored.
    """
    if isinstance(keys, Sequence) and not isinstance(keys, str):
        if not keys:
            raise KeyManagementError()
        if len(keys) > 1:
            logger.debug("Ignoring extra keys returned by KMS", key_count=len(keys))
        return coerce_key(keys[0])
    return coerce_key(keys)


def _member_ids(record: dict[str, Any], collection: str) -> list[str]:
    items = (record.get(collection) or {}).get("items") or []
    return [item["id"] for item in items if item.get("id")]


class KeyBindingPolicy:
    """Binds or rotates keys through the KMS collaborator."""

    def __init__(self, kms: KeyManager):
        self._kms = kms

    async def resolve_key(self, key: Any = None) -> Key:
        if key:
            return first_key(key)
        keys = await self._kms.create_unbound_keys(count=1)
        return first_key(keys)

    def instruction_for(self, record: dict[str, Any], key: Key, recipients: list[str]) -> dict[str, Any]:
        # The kmsResourceObjectUrl is only usable once a default key exists.
        if record.get("defaultActivityEncryptionKeyUrl"):
            return {
                "method": "update",
                "resourceUri": KRO,
                "uri": key.uri,
            }
        return {
            "method": "create",
            "uri": "/resources",
            "userIds": list(recipients),
            "keyUris": [key.uri],
        }

    async def bind(self, conversation: dict[str, Any], key: Any = None) -> KeyBinding:
        """
        Resolve the working key for a conversation and the instruction binding it.

        Args:
            conversation: Conversation as last reported by the server,
                including `participants.items`
            key: Caller-supplied key; a fresh unbound key is minted when omitted

        Returns:
            KeyBinding with the key and its kmsMessage
        """
        k = await self.resolve_key(key)
        kms_message = self.instruction_for(conversation, k, _member_ids(conversation, "participants"))
        logger.info(
            "Bound conversation key",
            method=kms_message["method"],
            conversation_id=conversation.get("id"),
            supplied_key=bool(key),
        )
        return KeyBinding(key=k, kms_message=kms_message)

    async def bind_team(
        self,
        team: dict[str, Any],
        key: Any = None,
        recipients: list[str] | None = None,
    ) -> KeyBinding | None:
        """
        Bind a key to a team record, mutating it in place.

        `key=False` skips binding entirely. A team that already carries a
        `kmsMessage` keeps it and only accumulates the key URI in `keyUris`.
        """
        if key is False:
            return None

        k = await self.resolve_key(key)

        existing = team.get("kmsMessage")
        if existing:
            key_uris = existing.get("keyUris")
            if isinstance(key_uris, list) and k.uri not in key_uris:
                key_uris.append(k.uri)
            kms_message = existing
        else:
            if recipients is None:
                recipients = _member_ids(team, "teamMembers")
            kms_message = self.instruction_for(team, k, recipients)

        team["encryptionKeyUrl"] = k.uri
        # Only a freshly minted key becomes the default; an explicit key is a
        # rotation target and must not replace it.
        if not key and not team.get("defaultActivityEncryptionKeyUrl"):
            team["defaultActivityEncryptionKeyUrl"] = k.uri

        return KeyBinding(key=k, kms_message=kms_message)
