"""
Activity Pipeline Types

Typed helpers around the wire records. Activities and conversation
references themselves stay plain dicts with the backend's camelCase field
names, since they are submitted verbatim.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict

# Symbolic reference to the conversation's key resource object; the backend
# substitutes the real KRO url.
KRO = "<KRO>"

TARGET_FIELDS = ("id", "url", "objectType", "kmsResourceObjectUrl", "defaultActivityEncryptionKeyUrl")
CONVERSATION_FIELDS = ("id", "url", "objectType", "defaultActivityEncryptionKeyUrl", "kmsResourceObjectUrl")

ONE_ON_ONE_TAG = "ONE_ON_ONE"

MENTION_NOTIFICATIONS_OFF = "MENTION_NOTIFICATIONS_OFF"
MENTION_NOTIFICATIONS_ON = "MENTION_NOTIFICATIONS_ON"
MESSAGE_NOTIFICATIONS_OFF = "MESSAGE_NOTIFICATIONS_OFF"
MESSAGE_NOTIFICATIONS_ON = "MESSAGE_NOTIFICATIONS_ON"


class Key(BaseModel):
    """An encryption key as handed out by the KMS."""

    model_config = ConfigDict(extra="allow")

    uri: str


@dataclass(frozen=True)
class KeyBinding:
    """Outcome of a key binding decision."""

    key: Key
    kms_message: dict[str, Any]


@dataclass(frozen=True)
class IdentityContext:
    """The calling user. Passed explicitly into every pipeline call."""

    user_id: str


@dataclass
class ConversationCreation:
    """Resolved parameters for creating a conversation.

    `participants` are already UUIDs, deduplicated, with the caller first.
    """

    participants: list[str]
    comment: str | None = None
    display_name: str | None = None


class SimpleActivityKind(str, Enum):
    """Structural variants of single-verb conversation activities."""

    BARE = "bare"  # object is the conversation itself
    WITH_TARGET = "with_target"  # conversation is the target, object carries extra fields
    WITH_MODERATION_TARGET = "with_moderation_target"  # conversation is the target, object is a person


SIMPLE_ACTIVITY_VERBS: dict[str, SimpleActivityKind] = {
    "favorite": SimpleActivityKind.BARE,
    "hide": SimpleActivityKind.BARE,
    "lock": SimpleActivityKind.BARE,
    "mute": SimpleActivityKind.BARE,
    "unfavorite": SimpleActivityKind.BARE,
    "unhide": SimpleActivityKind.BARE,
    "unlock": SimpleActivityKind.BARE,
    "unmute": SimpleActivityKind.BARE,
    "tag": SimpleActivityKind.WITH_TARGET,
    "untag": SimpleActivityKind.WITH_TARGET,
    "assignModerator": SimpleActivityKind.WITH_MODERATION_TARGET,
    "unassignModerator": SimpleActivityKind.WITH_MODERATION_TARGET,
}
