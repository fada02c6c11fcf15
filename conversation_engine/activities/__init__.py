"""Activity assembly and key-binding pipeline."""

from conversation_engine.activities.builder import ActivityBuilder
from conversation_engine.activities.key_binding import KeyBindingPolicy
from conversation_engine.activities.models import (
    ConversationCreation,
    IdentityContext,
    Key,
    KeyBinding,
    SimpleActivityKind,
)
from conversation_engine.activities.one_on_one import OneOnOneResolver
from conversation_engine.activities.pager import ListPager
from conversation_engine.activities.refs import ConversationRefResolver
from conversation_engine.activities.submitter import ActivitySubmitter

__all__ = [
    "ActivityBuilder",
    "ActivitySubmitter",
    "ConversationCreation",
    "ConversationRefResolver",
    "IdentityContext",
    "Key",
    "KeyBinding",
    "KeyBindingPolicy",
    "ListPager",
    "OneOnOneResolver",
    "SimpleActivityKind",
]
