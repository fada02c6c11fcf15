"""Conversation intents."""

from conversation_engine.conversations.service import ConversationService, create_conversation_service

__all__ = ["ConversationService", "create_conversation_service"]
