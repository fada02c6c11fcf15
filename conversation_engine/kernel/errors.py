from __future__ import annotations

import re
from typing import Any


_ERROR_CODE_RE = re.compile(r"^[a-z][a-z0-9_]*(\.[a-z][a-z0-9_]*)*$")


class ConversationEngineError(Exception):
    """Base typed error for the conversation engine.

    Subclasses declare `default_code`, `default_message` and `default_status`;
    callers override `message` and attach `meta` (safe-to-expose only).
    """

    default_code = "engine.error"
    default_message = "Conversation engine error"
    default_status = 500

    def __init__(
        self,
        *,
        code: str | None = None,
        message: str | None = None,
        status_code: int | None = None,
        meta: dict[str, Any] | None = None,
    ) -> None:
        code = code or self.default_code
        if not _ERROR_CODE_RE.fullmatch(code):
            raise ValueError(f"Error codes are dot-separated lowercase tokens, got: {code!r}")
        message = message or self.default_message
        super().__init__(message)
        self.code = code
        self.message = message
        self.status_code = int(status_code if status_code is not None else self.default_status)
        self.meta = dict(meta or {})

    def to_public_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"detail": self.message, "code": self.code}
        if self.meta:
            payload["meta"] = self.meta
        return payload


class ActivityValidationError(ConversationEngineError):
    """Semantically invalid input. Raised before any network call."""

    default_code = "activity.validation_error"
    default_message = "Validation error"
    default_status = 422


class ActivityConstructionError(ConversationEngineError):
    """An activity entity is missing its `objectType`. Terminal, never retried."""

    default_code = "activity.construction_error"
    default_message = "Activity could not be constructed"
    default_status = 400


class ConversationNotIdentifiedError(ConversationEngineError):
    default_code = "conversation.not_identified"
    default_message = "conversation: could not identify conversation"
    default_status = 400


class UnknownServiceError(ConversationEngineError):
    default_code = "config.unknown_service"
    default_message = "Unknown service"


class KeyManagementError(ConversationEngineError):
    default_code = "kms.no_keys"
    default_message = "Key management service returned no keys"
    default_status = 502


class TransportError(ConversationEngineError):
    """Non-2xx response from the backend. Carries the upstream status and body."""

    default_code = "transport.http_error"
    default_message = "Upstream service error"

    def __init__(
        self,
        *,
        status_code: int,
        message: str | None = None,
        code: str | None = None,
        body: Any = None,
        meta: dict[str, Any] | None = None,
    ):
        super().__init__(code=code, message=message, status_code=status_code, meta=meta)
        self.body = body

    @property
    def is_not_found(self) -> bool:
        return self.status_code == 404
