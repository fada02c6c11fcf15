"""
Activity Builder

Turns a partial activity plus verb/object/target/actor parameters into a
canonical activity record ready for submission.

Stages run in a fixed order and each one can be exercised on its own:

1. resolve_base     - caller's `prepare` hook output, the partial activity, or {}
2. apply_defaults   - verb, kmsMessage, objectType, clientTempId, actor
3. normalize_actor  - bare actor id -> person entity
4. apply_params     - actor/object defaults from params
5. apply_target     - allow-listed target fields, overwriting
6. derive_ids       - id from the trailing url segment
7. validate         - objectType everywhere, content requires displayName

Defaults never overwrite values the caller already set.
"""

from __future__ import annotations

import inspect
from collections.abc import Callable, Mapping
from typing import Any

import structlog

from conversation_engine.activities.models import TARGET_FIELDS, IdentityContext
from conversation_engine.collaborators import ActivityHook
from conversation_engine.kernel.errors import ActivityConstructionError, ActivityValidationError
from conversation_engine.kernel.ids import id_from_url, new_client_temp_id

logger = structlog.get_logger()


def _set_default(record: dict[str, Any], key: str, value: Any) -> None:
    if record.get(key) is None and value is not None:
        record[key] = value


def _as_person(value: Any) -> Any:
    if isinstance(value, str):
        return {"objectType": "person", "id": value}
    return value


class ActivityBuilder:
    """Builds activities; holds no per-call state."""

    def __init__(self, id_factory: Callable[[], str] = new_client_temp_id):
        self._id_factory = id_factory

    async def prepare(
        self,
        activity: Any = None,
        params: dict[str, Any] | None = None,
        *,
        identity: IdentityContext,
    ) -> dict[str, Any]:
        """
        Build an activity.

        Args:
            activity: Partial activity. Either a dict (mutated in place, so
                callers can render it provisionally) or an object exposing a
                `prepare(params)` hook, sync or async.
            params: `verb`, `kmsMessage`, `actor`, `object`, `target`
            identity: The calling user, used as the default actor

        Raises:
            ActivityConstructionError: an entity is missing `objectType`
            ActivityValidationError: `object.content` without `object.displayName`
        """
        params = params or {}

        act = await self.resolve_base(activity, params)
        self.apply_defaults(act, params, identity)
        self.normalize_actor(act)
        self.apply_params(act, params)
        self.apply_target(act, params)
        self.derive_ids(act)
        self.validate(act)

        logger.debug(
            "Activity prepared",
            verb=act.get("verb"),
            client_temp_id=act.get("clientTempId"),
        )
        return act

    async def resolve_base(self, activity: ActivityHook | dict[str, Any] | None, params: dict[str, Any]) -> dict[str, Any]:
        hook = getattr(activity, "prepare", None)
        if callable(hook):
            result = hook(params)
            if inspect.isawaitable(result):
                result = await result
            return result if result is not None else {}
        return activity if activity is not None else {}

    def apply_defaults(self, act: dict[str, Any], params: dict[str, Any], identity: IdentityContext) -> None:
        _set_default(act, "verb", params.get("verb"))
        _set_default(act, "kmsMessage", params.get("kmsMessage"))
        _set_default(act, "objectType", "activity")
        if act.get("clientTempId") is None:
            act["clientTempId"] = self._id_factory()
        _set_default(act, "actor", identity.user_id)

    def normalize_actor(self, act: dict[str, Any]) -> None:
        act["actor"] = _as_person(act.get("actor"))

    def apply_params(self, act: dict[str, Any], params: dict[str, Any]) -> None:
        for key in ("actor", "object"):
            source = params.get(key)
            if not source:
                continue
            source = _as_person(source) if key == "actor" else source
            entity = act.get(key) or {}
            if not isinstance(entity, dict):
                continue
            for field, value in source.items():
                _set_default(entity, field, value)
            act[key] = entity

    def apply_target(self, act: dict[str, Any], params: dict[str, Any]) -> None:
        source = params.get("target")
        if not source:
            return
        target = act.get("target")
        if not isinstance(target, dict):
            target = {}
        for field in TARGET_FIELDS:
            if source.get(field) is not None:
                target[field] = source[field]
        act["target"] = target

    def derive_ids(self, act: dict[str, Any]) -> None:
        for key in ("object", "target"):
            entity = act.get(key)
            if isinstance(entity, dict) and entity.get("url") and not entity.get("id"):
                entity["id"] = id_from_url(entity["url"])

    def validate(self, act: dict[str, Any]) -> None:
        for key in ("actor", "object", "target"):
            entity = act.get(key)
            if entity is None:
                continue
            if not isinstance(entity, Mapping) or not entity.get("objectType"):
                raise ActivityConstructionError(
                    message=f"`activity.{key}.objectType` must be defined",
                    meta={"field": key},
                )

        obj = act.get("object")
        if obj and obj.get("content") and not obj.get("displayName"):
            raise ActivityValidationError(
                message="Cannot submit activity object with `content` but no `displayName`",
            )

    def expand(
        self,
        verb: str,
        object: dict[str, Any] | None = None,
        target: dict[str, Any] | None = None,
        actor: Any = None,
        *,
        identity: IdentityContext,
    ) -> dict[str, Any]:
        """Expand a verb plus entities into a bare activity (used for creation payloads)."""
        activity: dict[str, Any] = {
            "actor": _as_person(actor or identity.user_id),
            "objectType": "activity",
            "verb": verb,
        }
        if object:
            activity["object"] = object
        if target:
            activity["target"] = target
        return activity
