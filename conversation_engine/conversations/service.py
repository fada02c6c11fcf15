"""
Conversation Service

The intent surface of the engine: every method turns a high-level intent
("post", "add", "update key", "create") into a prepared activity or request
and submits it through the activity pipeline.

Example usage:
    service = create_conversation_service(
        identity=IdentityContext(user_id=my_uuid),
        identity_resolver=users,
        kms=kms,
    )
    conversation = await service.create(["alice@example.com"], comment="hi")
    await service.post(conversation, "hello again")
"""

from __future__ import annotations

import asyncio
from collections.abc import Mapping
from typing import Any
from urllib.parse import urlencode

import httpx
import structlog

from conversation_engine.activities.builder import ActivityBuilder
from conversation_engine.activities.key_binding import KeyBindingPolicy
from conversation_engine.activities.models import (
    KRO,
    MENTION_NOTIFICATIONS_OFF,
    MENTION_NOTIFICATIONS_ON,
    MESSAGE_NOTIFICATIONS_OFF,
    MESSAGE_NOTIFICATIONS_ON,
    SIMPLE_ACTIVITY_VERBS,
    ConversationCreation,
    IdentityContext,
    SimpleActivityKind,
)
from conversation_engine.activities.one_on_one import (
    OneOnOneResolver,
    append_activity,
    prepare_conversation_for_creation,
)
from conversation_engine.activities.pager import ListPager, record_uuids
from conversation_engine.activities.refs import ConversationRefResolver, conversation_id, prepare_conversation
from conversation_engine.activities.submitter import ActivitySubmitter
from conversation_engine.collaborators import EventSink, IdentityResolver, KeyManager, ServiceCatalog, Transport
from conversation_engine.config import Settings, get_settings
from conversation_engine.events import EventEmitter
from conversation_engine.kernel.errors import ActivityValidationError
from conversation_engine.kernel.ids import dedupe_preserving_order
from conversation_engine.transport.catalog import StaticServiceCatalog
from conversation_engine.transport.client import HttpTransport
from conversation_engine.transport.models import RequestDescriptor

logger = structlog.get_logger()

GET_QUERY_DEFAULTS: dict[str, Any] = {
    "uuidEntryFormat": True,
    "personRefresh": True,
    "activitiesLimit": 0,
    "includeParticipants": False,
}


def _require_mapping(value: Any, name: str = "object") -> None:
    if not isinstance(value, Mapping):
        raise ActivityValidationError(message=f"`{name}` must be an object")


def _normalize_share_files(activity: dict[str, Any]) -> None:
    """Wrap a bare `object.files` list into the `{"items": [...]}` collection."""
    obj = activity.get("object")
    if isinstance(obj, dict) and isinstance(obj.get("files"), list):
        obj["files"] = {"items": obj["files"]}


class ConversationService:
    """
    Conversation intents for a single calling user.

    The `identity` is threaded into every activity this service builds; all
    other collaborators are external and injected.
    """

    def __init__(
        self,
        *,
        identity: IdentityContext,
        transport: Transport,
        catalog: ServiceCatalog,
        identity_resolver: IdentityResolver,
        kms: KeyManager,
        events: EventSink | None = None,
        settings: Settings | None = None,
        builder: ActivityBuilder | None = None,
    ):
        self.identity = identity
        self.events = events or EventEmitter()
        self._settings = settings or get_settings()
        self._transport = transport
        self._identity_resolver = identity_resolver

        self.builder = builder or ActivityBuilder()
        self.refs = ConversationRefResolver(catalog, self._settings)
        self.keys = KeyBindingPolicy(kms)
        self.submitter = ActivitySubmitter(transport, self.events)
        self.pager = ListPager(transport, identity_resolver)
        self.one_on_one = OneOnOneResolver(self, self.builder)

    # ------------------------------------------------------------------
    # Pipeline
    # ------------------------------------------------------------------

    async def prepare(self, activity: Any = None, params: dict[str, Any] | None = None) -> dict[str, Any]:
        return await self.builder.prepare(activity, params, identity=self.identity)

    async def _prepare_and_submit(self, activity: Any, params: dict[str, Any]) -> dict[str, Any]:
        prepared = await self.prepare(activity, params)
        return await self.submitter.submit(prepared)

    async def submit(self, activity: dict[str, Any]) -> dict[str, Any]:
        return await self.submitter.submit(activity)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get(self, conversation: dict[str, Any], options: dict[str, Any] | None = None) -> dict[str, Any]:
        """
        Fetch a single conversation.

        Looks the conversation up by `conversation["user"]` (the other party of
        a one-on-one) when present, otherwise by its url.
        """
        await self.refs.resolve(conversation)

        extra = {k: v for k, v in (options or {}).items() if k not in ("id", "user", "url")}
        qs = {**GET_QUERY_DEFAULTS, **extra}

        user = conversation.get("user")
        if user:
            user_id = await self._identity_resolver.as_uuid(user)
            descriptor = RequestDescriptor(
                service="conversation",
                resource=f"conversations/user/{user_id}",
                qs=qs,
            )
        else:
            descriptor = RequestDescriptor(uri=conversation.get("url"), qs=qs)

        response = await self._transport.request(descriptor)
        body = response.body
        if isinstance(body, dict):
            await record_uuids(self._identity_resolver, body)
        return body

    async def list(self, options: dict[str, Any] | None = None) -> list[dict[str, Any]]:
        """List conversations. By default fetches neither activities nor participants."""
        return await self.pager.list(
            RequestDescriptor(service="conversation", resource="conversations", qs=dict(options or {}))
        )

    async def list_left(self, options: dict[str, Any] | None = None) -> list[dict[str, Any]]:
        """List the conversations the current user has left."""
        return await self.pager.list(
            RequestDescriptor(service="conversation", resource="conversations/left", qs=dict(options or {}))
        )

    async def list_activities(self, options: dict[str, Any] | None = None) -> list[dict[str, Any]]:
        return await self._list_activities(options, mentions=False)

    async def list_mentions(self, options: dict[str, Any] | None = None) -> list[dict[str, Any]]:
        """List activities in which the current user was mentioned."""
        return await self._list_activities(options, mentions=True)

    async def _list_activities(self, options: dict[str, Any] | None, *, mentions: bool) -> list[dict[str, Any]]:
        qs = {k: v for k, v in (options or {}).items() if k != "mentions"}
        return await self.pager.list(
            RequestDescriptor(
                service="conversation",
                resource="mentions" if mentions else "activities",
                qs=qs,
            )
        )

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    async def create(
        self,
        participants: list[Any],
        *,
        comment: str | None = None,
        display_name: str | None = None,
        files: list[dict[str, Any]] | None = None,
        force_grouped: bool = False,
        options: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """
        Create a conversation, or reuse the existing one-on-one.

        Exactly two participants after deduplication (the caller is always
        included) and no `force_grouped` goes through get-or-create; anything
        else creates a grouped conversation directly.
        """
        if not participants:
            raise ActivityValidationError(message="`participants` is required")

        ids = await asyncio.gather(
            *(self._identity_resolver.as_uuid(participant, create=True) for participant in participants)
        )
        creation = ConversationCreation(
            participants=dedupe_preserving_order([self.identity.user_id, *ids]),
            comment=comment,
            display_name=display_name,
        )

        if len(creation.participants) == 2 and not force_grouped:
            conversation = await self.one_on_one.create_or_get(creation, self.identity, options)
        else:
            conversation = await self.create_from_payload(
                prepare_conversation_for_creation(creation, self.builder, self.identity)
            )

        if files:
            activity = await self.share(conversation, files)
            append_activity(conversation, activity)

        return conversation

    async def create_from_payload(self, payload: dict[str, Any]) -> dict[str, Any]:
        response = await self._transport.request(
            RequestDescriptor(method="POST", service="conversation", resource="conversations", body=payload)
        )
        logger.info("Created conversation", tags=payload.get("tags"))
        return response.body

    # ------------------------------------------------------------------
    # Activities
    # ------------------------------------------------------------------

    async def acknowledge(self, conversation: dict[str, Any], object: Any, activity: Any = None) -> dict[str, Any]:
        """Mark `object` (an activity) as read."""
        _require_mapping(object)
        await self.refs.resolve(conversation)
        return await self._prepare_and_submit(
            activity,
            {
                "verb": "acknowledge",
                "target": prepare_conversation(conversation),
                "object": {"objectType": "activity", "id": object.get("id"), "url": object.get("url")},
            },
        )

    async def add(self, conversation: dict[str, Any], participant: Any, activity: Any = None) -> dict[str, Any]:
        """
        Add a participant to a conversation.

        Args:
            conversation: Conversation reference
            participant: Anything the identity resolver accepts
            activity: Partial activity; pass one to control clientTempId or to
                render the activity provisionally
        """
        await self.refs.resolve(conversation)
        user_id = await self._identity_resolver.as_uuid(participant, create=True)
        return await self._prepare_and_submit(
            activity,
            {
                "verb": "add",
                "target": prepare_conversation(conversation),
                "object": {"id": user_id, "objectType": "person"},
                "kmsMessage": {
                    "method": "create",
                    "uri": "/authorizations",
                    "resourceUri": KRO,
                    "userIds": [user_id],
                },
            },
        )

    async def delete(self, conversation: dict[str, Any], object: Any, activity: Any = None) -> dict[str, Any]:
        _require_mapping(object)
        await self.refs.resolve(conversation)
        return await self._prepare_and_submit(
            activity,
            {
                "verb": "delete",
                "target": prepare_conversation(conversation),
                "object": {key: object[key] for key in ("id", "url", "objectType") if key in object},
            },
        )

    async def leave(self, conversation: dict[str, Any], participant: Any = None, activity: Any = None) -> dict[str, Any]:
        """Leave the conversation, or remove `participant` from it."""
        await self.refs.resolve(conversation)
        user_id = await self._identity_resolver.as_uuid(participant or self.identity.user_id)
        return await self._prepare_and_submit(
            activity,
            {
                "verb": "leave",
                "target": prepare_conversation(conversation),
                "object": {"id": user_id, "objectType": "person"},
                "kmsMessage": {
                    "method": "delete",
                    "uri": f"{KRO}/authorizations?{urlencode({'authId': user_id})}",
                },
            },
        )

    async def post(self, conversation: dict[str, Any], message: Any, activity: Any = None) -> dict[str, Any]:
        """
        Post a message. A string is treated as plain text; a dict is used as
        the `object` of the post activity.
        """
        if isinstance(message, str):
            message = {"displayName": message}
        await self.refs.resolve(conversation)
        return await self._prepare_and_submit(
            activity,
            {
                "verb": "post",
                "target": prepare_conversation(conversation),
                "object": {"objectType": "comment", **message},
            },
        )

    async def update(self, conversation: dict[str, Any], object: Any, activity: Any = None) -> dict[str, Any]:
        _require_mapping(object)
        await self.refs.resolve(conversation)
        return await self._prepare_and_submit(
            activity,
            {
                "verb": "update",
                "target": prepare_conversation(conversation),
                "object": dict(object),
            },
        )

    async def update_key(self, conversation: dict[str, Any], key: Any = None, activity: Any = None) -> dict[str, Any]:
        """
        Set a new key for the conversation.

        The conversation is re-fetched with its participants so the binding
        decision runs against current server state.
        """
        await self.refs.resolve(conversation)
        current = await self.get(conversation, {"activitiesLimit": 0, "includeParticipants": True})
        binding = await self.keys.bind(current, key)
        return await self._prepare_and_submit(
            activity,
            {
                "verb": "updateKey",
                "target": prepare_conversation(current),
                "object": {
                    "defaultActivityEncryptionKeyUrl": binding.key.uri,
                    "objectType": "conversation",
                },
                "kmsMessage": binding.kms_message,
            },
        )

    async def update_typing_status(self, conversation: dict[str, Any], typing: bool) -> Any:
        """Set the typing status of the current user in a conversation."""
        response = await self._transport.request(
            RequestDescriptor(
                method="POST",
                service="conversation",
                resource="status/typing",
                body={
                    "conversationId": conversation_id(conversation),
                    "eventType": "status.start_typing" if typing else "status.stop_typing",
                },
            )
        )
        return response.body

    # ------------------------------------------------------------------
    # Content
    # ------------------------------------------------------------------

    async def share(self, conversation: dict[str, Any], files: Any, activity: Any = None) -> dict[str, Any]:
        """
        Share already-uploaded files.

        `files` is either a list of file descriptors or a partial share
        activity (dict or object with a `prepare` hook).
        """
        if isinstance(files, list):
            activity = activity if activity is not None else {}
            activity.setdefault("object", {})["files"] = list(files)
        else:
            activity = files
        if isinstance(activity, dict):
            _normalize_share_files(activity)

        await self.refs.resolve(conversation)
        return await self._prepare_and_submit(
            activity,
            {
                "verb": "share",
                "target": prepare_conversation(conversation),
                "object": {"objectType": "content"},
            },
        )

    async def assign(self, conversation: dict[str, Any], avatar: dict[str, Any]) -> dict[str, Any]:
        """Assign an avatar (an uploaded image file descriptor) to a room."""
        _require_mapping(avatar, "avatar")
        size = avatar.get("size") or avatar.get("length") or 0
        if size > self._settings.max_avatar_bytes:
            raise ActivityValidationError(
                message="Room avatars must be less than 1MB",
                meta={"size": size},
            )

        await self.refs.resolve(conversation)
        return await self._prepare_and_submit(
            {"object": {"objectType": "content", "files": {"items": [avatar]}}},
            {
                "verb": "assign",
                "target": prepare_conversation(conversation),
            },
        )

    async def unassign(self, conversation: dict[str, Any], activity: Any = None) -> dict[str, Any]:
        """Remove the avatar from a room."""
        await self.refs.resolve(conversation)
        return await self._prepare_and_submit(
            activity,
            {
                "verb": "unassign",
                "target": prepare_conversation(conversation),
                "object": {"objectType": "content", "files": {"items": []}},
            },
        )

    # ------------------------------------------------------------------
    # Simple activities
    # ------------------------------------------------------------------

    async def submit_simple_activity(
        self,
        verb: str,
        conversation: dict[str, Any],
        object: Any = None,
        *,
        moderator: Any = None,
        activity: Any = None,
    ) -> dict[str, Any]:
        """
        Submit one of the single-verb activities in `SIMPLE_ACTIVITY_VERBS`.

        - BARE (favorite, hide, lock, mute and their inverses): the
          conversation is the object
        - WITH_TARGET (tag, untag): the conversation is the target and
          `object` is merged over it
        - WITH_MODERATION_TARGET (assignModerator, unassignModerator): the
          conversation is the target and `moderator` (default: self) the object
        """
        kind = SIMPLE_ACTIVITY_VERBS.get(verb)
        if kind is None:
            raise ActivityValidationError(message=f"Unsupported activity verb {verb!r}", meta={"verb": verb})
        if kind is SimpleActivityKind.WITH_TARGET:
            _require_mapping(object)

        await self.refs.resolve(conversation)
        prepared = prepare_conversation(conversation)

        if kind is SimpleActivityKind.BARE:
            params = {"verb": verb, "object": prepared}
        elif kind is SimpleActivityKind.WITH_TARGET:
            params = {"verb": verb, "target": prepared, "object": {**prepared, **object}}
        else:
            user_id = (
                await self._identity_resolver.as_uuid(moderator) if moderator else self.identity.user_id
            )
            params = {
                "verb": verb,
                "target": prepared,
                "object": {"id": user_id, "objectType": "person"},
            }

        return await self._prepare_and_submit(activity, params)

    async def mute_mentions(self, conversation: dict[str, Any], activity: Any = None) -> dict[str, Any]:
        return await self.submit_simple_activity(
            "tag", conversation, {"tags": [MENTION_NOTIFICATIONS_OFF]}, activity=activity
        )

    async def unmute_mentions(self, conversation: dict[str, Any], activity: Any = None) -> dict[str, Any]:
        return await self.submit_simple_activity(
            "tag", conversation, {"tags": [MENTION_NOTIFICATIONS_ON]}, activity=activity
        )

    async def mute_messages(self, conversation: dict[str, Any], activity: Any = None) -> dict[str, Any]:
        return await self.submit_simple_activity(
            "tag", conversation, {"tags": [MESSAGE_NOTIFICATIONS_OFF]}, activity=activity
        )

    async def unmute_messages(self, conversation: dict[str, Any], activity: Any = None) -> dict[str, Any]:
        return await self.submit_simple_activity(
            "tag", conversation, {"tags": [MESSAGE_NOTIFICATIONS_ON]}, activity=activity
        )

    async def remove_all_mute_tags(self, conversation: dict[str, Any], activity: Any = None) -> dict[str, Any]:
        return await self.submit_simple_activity(
            "untag",
            conversation,
            {
                "tags": [
                    MENTION_NOTIFICATIONS_OFF,
                    MENTION_NOTIFICATIONS_ON,
                    MESSAGE_NOTIFICATIONS_OFF,
                    MESSAGE_NOTIFICATIONS_ON,
                ]
            },
            activity=activity,
        )


def create_conversation_service(
    *,
    identity: IdentityContext,
    identity_resolver: IdentityResolver,
    kms: KeyManager,
    events: EventSink | None = None,
    settings: Settings | None = None,
    client: httpx.AsyncClient | None = None,
) -> ConversationService:
    """Wire a `ConversationService` against the HTTP backend described by settings."""
    settings = settings or get_settings()
    catalog = StaticServiceCatalog(settings)
    return ConversationService(
        identity=identity,
        transport=HttpTransport(catalog, settings, client=client),
        catalog=catalog,
        identity_resolver=identity_resolver,
        kms=kms,
        events=events,
        settings=settings,
    )
