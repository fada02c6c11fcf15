"""
Unit tests for ConversationService.

Drives each intent through the real pipeline with mocked collaborators and
asserts on the request descriptors handed to the transport.
"""

from unittest.mock import AsyncMock

import pytest

from conversation_engine.activities.models import Key
from conversation_engine.kernel.errors import (
    ActivityValidationError,
    ConversationNotIdentifiedError,
    TransportError,
)
from conversation_engine.transport.models import TransportResponse

pytestmark = pytest.mark.unit

BASE_URL = "https://conv.example.com/conversation/api/v1"
SELF_ID = "5d1b6d2c-0000-4000-8000-000000000001"
OTHER_ID = "5d1b6d2c-0000-4000-8000-000000000002"
CONVERSATION_URL = f"{BASE_URL}/conversations/conv-1"


@pytest.fixture
def conversation():
    return {"id": "conv-1", "url": CONVERSATION_URL, "objectType": "conversation"}


def _last_activity(sent):
    return sent()[-1].body


# =============================================================================
# Reads
# =============================================================================


class TestGet:
    @pytest.mark.asyncio
    async def test_get_by_url_with_default_query(self, service, transport, sent, conversation):
        transport.request.return_value = TransportResponse(status_code=200, body={"id": "conv-1"})

        result = await service.get(conversation, {"activitiesLimit": 10, "url": "ignored"})

        descriptor = sent()[0]
        assert result == {"id": "conv-1"}
        assert descriptor.uri == CONVERSATION_URL
        assert descriptor.qs == {
            "uuidEntryFormat": True,
            "personRefresh": True,
            "activitiesLimit": 10,
            "includeParticipants": False,
        }

    @pytest.mark.asyncio
    async def test_get_by_user_resolves_uuid(self, service, sent, identity_resolver):
        await service.get({"user": "other@example.com"})

        identity_resolver.as_uuid.assert_awaited_once_with("other@example.com")
        descriptor = sent()[0]
        assert descriptor.service == "conversation"
        assert descriptor.resource == "conversations/user/other@example.com"

    @pytest.mark.asyncio
    async def test_get_by_id_infers_url(self, service, sent):
        ref = {"id": "conv-9"}

        await service.get(ref)

        assert ref["url"] == f"{BASE_URL}/conversations/conv-9"
        assert sent()[0].uri == f"{BASE_URL}/conversations/conv-9"

    @pytest.mark.asyncio
    async def test_get_records_participant_uuids(self, service, transport, identity_resolver, conversation):
        transport.request.return_value = TransportResponse(
            status_code=200,
            body={"id": "conv-1", "participants": {"items": [{"id": "a"}, {"id": "b"}]}},
        )

        await service.get(conversation)

        assert identity_resolver.record_uuid.await_count == 2


class TestLists:
    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        ("method", "resource"),
        [
            ("list", "conversations"),
            ("list_left", "conversations/left"),
            ("list_activities", "activities"),
            ("list_mentions", "mentions"),
        ],
    )
    async def test_list_resources(self, service, transport, sent, method, resource):
        transport.request.return_value = TransportResponse(
            status_code=200, body={"items": [{"published": 2}, {"published": 1}]}
        )

        items = await getattr(service, method)({"conversationId": "conv-1", "mentions": True})

        descriptor = sent()[0]
        assert descriptor.resource == resource
        assert descriptor.qs["personRefresh"] is True
        assert [item["published"] for item in items] == [1, 2]

    @pytest.mark.asyncio
    async def test_list_activities_drops_mentions_flag(self, service, sent):
        await service.list_activities({"conversationId": "conv-1", "mentions": True})

        assert "mentions" not in sent()[0].qs


# =============================================================================
# Creation
# =============================================================================


class TestCreate:
    @pytest.mark.asyncio
    async def test_requires_participants(self, service, transport):
        with pytest.raises(ActivityValidationError):
            await service.create([])

        transport.request.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_two_party_lookup_hit_posts_comment(self, service, transport, sent):
        transport.request.side_effect = [
            TransportResponse(
                status_code=200,
                body={"id": "conv-1", "url": CONVERSATION_URL, "activities": {"items": [{"id": "a1"}]}},
            ),
            TransportResponse(status_code=200, body={"id": "a2", "verb": "post"}),
        ]

        result = await service.create([OTHER_ID], comment="hello")

        lookup, post = sent()
        assert lookup.resource == f"conversations/user/{OTHER_ID}"
        assert post.resource == "activities"
        assert post.body["object"] == {"objectType": "comment", "displayName": "hello"}
        assert [item["id"] for item in result["activities"]["items"]] == ["a1", "a2"]

    @pytest.mark.asyncio
    async def test_two_party_lookup_miss_creates_one_on_one(self, service, transport, sent):
        transport.request.side_effect = [
            TransportError(status_code=404),
            TransportResponse(status_code=200, body={"id": "new-conv"}),
        ]

        result = await service.create([OTHER_ID])

        create = sent()[1]
        assert result == {"id": "new-conv"}
        assert create.method == "POST"
        assert create.resource == "conversations"
        assert create.body["tags"] == ["ONE_ON_ONE"]
        assert create.body["kmsMessage"]["userIds"] == [SELF_ID, OTHER_ID]

    @pytest.mark.asyncio
    async def test_self_is_deduplicated(self, service, sent):
        await service.create([OTHER_ID, SELF_ID, OTHER_ID])

        assert sent()[0].resource == f"conversations/user/{OTHER_ID}"

    @pytest.mark.asyncio
    async def test_three_parties_create_grouped_without_lookup(self, service, sent):
        await service.create([OTHER_ID, "user-3"], display_name="Room")

        descriptors = sent()
        assert len(descriptors) == 1
        assert descriptors[0].resource == "conversations"
        assert "tags" not in descriptors[0].body
        assert descriptors[0].body["displayName"] == "Room"

    @pytest.mark.asyncio
    async def test_force_grouped_skips_lookup(self, service, sent):
        await service.create([OTHER_ID], force_grouped=True)

        descriptors = sent()
        assert len(descriptors) == 1
        assert descriptors[0].resource == "conversations"
        assert "tags" not in descriptors[0].body

    @pytest.mark.asyncio
    async def test_participants_are_resolved_with_create(self, service, identity_resolver):
        await service.create(["alice@example.com", "bob@example.com"])

        for call in identity_resolver.as_uuid.await_args_list:
            assert call.kwargs == {"create": True}

    @pytest.mark.asyncio
    async def test_files_are_shared_and_appended(self, service, transport, sent):
        transport.request.side_effect = [
            TransportResponse(status_code=200, body={"id": "conv-2", "url": f"{BASE_URL}/conversations/conv-2"}),
            TransportResponse(status_code=200, body={"id": "share-1", "verb": "share"}),
        ]

        result = await service.create([OTHER_ID, "user-3"], files=[{"displayName": "a.png", "url": "https://f/1"}])

        share = sent()[1]
        assert share.resource == "content"
        assert share.body["object"]["files"]["items"] == [{"displayName": "a.png", "url": "https://f/1"}]
        assert result["activities"]["items"] == [{"id": "share-1", "verb": "share"}]


# =============================================================================
# Activities
# =============================================================================


class TestActivities:
    @pytest.mark.asyncio
    async def test_post_plain_text(self, service, sent, conversation):
        await service.post(conversation, "hello")

        activity = _last_activity(sent)
        assert activity["verb"] == "post"
        assert activity["object"] == {"objectType": "comment", "displayName": "hello"}
        assert activity["target"] == {"id": "conv-1", "url": CONVERSATION_URL, "objectType": "conversation"}
        assert activity["actor"] == {"objectType": "person", "id": SELF_ID}

    @pytest.mark.asyncio
    async def test_post_rejects_content_without_display_name(self, service, transport, conversation):
        with pytest.raises(ActivityValidationError):
            await service.post(conversation, {"content": "<b>x</b>"})

        transport.request.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_post_uses_caller_activity(self, service, sent, conversation):
        draft = {"clientTempId": "provisional-1"}

        await service.post(conversation, "hello", draft)

        assert _last_activity(sent)["clientTempId"] == "provisional-1"
        assert draft["verb"] == "post"

    @pytest.mark.asyncio
    async def test_add_participant_authorizes_on_kro(self, service, sent, identity_resolver, conversation):
        await service.add(conversation, "new@example.com")

        identity_resolver.as_uuid.assert_awaited_once_with("new@example.com", create=True)
        activity = _last_activity(sent)
        assert activity["verb"] == "add"
        assert activity["object"] == {"id": "new@example.com", "objectType": "person"}
        assert activity["kmsMessage"] == {
            "method": "create",
            "uri": "/authorizations",
            "resourceUri": "<KRO>",
            "userIds": ["new@example.com"],
        }

    @pytest.mark.asyncio
    async def test_leave_defaults_to_self(self, service, sent, conversation):
        await service.leave(conversation)

        activity = _last_activity(sent)
        assert activity["verb"] == "leave"
        assert activity["object"]["id"] == SELF_ID
        assert activity["kmsMessage"] == {
            "method": "delete",
            "uri": f"<KRO>/authorizations?authId={SELF_ID}",
        }

    @pytest.mark.asyncio
    async def test_acknowledge_does_not_notify(self, service, sent, events, conversation):
        await service.acknowledge(conversation, {"id": "a1", "url": f"{BASE_URL}/activities/a1"})

        activity = _last_activity(sent)
        assert activity["verb"] == "acknowledge"
        assert activity["object"] == {"objectType": "activity", "id": "a1", "url": f"{BASE_URL}/activities/a1"}
        events.trigger.assert_not_called()

    @pytest.mark.asyncio
    @pytest.mark.parametrize("method", ["acknowledge", "delete", "update"])
    async def test_object_must_be_a_mapping(self, service, transport, conversation, method):
        with pytest.raises(ActivityValidationError):
            await getattr(service, method)(conversation, "not-an-object")

        transport.request.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_delete_projects_object(self, service, sent, conversation):
        await service.delete(conversation, {"id": "a1", "objectType": "activity", "displayName": "x"})

        assert _last_activity(sent)["object"] == {"id": "a1", "objectType": "activity"}

    @pytest.mark.asyncio
    async def test_update_sends_object(self, service, sent, conversation):
        await service.update(conversation, {"objectType": "conversation", "displayName": "New name"})

        activity = _last_activity(sent)
        assert activity["verb"] == "update"
        assert activity["object"]["displayName"] == "New name"

    @pytest.mark.asyncio
    async def test_unidentifiable_conversation_is_rejected(self, service, transport):
        with pytest.raises(ConversationNotIdentifiedError):
            await service.update_typing_status({}, True)

        transport.request.assert_not_awaited()


class TestUpdateKey:
    @pytest.mark.asyncio
    async def test_unkeyed_conversation_creates_resource(self, service, transport, sent, kms, conversation):
        transport.request.side_effect = [
            TransportResponse(
                status_code=200,
                body={
                    "id": "conv-1",
                    "url": CONVERSATION_URL,
                    "participants": {"items": [{"id": SELF_ID}, {"id": OTHER_ID}]},
                },
            ),
            TransportResponse(status_code=200, body={"verb": "updateKey"}),
        ]

        await service.update_key(conversation)

        refetch, submit = sent()
        assert refetch.qs["includeParticipants"] is True
        assert refetch.qs["activitiesLimit"] == 0
        kms.create_unbound_keys.assert_awaited_once_with(count=1)
        activity = submit.body
        assert activity["verb"] == "updateKey"
        assert activity["object"] == {
            "defaultActivityEncryptionKeyUrl": "kms://kms.example.com/keys/new-key",
            "objectType": "conversation",
        }
        assert activity["kmsMessage"] == {
            "method": "create",
            "uri": "/resources",
            "userIds": [SELF_ID, OTHER_ID],
            "keyUris": ["kms://kms.example.com/keys/new-key"],
        }

    @pytest.mark.asyncio
    async def test_keyed_conversation_rotates_kro(self, service, transport, sent, kms, conversation):
        transport.request.side_effect = [
            TransportResponse(
                status_code=200,
                body={
                    "id": "conv-1",
                    "url": CONVERSATION_URL,
                    "defaultActivityEncryptionKeyUrl": "kms://old",
                    "kmsResourceObjectUrl": "kms://kro/1",
                    "participants": {"items": [{"id": SELF_ID}]},
                },
            ),
            TransportResponse(status_code=200, body={"verb": "updateKey"}),
        ]

        await service.update_key(conversation, Key(uri="kms://rotated"))

        activity = sent()[1].body
        kms.create_unbound_keys.assert_not_awaited()
        assert activity["kmsMessage"] == {"method": "update", "resourceUri": "<KRO>", "uri": "kms://rotated"}
        assert activity["target"]["kmsResourceObjectUrl"] == "kms://kro/1"
        assert activity["target"]["defaultActivityEncryptionKeyUrl"] == "kms://old"

    @pytest.mark.asyncio
    async def test_kms_failure_prevents_submission(self, service, transport, kms, conversation):
        transport.request.return_value = TransportResponse(
            status_code=200, body={"id": "conv-1", "url": CONVERSATION_URL}
        )
        kms.create_unbound_keys.side_effect = RuntimeError("kms rejected")

        with pytest.raises(RuntimeError):
            await service.update_key(conversation)

        assert transport.request.await_count == 1


class TestTypingStatus:
    @pytest.mark.asyncio
    @pytest.mark.parametrize(("typing", "event_type"), [(True, "status.start_typing"), (False, "status.stop_typing")])
    async def test_typing_events(self, service, sent, typing, event_type):
        await service.update_typing_status({"url": CONVERSATION_URL}, typing)

        descriptor = sent()[0]
        assert descriptor.method == "POST"
        assert descriptor.resource == "status/typing"
        assert descriptor.body == {"conversationId": "conv-1", "eventType": event_type}


# =============================================================================
# Content
# =============================================================================


class TestContent:
    @pytest.mark.asyncio
    async def test_share_files(self, service, sent, conversation):
        await service.share(conversation, [{"displayName": "doc.pdf", "url": "https://f/2"}])

        descriptor = sent()[0]
        assert descriptor.resource == "content"
        assert descriptor.qs == {"personRefresh": True, "transcode": True, "async": False}
        assert descriptor.body["verb"] == "share"
        assert descriptor.body["object"]["objectType"] == "content"

    @pytest.mark.asyncio
    async def test_share_with_prepare_hook(self, service, sent, conversation):
        class Draft:
            async def prepare(self, params):
                return {"object": {"objectType": "content", "files": {"items": [{"url": "https://f/3"}]}}}

        await service.share(conversation, Draft())

        assert sent()[0].body["object"]["files"]["items"] == [{"url": "https://f/3"}]

    @pytest.mark.asyncio
    async def test_share_activity_with_bare_file_list_is_wrapped(self, service, sent, conversation):
        await service.share(conversation, {"object": {"files": [{"url": "https://f/4"}]}})

        obj = sent()[0].body["object"]
        assert obj["files"] == {"items": [{"url": "https://f/4"}]}
        assert obj["objectType"] == "content"

    @pytest.mark.asyncio
    async def test_share_file_list_keeps_caller_object(self, service, sent, conversation):
        draft = {"object": {"displayName": "Photos"}}

        await service.share(conversation, [{"url": "https://f/5"}], draft)

        obj = sent()[0].body["object"]
        assert obj["displayName"] == "Photos"
        assert obj["files"] == {"items": [{"url": "https://f/5"}]}

    @pytest.mark.asyncio
    async def test_assign_rejects_large_avatar(self, service, transport, conversation):
        with pytest.raises(ActivityValidationError):
            await service.assign(conversation, {"size": 2 * 1024 * 1024, "url": "https://f/avatar"})

        transport.request.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_assign_falls_back_to_length(self, service, transport, conversation):
        with pytest.raises(ActivityValidationError) as exc_info:
            await service.assign(conversation, {"length": 2 * 1024 * 1024, "url": "https://f/avatar"})

        assert exc_info.value.meta == {"size": 2 * 1024 * 1024}
        transport.request.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_assign_submits_to_activities(self, service, sent, conversation):
        await service.assign(conversation, {"size": 1024, "url": "https://f/avatar"})

        descriptor = sent()[0]
        assert descriptor.resource == "activities"
        assert descriptor.body["verb"] == "assign"
        assert descriptor.body["object"]["files"]["items"] == [{"size": 1024, "url": "https://f/avatar"}]

    @pytest.mark.asyncio
    async def test_unassign_clears_files(self, service, sent, conversation):
        await service.unassign(conversation)

        assert _last_activity(sent)["object"] == {"objectType": "content", "files": {"items": []}}


# =============================================================================
# Simple activities
# =============================================================================


class TestSimpleActivities:
    @pytest.mark.asyncio
    @pytest.mark.parametrize("verb", ["favorite", "hide", "lock", "mute", "unfavorite", "unhide", "unlock", "unmute"])
    async def test_bare_verbs_use_conversation_as_object(self, service, sent, conversation, verb):
        await service.submit_simple_activity(verb, conversation)

        activity = _last_activity(sent)
        assert activity["verb"] == verb
        assert activity["object"] == {"id": "conv-1", "url": CONVERSATION_URL, "objectType": "conversation"}
        assert "target" not in activity

    @pytest.mark.asyncio
    async def test_tag_merges_object_over_conversation(self, service, sent, conversation):
        await service.submit_simple_activity("tag", conversation, {"tags": ["FAVORITE"]})

        activity = _last_activity(sent)
        assert activity["target"]["id"] == "conv-1"
        assert activity["object"]["tags"] == ["FAVORITE"]
        assert activity["object"]["objectType"] == "conversation"

    @pytest.mark.asyncio
    async def test_tag_requires_mapping(self, service, transport, conversation):
        with pytest.raises(ActivityValidationError):
            await service.submit_simple_activity("untag", conversation, None)

        transport.request.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_assign_moderator_resolves_person(self, service, sent, identity_resolver, conversation):
        await service.submit_simple_activity("assignModerator", conversation, moderator="mod@example.com")

        identity_resolver.as_uuid.assert_awaited_once_with("mod@example.com")
        assert _last_activity(sent)["object"] == {"id": "mod@example.com", "objectType": "person"}

    @pytest.mark.asyncio
    async def test_unassign_moderator_defaults_to_self(self, service, sent, conversation):
        await service.submit_simple_activity("unassignModerator", conversation)

        assert _last_activity(sent)["object"] == {"id": SELF_ID, "objectType": "person"}

    @pytest.mark.asyncio
    async def test_unknown_verb_is_rejected(self, service, transport, conversation):
        with pytest.raises(ActivityValidationError):
            await service.submit_simple_activity("archive", conversation)

        transport.request.assert_not_awaited()

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        ("method", "verb", "tags"),
        [
            ("mute_mentions", "tag", ["MENTION_NOTIFICATIONS_OFF"]),
            ("unmute_mentions", "tag", ["MENTION_NOTIFICATIONS_ON"]),
            ("mute_messages", "tag", ["MESSAGE_NOTIFICATIONS_OFF"]),
            ("unmute_messages", "tag", ["MESSAGE_NOTIFICATIONS_ON"]),
            (
                "remove_all_mute_tags",
                "untag",
                [
                    "MENTION_NOTIFICATIONS_OFF",
                    "MENTION_NOTIFICATIONS_ON",
                    "MESSAGE_NOTIFICATIONS_OFF",
                    "MESSAGE_NOTIFICATIONS_ON",
                ],
            ),
        ],
    )
    async def test_mute_helpers(self, service, sent, conversation, method, verb, tags):
        await getattr(service, method)(conversation)

        activity = _last_activity(sent)
        assert activity["verb"] == verb
        assert activity["object"]["tags"] == tags


class TestFactory:
    def test_create_conversation_service_wires_http_transport(self, identity, settings):
        from conversation_engine.conversations.service import create_conversation_service
        from conversation_engine.transport.client import HttpTransport

        service = create_conversation_service(
            identity=identity,
            identity_resolver=AsyncMock(),
            kms=AsyncMock(),
            settings=settings,
        )

        assert isinstance(service.submitter._transport, HttpTransport)
        assert service.identity is identity
