"""
Tests for the chat service layer.

This module tests:
- MessageDispatcher: validation, permission gate, persist-then-broadcast,
  no broadcast on store failure, delivery order
- ChatService: chat creation, dialogs, member addition, updates
- ChatAssemblyService: chat list, chat detail, history paging, search

Tests use the real DjangoChatStore and a fresh ListenerRegistry; store
failures are simulated with unittest.mock.
"""

import threading
import uuid
from unittest.mock import MagicMock, patch

import pytest

from authentication.models import User
from authentication.tests.factories import UserFactory
from chat.constants import MESSAGE_CONFIG, PAGINATION_CONFIG
from chat.exceptions import StoreError
from chat.models import Chat, ChatMember, ChatRole, ChatType, Message, MessageKind
from chat.registry import Listener
from chat.serializers import MessageSerializer
from chat.services import MessageDispatcher
from chat.tests.factories import ChatFactory, ChatMemberFactory, MessageFactory


def listen(registry, chat_id, user_id=None):
    listener = Listener(user_id=user_id, buffer_size=100)
    registry.register(chat_id, listener)
    return listener


# =============================================================================
# MessageDispatcher
# =============================================================================


@pytest.mark.django_db
class TestPostMessage:
    """Tests for MessageDispatcher.post_message()."""

    def test_member_message_is_persisted_and_broadcast(
        self, dispatcher, registry, group_chat, member_user, viewer_user
    ):
        listener = listen(registry, group_chat.id, viewer_user.id)

        result = dispatcher.post_message(member_user.id, group_chat.id, "Hello everyone!")

        assert result.success
        message = result.data
        assert Message.objects.filter(id=message.id, kind=MessageKind.USER).exists()
        assert listener.drain() == [message]

    def test_broadcast_message_carries_loaded_sender(
        self, dispatcher, registry, group_chat, member_user, django_assert_num_queries
    ):
        """
        Live delivery can render the author without touching the database.

        Why it matters: the WebSocket pump runs on the event loop, where
        ORM access is not allowed.
        """
        listener = listen(registry, group_chat.id)

        dispatcher.post_message(member_user.id, group_chat.id, "hi")
        [delivered] = listener.drain()

        with django_assert_num_queries(0):
            data = MessageSerializer(delivered).data
        assert data["sender"]["id"] == str(member_user.id)
        assert data["sender"]["display_name"] == "Bob"

    def test_accepts_string_chat_id(self, dispatcher, group_chat, admin_user):
        result = dispatcher.post_message(admin_user.id, str(group_chat.id), "hi")

        assert result.success
        assert result.data.chat_id == group_chat.id

    def test_text_is_stored_as_sent(self, dispatcher, group_chat, admin_user):
        result = dispatcher.post_message(admin_user.id, group_chat.id, "  padded  ")

        assert result.data.text == "  padded  "

    @pytest.mark.parametrize("text", ["", "   ", "\n\t", None])
    def test_empty_text_is_rejected(self, dispatcher, registry, group_chat, admin_user, text):
        listener = listen(registry, group_chat.id)

        result = dispatcher.post_message(admin_user.id, group_chat.id, text)

        assert not result.success
        assert result.error_code == "VALIDATION_ERROR"
        assert not Message.objects.exists()
        assert listener.drain() == []

    def test_text_at_max_length_is_accepted(self, dispatcher, group_chat, admin_user):
        text = "x" * MESSAGE_CONFIG.MAX_CONTENT_LENGTH

        assert dispatcher.post_message(admin_user.id, group_chat.id, text).success

    def test_text_over_max_length_is_rejected(self, dispatcher, group_chat, admin_user):
        text = "x" * (MESSAGE_CONFIG.MAX_CONTENT_LENGTH + 1)

        result = dispatcher.post_message(admin_user.id, group_chat.id, text)

        assert result.error_code == "VALIDATION_ERROR"

    def test_malformed_chat_id_is_rejected(self, dispatcher, admin_user):
        result = dispatcher.post_message(admin_user.id, "not-a-uuid", "hi")

        assert result.error_code == "VALIDATION_ERROR"

    def test_validation_happens_before_store_access(self, registry, admin_user):
        store = MagicMock()
        dispatcher = MessageDispatcher(store=store, registry=registry)

        dispatcher.post_message(admin_user.id, uuid.uuid4(), "")

        store.get_user_membership.assert_not_called()
        store.append_message.assert_not_called()

    def test_viewer_cannot_write(self, dispatcher, registry, group_chat, viewer_user):
        listener = listen(registry, group_chat.id)

        result = dispatcher.post_message(viewer_user.id, group_chat.id, "hi")

        assert result.error_code == "PERMISSION_DENIED"
        assert not Message.objects.exists()
        assert listener.drain() == []

    def test_outsider_cannot_write(
        self, dispatcher, registry, group_chat, admin_user, viewer_user, outsider_user
    ):
        """An outsider's post is neither stored nor delivered to any reader."""
        listeners = [
            listen(registry, group_chat.id, admin_user.id),
            listen(registry, group_chat.id, viewer_user.id),
            listen(registry, group_chat.id, outsider_user.id),
        ]

        result = dispatcher.post_message(outsider_user.id, group_chat.id, "hi")

        assert result.error_code == "PERMISSION_DENIED"
        assert not Message.objects.filter(chat=group_chat).exists()
        assert all(listener.drain() == [] for listener in listeners)

    def test_unknown_chat_is_permission_denied(self, dispatcher, admin_user):
        result = dispatcher.post_message(admin_user.id, uuid.uuid4(), "hi")

        assert result.error_code == "PERMISSION_DENIED"

    def test_viewer_cannot_write_in_channel(self, dispatcher, channel_chat, viewer_user):
        result = dispatcher.post_message(viewer_user.id, channel_chat.id, "hi")

        assert result.error_code == "PERMISSION_DENIED"

    def test_store_failure_is_not_broadcast(
        self, dispatcher, registry, group_chat, admin_user
    ):
        """
        A message that fails to persist never reaches listeners.

        Why it matters: clients must never see a message that is missing
        from history.
        """
        listener = listen(registry, group_chat.id)

        with patch.object(
            dispatcher.store,
            "append_message",
            side_effect=StoreError("database down"),
        ):
            result = dispatcher.post_message(admin_user.id, group_chat.id, "lost")

        assert result.error_code == "STORE_UNAVAILABLE"
        assert listener.drain() == []
        assert not Message.objects.exists()

    def test_store_failure_during_permission_check(self, dispatcher, group_chat, admin_user):
        with patch.object(
            dispatcher.store,
            "get_user_membership",
            side_effect=StoreError("database down"),
        ):
            result = dispatcher.post_message(admin_user.id, group_chat.id, "hi")

        assert result.error_code == "STORE_UNAVAILABLE"

    def test_persist_happens_before_broadcast(self, dispatcher, registry, group_chat, admin_user):
        """A listener woken by a broadcast can already read the message."""
        seen_in_store = []

        class CheckingListener(Listener):
            def offer(self, message):
                seen_in_store.append(Message.objects.filter(id=message.id).exists())
                return super().offer(message)

        registry.register(group_chat.id, CheckingListener())

        dispatcher.post_message(admin_user.id, group_chat.id, "hi")

        assert seen_in_store == [True]

    def test_broadcast_failure_still_returns_persisted_message(
        self, dispatcher, registry, group_chat, admin_user
    ):
        with patch.object(registry, "broadcast", side_effect=RuntimeError("boom")):
            result = dispatcher.post_message(admin_user.id, group_chat.id, "hi")

        assert result.success
        assert Message.objects.filter(id=result.data.id).exists()

    def test_sequential_messages_have_increasing_timestamps(
        self, dispatcher, group_chat, admin_user
    ):
        first = dispatcher.post_message(admin_user.id, group_chat.id, "one").data
        second = dispatcher.post_message(admin_user.id, group_chat.id, "two").data

        assert first.created_at < second.created_at

    def test_listener_order_matches_history_order(self, registry):
        """
        Concurrent senders: every listener sees history order.

        Why it matters: a client that loads history and then streams must
        not see messages reordered. The store is an in-memory stand-in so
        the threads do not contend for the test database.
        """
        chat_id = uuid.uuid4()
        appended = []
        store = MagicMock()
        store.get_user_membership.side_effect = lambda user_id, chat_id: ChatMember(
            chat_id=chat_id, user=User(id=user_id, name="Sender"), role=ChatRole.MEMBER
        )
        store.append_message.side_effect = appended.append
        dispatcher = MessageDispatcher(store=store, registry=registry)
        listener = listen(registry, chat_id)
        errors = []

        def send(prefix):
            for i in range(25):
                result = dispatcher.post_message(uuid.uuid4(), chat_id, f"{prefix}{i}")
                if not result.success:
                    errors.append(result.error)

        threads = [threading.Thread(target=send, args=(p,)) for p in "abcd"]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(timeout=10)

        delivered = listener.drain()
        assert errors == []
        assert len(delivered) == 100
        assert [m.id for m in delivered] == [m.id for m in appended]
        assert [m.created_at for m in appended] == sorted(m.created_at for m in appended)


@pytest.mark.django_db
class TestSystemMessages:
    """Tests for post_system_messages() and announce_members()."""

    def test_announce_members_posts_one_message_per_user(
        self, dispatcher, registry, group_chat, member_user, viewer_user
    ):
        listener = listen(registry, group_chat.id)

        result = dispatcher.announce_members(group_chat.id, [member_user, viewer_user])

        assert [m.text for m in result.data] == [
            "Bob joined the chat",
            "Carol joined the chat",
        ]
        assert all(m.kind == MessageKind.SYSTEM for m in result.data)
        assert [m.sender_id for m in result.data] == [member_user.id, viewer_user.id]
        assert [m.sender for m in result.data] == [member_user, viewer_user]
        assert listener.drain() == result.data

    def test_store_failure_stops_posting(self, dispatcher, group_chat, member_user):
        with patch.object(
            dispatcher.store, "append_message", side_effect=StoreError("down")
        ):
            result = dispatcher.announce_members(group_chat.id, [member_user])

        assert result.error_code == "STORE_UNAVAILABLE"


# =============================================================================
# ChatService
# =============================================================================


@pytest.mark.django_db
class TestCreateChat:
    """Tests for ChatService.create_chat()."""

    def test_create_group_makes_creator_admin(self, chat_service, admin_user, member_user):
        result = chat_service.create_chat(
            admin_user.id, ChatType.GROUP, name="Team", members=[member_user.id]
        )

        assert result.success
        roles = dict(
            ChatMember.objects.filter(chat=result.data).values_list("user_id", "role")
        )
        assert roles == {admin_user.id: ChatRole.ADMIN, member_user.id: ChatRole.MEMBER}

    def test_create_channel_makes_listed_users_viewers(
        self, chat_service, admin_user, viewer_user
    ):
        result = chat_service.create_chat(
            admin_user.id, ChatType.CHANNEL, name="News", members=[viewer_user.id]
        )

        membership = ChatMember.objects.get(chat=result.data, user=viewer_user)
        assert membership.role == ChatRole.VIEWER

    def test_create_group_posts_join_message_per_member_creator_first(
        self, chat_service, admin_user, member_user, viewer_user
    ):
        result = chat_service.create_chat(
            admin_user.id,
            ChatType.GROUP,
            name="Team",
            members=[member_user.id, viewer_user.id],
        )

        texts = list(
            Message.objects.filter(chat=result.data, kind=MessageKind.SYSTEM)
            .order_by("created_at", "id")
            .values_list("text", flat=True)
        )
        assert texts == [
            "Alice joined the chat",
            "Bob joined the chat",
            "Carol joined the chat",
        ]

    def test_creator_and_duplicates_are_not_listed_twice(
        self, chat_service, admin_user, member_user
    ):
        result = chat_service.create_chat(
            admin_user.id,
            ChatType.GROUP,
            name="Team",
            members=[member_user.id, str(member_user.id), admin_user.id],
        )

        assert ChatMember.objects.filter(chat=result.data).count() == 2

    def test_group_name_is_required(self, chat_service, admin_user):
        result = chat_service.create_chat(admin_user.id, ChatType.GROUP, name="   ")

        assert result.error_code == "VALIDATION_ERROR"
        assert not Chat.objects.exists()

    def test_invalid_chat_type(self, chat_service, admin_user):
        result = chat_service.create_chat(admin_user.id, 7, name="Team")

        assert result.error_code == "VALIDATION_ERROR"

    def test_unknown_member_is_not_found(self, chat_service, admin_user):
        missing = uuid.uuid4()

        result = chat_service.create_chat(
            admin_user.id, ChatType.GROUP, name="Team", members=[missing]
        )

        assert result.error_code == "NOT_FOUND"
        assert result.errors == {"members": [str(missing)]}
        assert not Chat.objects.exists()

    def test_malformed_member_id(self, chat_service, admin_user):
        result = chat_service.create_chat(
            admin_user.id, ChatType.GROUP, name="Team", members=["bogus"]
        )

        assert result.error_code == "VALIDATION_ERROR"

    def test_create_dialog_has_two_members_and_no_system_messages(
        self, chat_service, admin_user, member_user
    ):
        result = chat_service.create_chat(
            admin_user.id, ChatType.DIALOG, members=[member_user.id]
        )

        chat = result.data
        assert chat.is_dialog
        assert chat.name == ""
        assert set(
            ChatMember.objects.filter(chat=chat).values_list("role", flat=True)
        ) == {ChatRole.MEMBER}
        assert not Message.objects.filter(chat=chat).exists()

    def test_existing_dialog_is_returned(self, chat_service, dialog_chat, admin_user, member_user):
        result = chat_service.create_chat(
            member_user.id, ChatType.DIALOG, members=[admin_user.id]
        )

        assert result.data == dialog_chat
        assert Chat.objects.filter(chat_type=ChatType.DIALOG).count() == 1

    @pytest.mark.parametrize("count", [0, 2])
    def test_dialog_needs_exactly_one_other_user(self, chat_service, admin_user, count):
        others = [UserFactory().id for _ in range(count)]

        result = chat_service.create_chat(admin_user.id, ChatType.DIALOG, members=others)

        assert result.error_code == "VALIDATION_ERROR"

    def test_store_failure(self, chat_service, admin_user):
        with patch.object(
            chat_service.store, "create_chat", side_effect=StoreError("down")
        ):
            result = chat_service.create_chat(admin_user.id, ChatType.GROUP, name="Team")

        assert result.error_code == "STORE_UNAVAILABLE"


@pytest.mark.django_db
class TestAddMembers:
    """Tests for ChatService.add_members()."""

    def test_admin_adds_member_with_join_message(
        self, chat_service, registry, group_chat, admin_user
    ):
        newcomer = UserFactory(name="Dave")
        listener = listen(registry, group_chat.id)

        result = chat_service.add_members(admin_user.id, group_chat.id, [newcomer.id])

        assert result.success
        membership = ChatMember.objects.get(chat=group_chat, user=newcomer)
        assert membership.role == ChatRole.MEMBER
        assert [m.text for m in listener.drain()] == ["Dave joined the chat"]

    def test_explicit_role(self, chat_service, group_chat, admin_user):
        newcomer = UserFactory()

        chat_service.add_members(
            admin_user.id, group_chat.id, [newcomer.id], role=ChatRole.VIEWER
        )

        assert ChatMember.objects.get(chat=group_chat, user=newcomer).role == ChatRole.VIEWER

    def test_channel_default_role_is_viewer(self, chat_service, channel_chat, admin_user):
        newcomer = UserFactory()

        chat_service.add_members(admin_user.id, channel_chat.id, [newcomer.id])

        assert ChatMember.objects.get(chat=channel_chat, user=newcomer).role == ChatRole.VIEWER

    def test_existing_member_rejects_whole_request(
        self, chat_service, group_chat, admin_user, member_user
    ):
        newcomer = UserFactory()

        result = chat_service.add_members(
            admin_user.id, group_chat.id, [newcomer.id, member_user.id]
        )

        assert result.error_code == "ALREADY_MEMBER"
        assert result.errors == {"members": [str(member_user.id)]}
        assert not ChatMember.objects.filter(user=newcomer).exists()
        assert not Message.objects.filter(chat=group_chat).exists()

    @pytest.mark.parametrize("actor", ["member_user", "viewer_user"])
    def test_non_admin_is_denied(self, request, chat_service, group_chat, actor):
        user = request.getfixturevalue(actor)

        result = chat_service.add_members(user.id, group_chat.id, [UserFactory().id])

        assert result.error_code == "PERMISSION_DENIED"

    def test_outsider_sees_not_found(self, chat_service, group_chat, outsider_user):
        result = chat_service.add_members(
            outsider_user.id, group_chat.id, [UserFactory().id]
        )

        assert result.error_code == "NOT_FOUND"

    def test_dialog_cannot_grow(self, chat_service, dialog_chat, admin_user):
        # Dialog participants are plain members, so promote one to reach the check
        ChatMember.objects.filter(chat=dialog_chat, user=admin_user).update(
            role=ChatRole.ADMIN
        )

        result = chat_service.add_members(admin_user.id, dialog_chat.id, [UserFactory().id])

        assert result.error_code == "VALIDATION_ERROR"

    def test_unknown_user_is_not_found(self, chat_service, group_chat, admin_user):
        result = chat_service.add_members(admin_user.id, group_chat.id, [uuid.uuid4()])

        assert result.error_code == "NOT_FOUND"

    def test_empty_list_is_rejected(self, chat_service, group_chat, admin_user):
        result = chat_service.add_members(admin_user.id, group_chat.id, [])

        assert result.error_code == "VALIDATION_ERROR"

    def test_invalid_role_is_rejected(self, chat_service, group_chat, admin_user):
        result = chat_service.add_members(
            admin_user.id, group_chat.id, [UserFactory().id], role=9
        )

        assert result.error_code == "VALIDATION_ERROR"


@pytest.mark.django_db
class TestUpdateChat:
    """Tests for ChatService.update_chat()."""

    def test_admin_renames(self, chat_service, group_chat, admin_user):
        result = chat_service.update_chat(admin_user.id, group_chat.id, name=" Renamed ")

        assert result.data.name == "Renamed"

    def test_admin_updates_description_only(self, chat_service, group_chat, admin_user):
        result = chat_service.update_chat(
            admin_user.id, group_chat.id, description="About us"
        )

        assert result.data.name == "Project Team"
        assert result.data.description == "About us"

    def test_member_is_denied(self, chat_service, group_chat, member_user):
        result = chat_service.update_chat(member_user.id, group_chat.id, name="Mine")

        assert result.error_code == "PERMISSION_DENIED"

    def test_outsider_sees_not_found(self, chat_service, group_chat, outsider_user):
        result = chat_service.update_chat(outsider_user.id, group_chat.id, name="Mine")

        assert result.error_code == "NOT_FOUND"

    def test_nothing_to_update(self, chat_service, group_chat, admin_user):
        result = chat_service.update_chat(admin_user.id, group_chat.id)

        assert result.error_code == "VALIDATION_ERROR"

    def test_blank_name(self, chat_service, group_chat, admin_user):
        result = chat_service.update_chat(admin_user.id, group_chat.id, name="  ")

        assert result.error_code == "VALIDATION_ERROR"


@pytest.mark.django_db
class TestFindDialogService:
    """Tests for ChatService.find_dialog()."""

    def test_found(self, chat_service, dialog_chat, admin_user, member_user):
        assert chat_service.find_dialog(admin_user.id, member_user.id).data == dialog_chat

    def test_not_found(self, chat_service, admin_user, outsider_user):
        result = chat_service.find_dialog(admin_user.id, outsider_user.id)

        assert result.error_code == "NOT_FOUND"

    def test_same_user(self, chat_service, admin_user):
        result = chat_service.find_dialog(admin_user.id, admin_user.id)

        assert result.error_code == "VALIDATION_ERROR"


# =============================================================================
# ChatAssemblyService
# =============================================================================


@pytest.mark.django_db
class TestListChats:
    """Tests for ChatAssemblyService.list_chats_for_user()."""

    def test_lists_every_chat_with_role(
        self, assembly, group_chat, channel_chat, dialog_chat, admin_user
    ):
        summaries = {s.chat.id: s for s in assembly.list_chats_for_user(admin_user.id)}

        assert set(summaries) == {group_chat.id, channel_chat.id, dialog_chat.id}
        assert summaries[group_chat.id].role == ChatRole.ADMIN
        assert summaries[dialog_chat.id].role == ChatRole.MEMBER

    def test_dialog_is_titled_after_other_user(
        self, assembly, dialog_chat, admin_user, member_user
    ):
        [alice_view] = assembly.list_chats_for_user(admin_user.id)
        [bob_view] = assembly.list_chats_for_user(member_user.id)

        assert alice_view.title == "Bob"
        assert bob_view.title == "Alice"

    def test_ordered_by_last_activity(
        self, assembly, group_chat, channel_chat, admin_user
    ):
        MessageFactory(chat=channel_chat, sender=admin_user, text="older")
        latest = MessageFactory(chat=group_chat, sender=admin_user, text="newer")

        summaries = assembly.list_chats_for_user(admin_user.id)

        assert [s.chat.id for s in summaries] == [group_chat.id, channel_chat.id]
        assert summaries[0].last_message == latest

    def test_empty_chat_has_no_last_message(self, assembly, group_chat, admin_user):
        [summary] = assembly.list_chats_for_user(admin_user.id)

        assert summary.last_message is None
        assert summary.last_activity == group_chat.created_at

    def test_user_without_chats(self, assembly, outsider_user):
        assert assembly.list_chats_for_user(outsider_user.id) == []

    def test_dialog_members_are_read_once_for_all_dialogs(
        self, assembly, dialog_chat, admin_user, viewer_user
    ):
        second_dialog = ChatFactory(chat_type=ChatType.DIALOG, name="")
        ChatMemberFactory(chat=second_dialog, user=admin_user, role=ChatRole.MEMBER)
        ChatMemberFactory(chat=second_dialog, user=viewer_user, role=ChatRole.MEMBER)

        with (
            patch.object(
                assembly.store,
                "get_users_of_chats",
                wraps=assembly.store.get_users_of_chats,
            ) as get_users_of_chats,
            patch.object(assembly.store, "get_users_of_chat") as get_users_of_chat,
        ):
            summaries = assembly.list_chats_for_user(admin_user.id)

        get_users_of_chats.assert_called_once()
        get_users_of_chat.assert_not_called()
        assert {s.title for s in summaries} == {"Bob", "Carol"}

    def test_last_message_sender_is_loaded(
        self, assembly, group_chat, member_user, admin_user, django_assert_num_queries
    ):
        MessageFactory(chat=group_chat, sender=member_user, text="latest")

        [summary] = assembly.list_chats_for_user(admin_user.id)

        with django_assert_num_queries(0):
            assert summary.last_message.sender.display_name == "Bob"

    def test_store_failure_raises(self, assembly, admin_user):
        with patch.object(assembly.store, "get_chats", side_effect=StoreError("down")):
            with pytest.raises(StoreError):
                assembly.list_chats_for_user(admin_user.id)


@pytest.mark.django_db
class TestChatDetail:
    """Tests for ChatAssemblyService.get_chat_detail()."""

    def test_admin_flags(self, assembly, chat_with_history, admin_user):
        chat, _ = chat_with_history

        detail = assembly.get_chat_detail(admin_user.id, chat.id).data

        assert detail.title == "Project Team"
        assert detail.role == ChatRole.ADMIN
        assert detail.is_admin and detail.can_write and detail.is_member
        assert detail.is_private is False
        assert len(detail.members) == 3
        assert [m.text for m in detail.messages] == ["m5", "m4", "m3", "m2", "m1"]

    def test_viewer_flags(self, assembly, group_chat, viewer_user):
        detail = assembly.get_chat_detail(viewer_user.id, group_chat.id).data

        assert detail.is_admin is False
        assert detail.can_write is False
        assert detail.is_member is False

    def test_dialog_detail(self, assembly, dialog_chat, admin_user):
        detail = assembly.get_chat_detail(admin_user.id, dialog_chat.id).data

        assert detail.is_private is True
        assert detail.title == "Bob"

    def test_paging(self, assembly, chat_with_history, member_user):
        chat, _ = chat_with_history

        detail = assembly.get_chat_detail(member_user.id, chat.id, limit=3, offset=0).data

        assert [m.text for m in detail.messages] == ["m5", "m4", "m3"]

    def test_outsider_sees_not_found(self, assembly, group_chat, outsider_user):
        result = assembly.get_chat_detail(outsider_user.id, group_chat.id)

        assert result.error_code == "NOT_FOUND"

    def test_unknown_chat_is_not_found(self, assembly, admin_user):
        result = assembly.get_chat_detail(admin_user.id, uuid.uuid4())

        assert result.error_code == "NOT_FOUND"

    def test_outsider_check_precedes_data_reads(self, assembly, group_chat, outsider_user):
        with patch.object(assembly.store, "get_messages") as get_messages:
            assembly.get_chat_detail(outsider_user.id, group_chat.id)

        get_messages.assert_not_called()


@pytest.mark.django_db
class TestGetMessages:
    """Tests for ChatAssemblyService.get_messages()."""

    def test_first_page(self, assembly, chat_with_history, viewer_user):
        chat, _ = chat_with_history

        result = assembly.get_messages(viewer_user.id, chat.id, limit=3, offset=0)

        assert [m.text for m in result.data] == ["m5", "m4", "m3"]

    def test_offset_near_end(self, assembly, chat_with_history, viewer_user):
        chat, _ = chat_with_history

        result = assembly.get_messages(viewer_user.id, chat.id, limit=3, offset=4)

        assert [m.text for m in result.data] == ["m1"]

    def test_offset_past_end(self, assembly, chat_with_history, viewer_user):
        chat, _ = chat_with_history

        result = assembly.get_messages(viewer_user.id, chat.id, limit=3, offset=10)

        assert result.success
        assert result.data == []

    def test_limit_is_clamped(self, assembly, chat_with_history, viewer_user):
        chat, _ = chat_with_history

        with patch.object(assembly.store, "get_messages", return_value=[]) as get_messages:
            assembly.get_messages(viewer_user.id, chat.id, limit=10_000)

        get_messages.assert_called_once_with(chat.id, PAGINATION_CONFIG.MAX_LIMIT, 0)

    @pytest.mark.parametrize("limit,offset", [(-1, 0), (10, -1), ("x", 0)])
    def test_invalid_paging(self, assembly, group_chat, viewer_user, limit, offset):
        result = assembly.get_messages(viewer_user.id, group_chat.id, limit, offset)

        assert result.error_code == "VALIDATION_ERROR"

    def test_outsider_sees_not_found(self, assembly, chat_with_history, outsider_user):
        chat, _ = chat_with_history

        result = assembly.get_messages(outsider_user.id, chat.id)

        assert result.error_code == "NOT_FOUND"

    def test_store_failure(self, assembly, group_chat, viewer_user):
        with patch.object(
            assembly.store, "get_messages", side_effect=StoreError("down")
        ):
            result = assembly.get_messages(viewer_user.id, group_chat.id)

        assert result.error_code == "STORE_UNAVAILABLE"

    def test_senders_are_loaded_with_the_page(
        self, assembly, chat_with_history, viewer_user, django_assert_num_queries
    ):
        chat, _ = chat_with_history
        messages = assembly.get_messages(viewer_user.id, chat.id, limit=5).data

        with django_assert_num_queries(0):
            names = [m.sender.display_name for m in messages]

        assert names == ["Alice", "Bob", "Alice", "Bob", "Alice"]


@pytest.mark.django_db
class TestSearchMessages:
    """Tests for ChatAssemblyService.search_messages()."""

    @pytest.fixture
    def searchable_chat(self, group_chat, admin_user, member_user):
        MessageFactory(chat=group_chat, sender=admin_user, text="Deploy is on Friday")
        MessageFactory(chat=group_chat, sender=member_user, text="Lunch?")
        MessageFactory(chat=group_chat, sender=member_user, text="friday works for me")
        MessageFactory(
            chat=group_chat, sender=member_user, text="Bob joined Friday", kind=MessageKind.SYSTEM
        )
        return group_chat

    def test_matches_case_insensitively_newest_first(
        self, assembly, searchable_chat, viewer_user
    ):
        result = assembly.search_messages(viewer_user.id, searchable_chat.id, "FRIDAY")

        assert [m.text for m in result.data] == [
            "friday works for me",
            "Deploy is on Friday",
        ]

    def test_system_messages_are_not_matched(self, assembly, searchable_chat, viewer_user):
        result = assembly.search_messages(viewer_user.id, searchable_chat.id, "joined")

        assert result.data == []

    def test_paging(self, assembly, searchable_chat, viewer_user):
        result = assembly.search_messages(
            viewer_user.id, searchable_chat.id, "friday", limit=1, offset=1
        )

        assert [m.text for m in result.data] == ["Deploy is on Friday"]

    def test_other_chats_are_not_searched(
        self, assembly, searchable_chat, channel_chat, admin_user
    ):
        MessageFactory(chat=channel_chat, sender=admin_user, text="Friday release")

        result = assembly.search_messages(admin_user.id, searchable_chat.id, "release")

        assert result.data == []

    @pytest.mark.parametrize("text", ["", " ", "x", " y ", None])
    def test_short_query_is_rejected(self, assembly, group_chat, viewer_user, text):
        result = assembly.search_messages(viewer_user.id, group_chat.id, text)

        assert result.error_code == "VALIDATION_ERROR"

    def test_outsider_sees_not_found(self, assembly, searchable_chat, outsider_user):
        with patch.object(assembly.store, "search_messages") as search:
            result = assembly.search_messages(outsider_user.id, searchable_chat.id, "friday")

        assert result.error_code == "NOT_FOUND"
        search.assert_not_called()

    def test_store_failure(self, assembly, group_chat, viewer_user):
        with patch.object(
            assembly.store, "search_messages", side_effect=StoreError("down")
        ):
            result = assembly.search_messages(viewer_user.id, group_chat.id, "friday")

        assert result.error_code == "STORE_UNAVAILABLE"
        assert result.error == "down"
