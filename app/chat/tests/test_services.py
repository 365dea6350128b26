"""
Tests for chat services.

- ConversationService: rooms, membership, ownership transfer, private
  chats, directory ordering
- MessageService: append, sequence numbers, read receipts, listing,
  media

Test Organization:
    - Each service method has its own test class
    - Tests assert on ServiceResult state, error codes and database state
    - Fan-out assertions patch FanoutService._dispatch (mock_dispatch
      fixture) and run on_commit callbacks with
      django_capture_on_commit_callbacks
"""

import threading
import uuid
from concurrent.futures import ThreadPoolExecutor
from unittest.mock import patch

import pytest
from django.core.files.uploadedfile import SimpleUploadedFile
from django.db import IntegrityError, connection

from authentication.tests.factories import UserFactory
from chat.fanout import DeltaOp, Topic
from chat.models import (
    Conversation,
    ConversationKind,
    Message,
    MessageReadReceipt,
    Participant,
    PrivateChatPair,
)
from chat.services import ConversationService, MessageService
from chat.tests.factories import RoomFactory, make_private_chat, post_message
from core.exceptions import ErrorCategory
from social.tests.factories import make_friends


def dispatched(mock_dispatch):
    """(topic string, op) pairs passed to a patched FanoutService._dispatch."""
    return [(str(call.args[0]), call.args[1]) for call in mock_dispatch.call_args_list]


# =============================================================================
# TestCreateRoom
# =============================================================================


class TestCreateRoom:
    """Tests for ConversationService.create_room()."""

    def test_owner_is_only_member(self, alice):
        result = ConversationService.create_room(alice, "Team", "Our room")

        assert result.success is True
        room = result.data
        assert room.kind == ConversationKind.ROOM
        assert room.owner == alice
        assert room.description == "Our room"
        assert list(room.participants.values_list("user_id", flat=True)) == [alice.pk]

    def test_name_is_trimmed(self, alice):
        result = ConversationService.create_room(alice, "  Team  ")

        assert result.data.name == "Team"

    def test_blank_name_rejected(self, alice):
        result = ConversationService.create_room(alice, "   ")

        assert result.success is False
        assert result.error_code == "ROOM_NAME_REQUIRED"
        assert result.category == ErrorCategory.VALIDATION
        assert Conversation.objects.count() == 0

    def test_overlong_name_rejected(self, alice):
        result = ConversationService.create_room(alice, "x" * 101)

        assert result.error_code == "ROOM_NAME_TOO_LONG"

    def test_overlong_description_rejected(self, alice):
        result = ConversationService.create_room(alice, "Team", "d" * 501)

        assert result.error_code == "DESCRIPTION_TOO_LONG"

    def test_idempotency_key_returns_original_room(self, alice):
        """
        Why it matters: A client retrying room creation after a timeout
        must not end up owning two rooms.
        """
        first = ConversationService.create_room(alice, "Team", idempotency_key="c-1")
        retry = ConversationService.create_room(alice, "Team", idempotency_key="c-1")

        assert retry.success is True
        assert retry.data.id == first.data.id
        assert Conversation.objects.count() == 1

    def test_publishes_directory_insert_for_owner(
        self, alice, mock_dispatch, django_capture_on_commit_callbacks
    ):
        with django_capture_on_commit_callbacks(execute=True):
            ConversationService.create_room(alice, "Team")

        assert dispatched(mock_dispatch) == [(f"directory:{alice.pk}", DeltaOp.INSERT)]


# =============================================================================
# TestJoinRoom
# =============================================================================


class TestJoinRoom:
    """Tests for ConversationService.join_room()."""

    def test_join_adds_member(self, alice, carol):
        room = RoomFactory(owner=alice)

        result = ConversationService.join_room(room.id, carol)

        assert result.success is True
        assert room.has_member(carol)

    def test_join_is_idempotent(
        self, room, bob, mock_dispatch, django_capture_on_commit_callbacks
    ):
        """
        Why it matters: Clients retry joins; a repeat must not fail or
        announce the member twice.
        """
        with django_capture_on_commit_callbacks(execute=True):
            result = ConversationService.join_room(room.id, bob)

        assert result.success is True
        assert room.participants.filter(user=bob).count() == 1
        mock_dispatch.assert_not_called()

    def test_join_publishes_membership_and_directory_insert(
        self, room, carol, mock_dispatch, django_capture_on_commit_callbacks
    ):
        with django_capture_on_commit_callbacks(execute=True):
            ConversationService.join_room(room.id, carol)

        assert dispatched(mock_dispatch) == [
            (f"room:{room.id}", DeltaOp.MEMBERSHIP),
            (f"directory:{carol.pk}", DeltaOp.INSERT),
        ]
        membership = mock_dispatch.call_args_list[0].args[2]
        assert membership["action"] == "joined"
        assert membership["user"]["id"] == str(carol.pk)

    def test_unknown_room_not_found(self, carol):
        result = ConversationService.join_room(uuid.uuid4(), carol)

        assert result.error_code == "ROOM_NOT_FOUND"
        assert result.category == ErrorCategory.NOT_FOUND

    def test_private_chat_cannot_be_joined(self, private_chat, carol):
        result = ConversationService.join_room(private_chat.id, carol)

        assert result.category == ErrorCategory.NOT_FOUND
        assert private_chat.participants.count() == 2

    def test_member_can_add_another_user(self, room, bob, carol):
        result = ConversationService.join_room(room.id, carol.id, actor=bob)

        assert result.success is True
        assert room.has_member(carol)

    def test_non_member_cannot_add_others(self, room, carol):
        outsider = RoomFactory().owner

        result = ConversationService.join_room(room.id, carol.id, actor=outsider)

        assert result.category == ErrorCategory.PERMISSION
        assert not room.has_member(carol)

    def test_adding_unknown_user_not_found(self, room, bob):
        result = ConversationService.join_room(room.id, uuid.uuid4(), actor=bob)

        assert result.error_code == "USER_NOT_FOUND"

    def test_self_join_by_user_id(self, room, carol):
        """
        Why it matters: Callers holding only an id (e.g. from a token) can
        join without loading the User first.
        """
        result = ConversationService.join_room(room.id, carol.id)

        assert result.success is True
        assert room.has_member(carol)


# =============================================================================
# TestLeaveRoom
# =============================================================================


class TestLeaveRoom:
    """Tests for ConversationService.leave_room()."""

    def test_member_leaves(self, room, alice, bob):
        result = ConversationService.leave_room(room.id, bob)

        assert result.success is True
        assert not room.has_member(bob)
        room.refresh_from_db()
        assert room.owner == alice

    def test_owner_leaving_transfers_to_oldest_member(self, alice, bob, carol):
        """
        Why it matters: A populated room must always have an owner; the
        longest-standing member takes over.
        """
        room = RoomFactory(owner=alice, members=[bob, carol])

        result = ConversationService.leave_room(room.id, alice)

        assert result.success is True
        room.refresh_from_db()
        assert room.owner == bob
        assert not room.has_member(alice)

    def test_last_member_leaving_deletes_room(self, alice):
        room = RoomFactory(owner=alice)
        post_message(room, alice, "bye")

        result = ConversationService.leave_room(room.id, alice)

        assert result.success is True
        assert result.data is None
        assert not Conversation.objects.filter(pk=room.pk).exists()
        assert Message.objects.count() == 0

    def test_non_member_cannot_leave(self, room, carol):
        result = ConversationService.leave_room(room.id, carol)

        assert result.error_code == "NOT_A_MEMBER"
        assert result.category == ErrorCategory.PERMISSION

    def test_leave_publishes_directory_remove_and_membership(
        self, room, alice, mock_dispatch, django_capture_on_commit_callbacks
    ):
        with django_capture_on_commit_callbacks(execute=True):
            ConversationService.leave_room(room.id, alice)

        assert dispatched(mock_dispatch) == [
            (f"directory:{alice.pk}", DeltaOp.REMOVE),
            (f"room:{room.id}", DeltaOp.MEMBERSHIP),
        ]
        membership = mock_dispatch.call_args_list[1].args[2]
        assert membership["action"] == "left"
        assert membership["ownership_transferred"] is True

    def test_deletion_publishes_deleted(
        self, alice, mock_dispatch, django_capture_on_commit_callbacks
    ):
        room = RoomFactory(owner=alice)

        with django_capture_on_commit_callbacks(execute=True):
            ConversationService.leave_room(room.id, alice)

        assert (f"room:{room.id}", DeltaOp.DELETED) in dispatched(mock_dispatch)


# =============================================================================
# TestGetOrCreatePrivateChat
# =============================================================================


class TestGetOrCreatePrivateChat:
    """Tests for ConversationService.get_or_create_private_chat()."""

    def test_creates_chat_with_both_members(self, alice, bob):
        result = ConversationService.get_or_create_private_chat(alice, bob.id)

        assert result.success is True
        chat = result.data
        assert chat.kind == ConversationKind.PRIVATE
        assert chat.owner is None
        assert set(chat.participants.values_list("user_id", flat=True)) == {alice.pk, bob.pk}

    def test_same_chat_from_either_side(self, alice, bob):
        """
        Why it matters: (A, B) and (B, A) name the same pair; a second
        chat would split the conversation history.
        """
        first = ConversationService.get_or_create_private_chat(alice, bob.id)
        second = ConversationService.get_or_create_private_chat(bob, alice.id)

        assert first.data.id == second.data.id
        assert Conversation.objects.filter(kind=ConversationKind.PRIVATE).count() == 1

    def test_self_chat_is_invalid(self, alice):
        result = ConversationService.get_or_create_private_chat(alice, alice.id)

        assert result.error_code == "INVALID_TARGET"
        assert result.category == ErrorCategory.VALIDATION

    def test_unknown_user_not_found(self, alice):
        result = ConversationService.get_or_create_private_chat(alice, uuid.uuid4())

        assert result.error_code == "USER_NOT_FOUND"

    def test_inactive_user_not_found(self, alice, bob):
        bob.is_active = False
        bob.save()

        result = ConversationService.get_or_create_private_chat(alice, bob.id)

        assert result.category == ErrorCategory.NOT_FOUND

    def test_friendship_required_when_configured(self, settings, alice, bob):
        settings.CHAT_PRIVATE_CHAT_REQUIRES_FRIENDSHIP = True

        refused = ConversationService.get_or_create_private_chat(alice, bob.id)
        make_friends(alice, bob)
        allowed = ConversationService.get_or_create_private_chat(alice, bob.id)

        assert refused.error_code == "NOT_FRIENDS"
        assert refused.category == ErrorCategory.PERMISSION
        assert allowed.success is True

    def test_lost_race_returns_winner(self, alice, bob):
        """
        Why it matters: When a concurrent caller inserts the pair between
        our lookup and our insert, the unique pair_key rejects our row and
        we must hand back the winner's chat instead of an error.
        """
        winner = make_private_chat(alice, bob)
        real_find = ConversationService._find_private_chat.__func__
        calls = []

        def find_after_first_miss(cls, pair_key):
            calls.append(pair_key)
            if len(calls) == 1:
                return None
            return real_find(cls, pair_key)

        with patch.object(
            ConversationService,
            "_find_private_chat",
            classmethod(find_after_first_miss),
        ):
            result = ConversationService.get_or_create_private_chat(bob, alice.id)

        assert result.success is True
        assert result.data.id == winner.id
        assert len(calls) == 2
        assert Conversation.objects.filter(kind=ConversationKind.PRIVATE).count() == 1
        assert PrivateChatPair.objects.count() == 1

    def test_insert_failure_without_winner_is_integrity_error(self, alice, bob):
        with patch(
            "chat.services.PrivateChatPair.objects.create",
            side_effect=IntegrityError("boom"),
        ):
            result = ConversationService.get_or_create_private_chat(alice, bob.id)

        assert result.success is False
        assert result.error_code == "PRIVATE_CHAT_RACE"
        assert result.category == ErrorCategory.INTEGRITY
        assert Conversation.objects.count() == 0

    def test_publishes_directory_insert_for_both(
        self, alice, bob, mock_dispatch, django_capture_on_commit_callbacks
    ):
        with django_capture_on_commit_callbacks(execute=True):
            ConversationService.get_or_create_private_chat(alice, bob.id)

        topics = {topic for topic, _ in dispatched(mock_dispatch)}
        assert topics == {f"directory:{alice.pk}", f"directory:{bob.pk}"}


@pytest.mark.django_db(transaction=True)
class TestConcurrency:
    """
    Real threads, each on its own database connection, released together
    by a barrier so the calls overlap.
    """

    WORKERS = 8

    def run_together(self, func, count):
        barrier = threading.Barrier(self.WORKERS)

        def call(index):
            try:
                barrier.wait(timeout=10)
                return func(index)
            finally:
                connection.close()

        with ThreadPoolExecutor(max_workers=self.WORKERS) as pool:
            return list(pool.map(call, range(count)))

    def test_concurrent_calls_create_one_chat(self, mock_dispatch):
        """
        Why it matters: N callers racing on (A, B) and (B, A) must all see
        the same single chat.
        """
        alice = UserFactory()
        bob = UserFactory()

        def open_chat(index):
            first, second = (alice, bob) if index % 2 else (bob, alice)
            return ConversationService.get_or_create_private_chat(first, second.id)

        results = self.run_together(open_chat, self.WORKERS)

        assert all(result.success for result in results)
        assert len({result.data.id for result in results}) == 1
        assert Conversation.objects.filter(kind=ConversationKind.PRIVATE).count() == 1
        assert PrivateChatPair.objects.count() == 1
        assert Participant.objects.count() == 2

    def test_concurrent_appends_are_gapless(self, mock_dispatch):
        """
        Why it matters: Subscribers order and detect gaps by sequence, so
        racing senders must still produce 1..N with no holes or repeats.
        """
        alice = UserFactory()
        bob = UserFactory()
        room = RoomFactory(owner=alice, members=[bob])

        def send(index):
            sender = alice if index % 2 else bob
            return MessageService.append_message(room.id, sender, f"message {index}")

        results = self.run_together(send, self.WORKERS)

        assert all(result.success for result in results)
        sequences = sorted(result.data.sequence for result in results)
        assert sequences == list(range(1, self.WORKERS + 1))
        room.refresh_from_db()
        assert room.message_seq == self.WORKERS
        assert list(
            Message.objects.filter(conversation=room)
            .order_by("sequence")
            .values_list("sequence", flat=True)
        ) == sequences


# =============================================================================
# TestDirectory
# =============================================================================


class TestUserDirectory:
    """Tests for ConversationService.user_directory()."""

    def test_only_member_conversations(self, room, private_chat, alice, carol):
        RoomFactory(owner=carol)

        directory = list(ConversationService.user_directory(alice))

        assert {conversation.id for conversation in directory} == {room.id, private_chat.id}

    def test_most_recent_message_first(self, room, private_chat, alice, bob):
        post_message(private_chat, bob, "older")
        post_message(room, bob, "newer")

        directory = list(ConversationService.user_directory(alice))

        assert [conversation.id for conversation in directory] == [room.id, private_chat.id]

    def test_unread_count_annotation(self, room, alice, bob):
        post_message(room, bob, "one")
        second = post_message(room, bob, "two")
        post_message(room, alice, "mine")
        MessageService.mark_read(room.id, second.id, alice)

        entry = ConversationService.user_directory(alice).get(pk=room.pk)

        assert entry.unread_count == 1


class TestListRooms:
    def test_lists_rooms_by_name_with_member_count(self, room, alice):
        RoomFactory(name="Alpha", owner=alice)

        rooms = list(ConversationService.list_rooms())

        assert [r.name for r in rooms] == ["Alpha", "Team"]
        assert rooms[1].member_count == 2

    def test_search_filters_by_name(self, room, alice):
        RoomFactory(name="Alpha", owner=alice)

        rooms = list(ConversationService.list_rooms(search="tea"))

        assert [r.id for r in rooms] == [room.id]

    def test_private_chats_are_not_listed(self, private_chat):
        assert list(ConversationService.list_rooms()) == []


class TestGetConversationForMember:
    def test_member_gets_conversation(self, room, bob):
        result = ConversationService.get_conversation_for_member(room.id, bob)

        assert result.data == room

    def test_non_member_denied(self, room, carol):
        result = ConversationService.get_conversation_for_member(room.id, carol)

        assert result.category == ErrorCategory.PERMISSION

    def test_malformed_id_not_found(self, bob):
        result = ConversationService.get_conversation_for_member("nope", bob)

        assert result.error_code == "CONVERSATION_NOT_FOUND"


# =============================================================================
# TestAppendMessage
# =============================================================================


class TestAppendMessage:
    """Tests for MessageService.append_message()."""

    def test_sequences_start_at_one_and_are_gapless(self, room, alice, bob):
        """
        Why it matters: Subscribers detect lost messages by sequence gaps,
        so the log itself must never skip a number.
        """
        sequences = [
            post_message(room, sender, f"m{i}").sequence
            for i, sender in enumerate([alice, bob, alice, bob])
        ]

        assert sequences == [1, 2, 3, 4]
        room.refresh_from_db()
        assert room.message_seq == 4

    def test_sequences_are_per_conversation(self, room, private_chat, alice):
        post_message(room, alice, "a")
        post_message(room, alice, "b")

        assert post_message(private_chat, alice, "c").sequence == 1

    def test_sender_has_read_own_message(self, room, bob):
        message = post_message(room, bob, "hi")

        assert list(message.read_receipts.values_list("user_id", flat=True)) == [bob.pk]

    def test_text_is_trimmed(self, room, bob):
        assert post_message(room, bob, "  hi  ").text == "hi"

    def test_updates_last_message_summary(self, room, bob):
        message = post_message(room, bob, "hello there")

        room.refresh_from_db()
        assert room.last_message_text == "hello there"
        assert room.last_message_sender == bob
        assert room.last_message_at == message.created_at

    def test_empty_message_rejected(self, room, bob):
        result = MessageService.append_message(room.id, bob, text="   ")

        assert result.error_code == "EMPTY_MESSAGE"
        assert result.category == ErrorCategory.VALIDATION
        assert Message.objects.count() == 0

    def test_overlong_message_rejected(self, room, bob):
        result = MessageService.append_message(room.id, bob, text="x" * 10001)

        assert result.error_code == "MESSAGE_TOO_LONG"

    def test_non_member_rejected(self, room, carol):
        result = MessageService.append_message(room.id, carol, text="hi")

        assert result.category == ErrorCategory.PERMISSION
        room.refresh_from_db()
        assert room.message_seq == 0

    def test_unknown_conversation_not_found(self, bob):
        result = MessageService.append_message(uuid.uuid4(), bob, text="hi")

        assert result.category == ErrorCategory.NOT_FOUND

    def test_malformed_media_rejected(self, room, bob):
        result = MessageService.append_message(
            room.id, bob, media={"kind": "audio", "url": "/media/x.mp3"}
        )

        assert result.error_code == "INVALID_MEDIA"

    def test_media_must_exist_in_blob_store(self, room, bob, media_root):
        """
        Why it matters: A message must never reference media that was not
        durably stored first.
        """
        result = MessageService.append_message(
            room.id, bob, media={"kind": "image", "url": "/media/chat-media/missing.png"}
        )

        assert result.error_code == "MEDIA_NOT_DURABLE"

    def test_media_only_message(self, room, bob, media_root):
        upload = MessageService.upload_media(
            room.id,
            bob,
            SimpleUploadedFile("cat.png", b"\x89PNG...", content_type="image/png"),
        )

        message = post_message(room, bob, text="", media=upload.data)

        assert message.media == upload.data
        room.refresh_from_db()
        assert room.last_message_text == "[image]"

    def test_publishes_insert_and_directory_summaries(
        self, room, alice, bob, mock_dispatch, django_capture_on_commit_callbacks
    ):
        with django_capture_on_commit_callbacks(execute=True):
            post_message(room, bob, "hi")

        assert dispatched(mock_dispatch) == [
            (f"room:{room.id}", DeltaOp.INSERT),
            (f"directory:{alice.pk}", DeltaOp.LAST_MESSAGE),
            (f"directory:{bob.pk}", DeltaOp.LAST_MESSAGE),
        ]
        insert = mock_dispatch.call_args_list[0].args[2]
        assert insert["sequence"] == 1
        assert insert["read_by"] == [str(bob.pk)]

    def test_private_chat_uses_private_chat_topic(
        self, private_chat, alice, mock_dispatch, django_capture_on_commit_callbacks
    ):
        with django_capture_on_commit_callbacks(execute=True):
            post_message(private_chat, alice, "hi")

        assert dispatched(mock_dispatch)[0] == (
            str(Topic.private_chat(private_chat.id)),
            DeltaOp.INSERT,
        )

    def test_rejected_append_publishes_nothing(
        self, room, carol, mock_dispatch, django_capture_on_commit_callbacks
    ):
        with django_capture_on_commit_callbacks(execute=True):
            MessageService.append_message(room.id, carol, text="hi")

        mock_dispatch.assert_not_called()


# =============================================================================
# TestMarkRead
# =============================================================================


class TestMarkRead:
    """Tests for MessageService.mark_read()."""

    def test_adds_reader(self, room, alice, bob):
        message = post_message(room, bob, "hi")

        result = MessageService.mark_read(room.id, message.id, alice)

        assert result.success is True
        assert set(message.read_receipts.values_list("user_id", flat=True)) == {
            alice.pk,
            bob.pk,
        }

    def test_is_idempotent(
        self, room, alice, bob, mock_dispatch, django_capture_on_commit_callbacks
    ):
        """
        Why it matters: Clients resend read marks freely; a repeat must not
        add a second receipt or a second read_by delta.
        """
        message = post_message(room, bob, "hi")

        with django_capture_on_commit_callbacks(execute=True):
            MessageService.mark_read(room.id, message.id, alice)
            MessageService.mark_read(room.id, message.id, alice)

        assert MessageReadReceipt.objects.filter(message=message, user=alice).count() == 1
        assert dispatched(mock_dispatch) == [(f"room:{room.id}", DeltaOp.READ_BY)]
        payload = mock_dispatch.call_args.args[2]
        assert payload["read_by"] == sorted([str(alice.pk), str(bob.pk)])

    def test_message_from_other_conversation_not_found(self, room, private_chat, alice):
        message = post_message(private_chat, alice, "hi")

        result = MessageService.mark_read(room.id, message.id, alice)

        assert result.error_code == "MESSAGE_NOT_FOUND"

    def test_non_member_denied(self, room, bob, carol):
        message = post_message(room, bob, "hi")

        result = MessageService.mark_read(room.id, message.id, carol)

        assert result.category == ErrorCategory.PERMISSION


class TestMarkAllRead:
    def test_marks_every_unread_message(self, room, alice, bob):
        for text in ["a", "b", "c"]:
            post_message(room, bob, text)

        result = MessageService.mark_all_read(room.id, alice)

        assert result.data == 3
        assert MessageService.unread_count(room, alice) == 0

    def test_up_to_sequence(self, room, alice, bob):
        for text in ["a", "b", "c"]:
            post_message(room, bob, text)

        result = MessageService.mark_all_read(room.id, alice, up_to_sequence=2)

        assert result.data == 2
        assert MessageService.unread_count(room, alice) == 1

    def test_repeat_marks_nothing(self, room, alice, bob):
        post_message(room, bob, "a")
        MessageService.mark_all_read(room.id, alice)

        assert MessageService.mark_all_read(room.id, alice).data == 0

    def test_publishes_read_by_per_message(
        self, room, alice, bob, mock_dispatch, django_capture_on_commit_callbacks
    ):
        post_message(room, bob, "a")
        post_message(room, bob, "b")

        with django_capture_on_commit_callbacks(execute=True):
            MessageService.mark_all_read(room.id, alice)

        assert [op for _, op in dispatched(mock_dispatch)] == [DeltaOp.READ_BY] * 2
        sequences = [call.args[2]["sequence"] for call in mock_dispatch.call_args_list]
        assert sequences == [1, 2]


# =============================================================================
# TestListMessages
# =============================================================================


class TestListMessages:
    """Tests for MessageService.list_messages()."""

    def test_returns_messages_in_sequence_order(self, room, alice, bob):
        for i in range(5):
            post_message(room, alice if i % 2 else bob, f"m{i}")

        result = MessageService.list_messages(room.id, alice)

        assert [message.sequence for message in result.data] == [1, 2, 3, 4, 5]

    def test_since_sequence_excludes_earlier(self, room, alice):
        for i in range(5):
            post_message(room, alice, f"m{i}")

        result = MessageService.list_messages(room.id, alice, since_sequence=3)

        assert [message.text for message in result.data] == ["m3", "m4"]

    def test_negative_since_rejected(self, room, alice):
        result = MessageService.list_messages(room.id, alice, since_sequence=-1)

        assert result.error_code == "INVALID_SEQUENCE"

    def test_non_member_denied_before_iteration(self, room, carol):
        result = MessageService.list_messages(room.id, carol)

        assert result.success is False
        assert result.category == ErrorCategory.PERMISSION


class TestUnreadCount:
    def test_counts_messages_from_others_only(self, room, alice, bob):
        post_message(room, bob, "a")
        post_message(room, bob, "b")
        post_message(room, alice, "mine")

        assert MessageService.unread_count(room, alice) == 2
        assert MessageService.unread_count(room, bob) == 1


# =============================================================================
# TestUploadMedia
# =============================================================================


class TestUploadMedia:
    """Tests for MessageService.upload_media()."""

    def test_stores_image(self, room, bob, media_root):
        upload = SimpleUploadedFile("cat.png", b"png-bytes", content_type="image/png")

        result = MessageService.upload_media(room.id, bob, upload)

        assert result.success is True
        assert result.data["kind"] == "image"
        assert result.data["url"].startswith(f"/media/chat-media/{room.id}/")
        assert result.data["url"].endswith(".png")

    def test_video_kind(self, room, bob, media_root):
        upload = SimpleUploadedFile("clip.mp4", b"mp4-bytes", content_type="video/mp4")

        result = MessageService.upload_media(room.id, bob, upload)

        assert result.data["kind"] == "video"

    def test_unsupported_type_rejected(self, room, bob, media_root):
        upload = SimpleUploadedFile("doc.pdf", b"%PDF", content_type="application/pdf")

        result = MessageService.upload_media(room.id, bob, upload)

        assert result.error_code == "UNSUPPORTED_MEDIA_TYPE"

    def test_too_large_rejected(self, settings, room, bob, media_root):
        settings.CHAT_MEDIA_MAX_UPLOAD_BYTES = 4
        upload = SimpleUploadedFile("cat.png", b"too-big", content_type="image/png")

        result = MessageService.upload_media(room.id, bob, upload)

        assert result.error_code == "MEDIA_TOO_LARGE"

    def test_storage_failure_is_transient(self, room, bob, media_root):
        upload = SimpleUploadedFile("cat.png", b"png", content_type="image/png")

        with patch(
            "core.storage.DjangoStorageBlobStore.put", side_effect=OSError("disk full")
        ):
            result = MessageService.upload_media(room.id, bob, upload)

        assert result.category == ErrorCategory.TRANSIENT

    def test_non_member_denied(self, room, carol, media_root):
        upload = SimpleUploadedFile("cat.png", b"png", content_type="image/png")

        result = MessageService.upload_media(room.id, carol, upload)

        assert result.category == ErrorCategory.PERMISSION


@pytest.mark.parametrize("member_count", [1, 3])
def test_members_in_join_order(db, member_count):
    from authentication.tests.factories import UserFactory

    owner = UserFactory()
    others = [UserFactory() for _ in range(member_count)]
    room = RoomFactory(owner=owner, members=others)

    assert list(ConversationService.members(room)) == [owner, *others]
    assert Participant.objects.filter(conversation=room).count() == member_count + 1
