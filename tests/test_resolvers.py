from datetime import datetime, timedelta, timezone
from unittest.mock import patch
from uuid import uuid4

from tests.fakes import InMemoryStore
from tiaen.models import Conversation
from tiaen.services.conversation_service import (
    MAX_PIPELINE_ERRORS,
    default_summary,
    record_pipeline_error,
    resolve_conversation,
)
from tiaen.services.event_normalizer import InboundEvent
from tiaen.services.identity_service import display_name_for, resolve_contact
from tiaen.services.message_service import clamp_timestamp, save_inbound_message
from tiaen.services.result import ErrorKind


def _event(phone="+551199990000", body="oi", **kwargs) -> InboundEvent:
    defaults = dict(
        from_phone=phone,
        to_phone="bot",
        body=body,
        type="text",
        timestamp=datetime.now(timezone.utc),
    )
    defaults.update(kwargs)
    return InboundEvent(**defaults)


def _seed_conversation(store, contact_id, created_at) -> Conversation:
    conversation = Conversation(
        id=uuid4(),
        contact_id=contact_id,
        status="active",
        priority="medium",
        tags=[],
        context={},
        created_at=created_at,
        updated_at=created_at,
    )
    store.conversations[conversation.id] = conversation
    return conversation


class TestDisplayName:
    def test_uses_push_name(self):
        assert display_name_for("5511", "  Maria ") == "Maria"

    def test_falls_back_to_last_four_digits(self):
        assert display_name_for("+55 11 9999-0000") == "Contact 0000"


class TestResolveContact:
    def test_creates_contact_on_miss(self):
        store = InMemoryStore()

        result = resolve_contact(store, _event(push_name="Maria"), channel="whatsapp")

        assert result.ok
        contact = result.value
        assert contact.phone == "+551199990000"
        assert contact.name == "Maria"
        assert contact.tags == ["whatsapp"]
        assert contact.is_online is True

    def test_hit_updates_presence(self):
        store = InMemoryStore()
        contact = resolve_contact(store, _event()).value
        contact.is_online = False

        again = resolve_contact(store, _event()).value

        assert again.id == contact.id
        assert again.is_online is True
        assert len(store.contacts) == 1

    def test_presence_update_failure_is_swallowed(self):
        store = InMemoryStore()
        resolve_contact(store, _event())
        store.fail_on.add("update_contact")

        result = resolve_contact(store, _event())

        assert result.ok

    def test_lookup_failure_is_fatal(self):
        store = InMemoryStore()
        store.fail_on.add("get_contact_by_phone")

        result = resolve_contact(store, _event())

        assert result.failed_with(ErrorKind.TRANSIENT_STORE_ERROR)

    def test_bot_echo_resolves_recipient(self):
        store = InMemoryStore()

        contact = resolve_contact(store, _event(phone="bot", to_phone="5511", is_from_bot=True)).value

        assert contact.phone == "5511"
        assert contact.name == "Contact 5511"


class TestResolveConversation:
    def test_creates_open_conversation_with_defaults(self):
        store = InMemoryStore()
        contact = resolve_contact(store, _event()).value

        conversation = resolve_conversation(store, contact).value

        assert conversation.status == "active"
        assert conversation.priority == "medium"
        assert conversation.tags == ["whatsapp", "webhook"]
        assert conversation.sentiment == "neutral"

    def test_reuses_open_conversation(self):
        store = InMemoryStore()
        contact = resolve_contact(store, _event()).value

        first = resolve_conversation(store, contact).value
        second = resolve_conversation(store, contact).value

        assert first.id == second.id
        assert len(store.conversations) == 1

    def test_resolved_conversation_is_not_reused(self):
        store = InMemoryStore()
        contact = resolve_contact(store, _event()).value
        first = resolve_conversation(store, contact).value
        first.status = "resolved"

        second = resolve_conversation(store, contact).value

        assert second.id != first.id

    def test_picks_newest_of_duplicate_open_conversations(self):
        store = InMemoryStore()
        contact = resolve_contact(store, _event()).value
        older = resolve_conversation(store, contact).value
        older.created_at = datetime.now(timezone.utc) - timedelta(days=1)
        newer = _seed_conversation(store, contact.id, datetime.now(timezone.utc))

        assert resolve_conversation(store, contact).value.id == newer.id
        assert store.get_open_conversation_by_contact(contact.id).id == newer.id

    def test_lost_create_race_returns_newest_open_conversation(self):
        store = InMemoryStore()
        contact = resolve_contact(store, _event()).value
        now = datetime.now(timezone.utc)
        _seed_conversation(store, contact.id, now - timedelta(hours=1))
        newer = _seed_conversation(store, contact.id, now)

        with patch.object(store, "get_open_conversation_by_contact", return_value=None):
            conversation = resolve_conversation(store, contact).value

        assert conversation.id == newer.id
        assert len(store.conversations) == 2

    def test_summary_names_the_channel(self):
        store = InMemoryStore()
        contact = resolve_contact(store, _event(), channel="telegram").value

        conversation = resolve_conversation(store, contact, channel="telegram").value

        assert conversation.summary == "Conversation started via Telegram"
        assert default_summary("whatsapp") == "Conversation started via WhatsApp"
        assert default_summary("sms") == "Conversation started via sms"

    def test_pending_conversation_counts_as_open(self):
        store = InMemoryStore()
        contact = resolve_contact(store, _event()).value
        first = resolve_conversation(store, contact).value
        first.status = "pending"

        assert resolve_conversation(store, contact).value.id == first.id

    def test_store_failure(self):
        store = InMemoryStore()
        contact = resolve_contact(store, _event()).value
        store.fail_on.add("create_conversation")

        assert resolve_conversation(store, contact).failed_with(ErrorKind.TRANSIENT_STORE_ERROR)


class TestPipelineErrors:
    def test_errors_are_bounded(self):
        store = InMemoryStore()
        contact = resolve_contact(store, _event()).value
        conversation = resolve_conversation(store, contact).value

        for i in range(MAX_PIPELINE_ERRORS + 3):
            record_pipeline_error(store, conversation, "dispatch", f"error {i}", "dispatch_failed")

        errors = conversation.context["pipeline_errors"]
        assert len(errors) == MAX_PIPELINE_ERRORS
        assert errors[-1]["error"] == f"error {MAX_PIPELINE_ERRORS + 2}"


class TestClampTimestamp:
    def test_no_previous_message(self):
        ts = datetime(2024, 1, 1, tzinfo=timezone.utc)
        assert clamp_timestamp(ts, None, 5) == (ts, False)

    def test_within_tolerance_is_kept(self):
        last = datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)
        ts = last - timedelta(seconds=3)
        assert clamp_timestamp(ts, last, 5) == (ts, False)

    def test_too_old_is_floored(self):
        last = datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)
        ts = last - timedelta(hours=1)

        clamped, changed = clamp_timestamp(ts, last, 5)

        assert changed is True
        assert clamped == last - timedelta(seconds=5)


class TestSaveInboundMessage:
    def test_persists_and_advances_last_message_at(self):
        store = InMemoryStore()
        contact = resolve_contact(store, _event()).value
        conversation = resolve_conversation(store, contact).value
        ts = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)

        message = save_inbound_message(store, conversation, _event(timestamp=ts, instance_id="main")).value

        assert message.body == "oi"
        assert message.from_phone == "+551199990000"
        assert message.to_phone is None
        assert message.message_metadata["instance_id"] == "main"
        assert conversation.last_message_at == ts

    def test_late_message_keeps_provider_timestamp(self):
        store = InMemoryStore()
        contact = resolve_contact(store, _event()).value
        conversation = resolve_conversation(store, contact).value
        latest = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)
        save_inbound_message(store, conversation, _event(timestamp=latest))

        late = latest - timedelta(minutes=10)
        message = save_inbound_message(store, conversation, _event(timestamp=late), 5).value

        assert message.timestamp == latest - timedelta(seconds=5)
        assert message.message_metadata["provider_timestamp"] == late.isoformat()
        assert conversation.last_message_at == latest

    def test_persist_failure(self):
        store = InMemoryStore()
        contact = resolve_contact(store, _event()).value
        conversation = resolve_conversation(store, contact).value
        store.fail_on.add("create_message")

        result = save_inbound_message(store, conversation, _event())

        assert result.failed_with(ErrorKind.TRANSIENT_STORE_ERROR)
