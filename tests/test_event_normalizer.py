from datetime import datetime, timezone

import pytest

from tiaen.services.event_normalizer import (
    BOT_SENTINEL,
    EventKind,
    IgnoredEvent,
    InboundEvent,
    normalize,
    normalize_phone,
    parse_timestamp,
)
from tiaen.services.result import ErrorKind


class TestGenericMessages:
    def test_bare_message_data(self):
        result = normalize({"from": "+551199990000", "body": "oi", "type": "text"})

        assert result.ok
        event = result.value
        assert isinstance(event, InboundEvent)
        assert event.from_phone == "+551199990000"
        assert event.to_phone == BOT_SENTINEL
        assert event.body == "oi"
        assert event.type == "text"
        assert event.is_from_bot is False
        assert event.contact_phone == "+551199990000"

    def test_envelope_with_instance(self):
        result = normalize(
            {
                "event": "message",
                "instanceId": "main",
                "data": {
                    "id": "wamid-1",
                    "from": "551199990000@s.whatsapp.net",
                    "body": "Hello",
                    "type": "text",
                    "timestamp": 1700000000,
                    "pushName": "Maria",
                },
            }
        )

        event = result.value
        assert event.from_phone == "551199990000"
        assert event.instance_id == "main"
        assert event.provider_message_id == "wamid-1"
        assert event.push_name == "Maria"
        assert event.timestamp == datetime.fromtimestamp(1700000000, tz=timezone.utc)

    def test_bot_sender_marks_bot_origin(self):
        result = normalize({"from": "bot", "to": "5511", "body": "hi", "type": "text"})

        event = result.value
        assert event.is_from_bot is True
        assert event.contact_phone == "5511"

    @pytest.mark.parametrize("missing", ["from", "body", "type"])
    def test_missing_required_field_is_malformed(self, missing):
        data = {"from": "5511", "body": "oi", "type": "text"}
        del data[missing]

        result = normalize({"event": "message", "data": data})

        assert not result.ok
        assert result.failed_with(ErrorKind.MALFORMED_EVENT)
        assert missing in result.error

    def test_unknown_type_is_malformed(self):
        result = normalize({"from": "5511", "body": "oi", "type": "sticker"})
        assert result.failed_with(ErrorKind.MALFORMED_EVENT)

    def test_non_object_payload_is_malformed(self):
        assert normalize(["not", "an", "object"]).failed_with(ErrorKind.MALFORMED_EVENT)

    def test_invalid_timestamp_is_malformed(self):
        result = normalize({"from": "5511", "body": "oi", "type": "text", "timestamp": "yesterday"})
        assert result.failed_with(ErrorKind.MALFORMED_EVENT)


class TestStateEvents:
    @pytest.mark.parametrize(
        "event,kind",
        [
            ("status", EventKind.STATUS),
            ("qr", EventKind.QR),
            ("disconnect", EventKind.DISCONNECT),
            ("CONNECTION_UPDATE", EventKind.STATUS),
            ("QRCODE_UPDATED", EventKind.QR),
        ],
    )
    def test_state_events_are_ignored_for_pipeline(self, event, kind):
        result = normalize({"event": event, "instanceId": "main", "data": {"status": "open"}})

        assert result.ok
        assert isinstance(result.value, IgnoredEvent)
        assert result.value.kind == kind
        assert result.value.instance_id == "main"

    def test_unknown_event_is_ignored(self):
        result = normalize({"event": "presence.update", "data": {}})
        assert result.value.kind == EventKind.UNKNOWN


class TestEvolutionMessages:
    def _upsert(self, message: dict, from_me: bool = False) -> dict:
        return {
            "event": "MESSAGES_UPSERT",
            "instance": "tiaen",
            "data": {
                "messages": [
                    {
                        "key": {"id": "3EB0", "remoteJid": "551199990000@s.whatsapp.net", "fromMe": from_me},
                        "pushName": "Maria",
                        "message": message,
                        "messageTimestamp": 1700000000,
                    }
                ]
            },
        }

    def test_conversation_text(self):
        event = normalize(self._upsert({"conversation": "Qual o horário?"})).value

        assert event.from_phone == "551199990000"
        assert event.body == "Qual o horário?"
        assert event.type == "text"
        assert event.instance_id == "tiaen"
        assert event.provider_message_id == "3EB0"

    def test_extended_text(self):
        event = normalize(self._upsert({"extendedTextMessage": {"text": "link aqui"}})).value
        assert event.body == "link aqui"

    def test_image_with_caption(self):
        event = normalize(self._upsert({"imageMessage": {"caption": "foto", "mimetype": "image/jpeg"}})).value

        assert event.type == "image"
        assert event.body == "foto"
        assert event.metadata["mime_type"] == "image/jpeg"

    def test_audio_without_caption_gets_placeholder_body(self):
        event = normalize(self._upsert({"audioMessage": {"mimetype": "audio/ogg"}})).value

        assert event.type == "audio"
        assert event.body == "[audio]"

    def test_from_me_is_bot_echo(self):
        event = normalize(self._upsert({"conversation": "Olá!"}, from_me=True)).value

        assert event.is_from_bot is True
        assert event.from_phone == BOT_SENTINEL
        assert event.to_phone == "551199990000"

    def test_missing_message_content_is_malformed(self):
        result = normalize(self._upsert({}))
        assert result.failed_with(ErrorKind.MALFORMED_EVENT)

    @pytest.mark.parametrize(
        "message",
        [
            {"conversation": 12345},
            {"extendedTextMessage": "oi"},
            {"extendedTextMessage": {"text": ["oi"]}},
            {"imageMessage": "foto"},
            {"imageMessage": {"caption": {"text": "foto"}}},
        ],
    )
    def test_wrongly_typed_content_is_malformed(self, message):
        result = normalize(self._upsert(message))

        assert result.failed_with(ErrorKind.MALFORMED_EVENT)

    def test_key_that_is_not_an_object_is_malformed(self):
        payload = {"event": "messages.upsert", "data": {"key": "abc", "message": {"conversation": "oi"}}}

        assert normalize(payload).failed_with(ErrorKind.MALFORMED_EVENT)

    def test_messages_that_is_not_a_list_is_malformed(self):
        payload = {"event": "messages.upsert", "data": {"messages": 42}}

        assert normalize(payload).failed_with(ErrorKind.MALFORMED_EVENT)


class TestHelpers:
    def test_normalize_phone_strips_jid_and_device(self):
        assert normalize_phone("551199990000:12@s.whatsapp.net") == "551199990000"

    def test_parse_timestamp_seconds_and_milliseconds_agree(self):
        assert parse_timestamp(1700000000) == parse_timestamp(1700000000000)

    def test_parse_timestamp_iso(self):
        assert parse_timestamp("2024-01-02T03:04:05Z") == datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone.utc)

    def test_parse_timestamp_missing_is_now(self):
        before = datetime.now(timezone.utc)
        assert parse_timestamp(None) >= before
