"""Turn raw gateway webhook payloads into canonical inbound events.

Two payload shapes are accepted:

* the generic envelope ``{"event": "message"|"status"|"qr"|"disconnect",
  "instanceId": ..., "data": {...}}`` (a bare message ``data`` object is
  accepted too);
* Evolution API webhooks (``MESSAGES_UPSERT``, ``CONNECTION_UPDATE``,
  ``QRCODE_UPDATED``).

Only message events become an `InboundEvent`; everything else is an
`IgnoredEvent` that the coordinator forwards to instance state sync.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional, Union

from tiaen.logging_config import get_logger
from tiaen.services.result import ErrorKind, Result

logger = get_logger("event_normalizer")

BOT_SENTINEL = "bot"
MESSAGE_TYPES = ("text", "image", "audio", "video", "document")

# Epoch values above this are treated as milliseconds.
_MILLISECONDS_THRESHOLD = 1e12


class EventKind(str, Enum):
    MESSAGE = "message"
    STATUS = "status"
    QR = "qr"
    DISCONNECT = "disconnect"
    UNKNOWN = "unknown"


_EVENT_ALIASES = {
    "message": EventKind.MESSAGE,
    "messages.upsert": EventKind.MESSAGE,
    "messages_upsert": EventKind.MESSAGE,
    "status": EventKind.STATUS,
    "connection.update": EventKind.STATUS,
    "connection_update": EventKind.STATUS,
    "qr": EventKind.QR,
    "qrcode.updated": EventKind.QR,
    "qrcode_updated": EventKind.QR,
    "disconnect": EventKind.DISCONNECT,
}

# Evolution message keys, checked in order.
_EVOLUTION_MEDIA_KEYS = (
    ("imageMessage", "image"),
    ("videoMessage", "video"),
    ("audioMessage", "audio"),
    ("documentMessage", "document"),
)


@dataclass(frozen=True)
class InboundEvent:
    from_phone: str
    to_phone: str
    body: str
    type: str
    timestamp: datetime
    provider_message_id: Optional[str] = None
    is_from_bot: bool = False
    instance_id: Optional[str] = None
    push_name: Optional[str] = None
    profile_picture_url: Optional[str] = None
    metadata: dict = field(default_factory=dict)

    @property
    def contact_phone(self) -> str:
        """Phone of the customer side of the exchange."""
        return self.to_phone if self.is_from_bot else self.from_phone


@dataclass(frozen=True)
class IgnoredEvent:
    kind: EventKind
    instance_id: Optional[str]
    data: dict
    reason: str = ""


NormalizedEvent = Union[InboundEvent, IgnoredEvent]


def normalize_phone(value: Any) -> str:
    """Strip WhatsApp JID suffixes: '5511...@s.whatsapp.net' -> '5511...'."""
    phone = str(value).strip()
    if "@" in phone:
        phone = phone.split("@", 1)[0]
    if ":" in phone:
        # Multi-device JIDs carry a ':<device>' suffix.
        phone = phone.split(":", 1)[0]
    return phone


def parse_timestamp(value: Any) -> datetime:
    """Parse epoch seconds, epoch milliseconds or ISO-8601 into an aware datetime.

    Raises ValueError when the value cannot be interpreted.
    """
    if value is None or value == "":
        return datetime.now(timezone.utc)
    if isinstance(value, bool):
        raise ValueError(f"invalid timestamp: {value!r}")
    if isinstance(value, str):
        stripped = value.strip()
        try:
            value = float(stripped)
        except ValueError:
            parsed = datetime.fromisoformat(stripped.replace("Z", "+00:00"))
            if parsed.tzinfo is None:
                parsed = parsed.replace(tzinfo=timezone.utc)
            return parsed
    if isinstance(value, (int, float)):
        seconds = value / 1000.0 if value > _MILLISECONDS_THRESHOLD else float(value)
        return datetime.fromtimestamp(seconds, tz=timezone.utc)
    raise ValueError(f"invalid timestamp: {value!r}")


def _event_kind(raw: Any) -> EventKind:
    if not raw:
        return EventKind.UNKNOWN
    return _EVENT_ALIASES.get(str(raw).strip().lower(), EventKind.UNKNOWN)


def _malformed(reason: str, payload: Any) -> Result[NormalizedEvent]:
    logger.warning(
        "Malformed inbound event dropped",
        extra={"context": {"reason": reason, "keys": sorted(payload) if isinstance(payload, dict) else None}},
    )
    return Result.failure(reason, ErrorKind.MALFORMED_EVENT)


def _is_evolution_message(data: dict) -> bool:
    return "key" in data or "messages" in data


def _map_evolution_message(data: dict, instance_id: Optional[str]) -> Result[NormalizedEvent]:
    if "messages" in data:
        messages = data.get("messages") or []
        if not isinstance(messages, list) or not messages or not isinstance(messages[0], dict):
            return _malformed("evolution payload without messages", data)
        msg = messages[0]
    else:
        msg = data

    key = msg.get("key") or {}
    if not isinstance(key, dict):
        return _malformed("key is not an object", msg)
    remote_jid = key.get("remoteJid")
    if not remote_jid or not isinstance(remote_jid, str):
        return _malformed("missing from", msg)

    content = msg.get("message") or {}
    if not isinstance(content, dict) or not content:
        return _malformed("missing body", msg)

    metadata: dict = {}
    msg_type = None
    extended = content.get("extendedTextMessage")
    if extended is not None and not isinstance(extended, dict):
        return _malformed("extendedTextMessage is not an object", msg)
    body = content.get("conversation") or (extended or {}).get("text")
    if body is not None or "extendedTextMessage" in content or "conversation" in content:
        msg_type = "text"
    else:
        for media_key, media_type in _EVOLUTION_MEDIA_KEYS:
            media = content.get(media_key)
            if media is not None:
                if not isinstance(media, dict):
                    return _malformed(f"{media_key} is not an object", msg)
                msg_type = media_type
                caption = media.get("caption")
                if caption:
                    metadata["caption"] = caption
                if media.get("mimetype"):
                    metadata["mime_type"] = media["mimetype"]
                if media.get("fileName"):
                    metadata["file_name"] = media["fileName"]
                body = caption or f"[{media_type}]"
                break

    if msg_type is None:
        return _malformed("missing type", msg)
    if not body:
        return _malformed("missing body", msg)
    if not isinstance(body, str):
        return _malformed("body is not a string", msg)

    try:
        timestamp = parse_timestamp(msg.get("messageTimestamp"))
    except (ValueError, OverflowError, OSError):
        return _malformed("invalid timestamp", msg)

    phone = normalize_phone(remote_jid)
    from_me = bool(key.get("fromMe"))
    return Result.success(
        InboundEvent(
            from_phone=BOT_SENTINEL if from_me else phone,
            to_phone=phone if from_me else BOT_SENTINEL,
            body=body,
            type=msg_type,
            timestamp=timestamp,
            provider_message_id=key.get("id"),
            is_from_bot=from_me,
            instance_id=instance_id,
            push_name=msg.get("pushName"),
            metadata=metadata,
        )
    )


def _map_message(data: dict, instance_id: Optional[str]) -> Result[NormalizedEvent]:
    if _is_evolution_message(data):
        return _map_evolution_message(data, instance_id)

    for required in ("from", "body", "type"):
        if data.get(required) is None or data.get(required) == "":
            return _malformed(f"missing {required}", data)

    msg_type = str(data["type"]).strip().lower()
    if msg_type not in MESSAGE_TYPES:
        return _malformed(f"unsupported type: {msg_type}", data)

    try:
        timestamp = parse_timestamp(data.get("timestamp"))
    except (ValueError, OverflowError, OSError):
        return _malformed("invalid timestamp", data)

    is_from_bot = bool(data.get("isFromBot") or data.get("fromMe"))
    from_raw = str(data["from"])
    from_phone = BOT_SENTINEL if from_raw == BOT_SENTINEL else normalize_phone(from_raw)
    to_raw = data.get("to") or BOT_SENTINEL
    to_phone = BOT_SENTINEL if to_raw == BOT_SENTINEL else normalize_phone(to_raw)
    if from_phone == BOT_SENTINEL:
        is_from_bot = True
    if is_from_bot and to_phone == BOT_SENTINEL:
        return _malformed("bot message without recipient", data)

    metadata = data.get("metadata") if isinstance(data.get("metadata"), dict) else {}
    return Result.success(
        InboundEvent(
            from_phone=from_phone,
            to_phone=to_phone,
            body=str(data["body"]),
            type=msg_type,
            timestamp=timestamp,
            provider_message_id=data.get("id") or data.get("messageId"),
            is_from_bot=is_from_bot,
            instance_id=instance_id,
            push_name=data.get("pushName") or data.get("notifyName"),
            profile_picture_url=data.get("profilePictureUrl"),
            metadata=dict(metadata),
        )
    )


def normalize(payload: Any) -> Result[NormalizedEvent]:
    """Map a raw webhook body to an InboundEvent or IgnoredEvent.

    Never raises; malformed payloads come back as MALFORMED_EVENT failures.
    """
    if not isinstance(payload, dict):
        return _malformed("payload is not an object", payload)

    instance_id = payload.get("instanceId") or payload.get("instance")
    if isinstance(instance_id, dict):
        instance_id = instance_id.get("instanceName") or instance_id.get("id")

    if "event" not in payload:
        # Bare message data.
        return _map_message(payload, instance_id)

    kind = _event_kind(payload.get("event"))
    data = payload.get("data")
    if data is None:
        data = {}
    if not isinstance(data, dict):
        return _malformed("data is not an object", payload)

    if kind == EventKind.MESSAGE:
        return _map_message(data, instance_id)

    if kind == EventKind.UNKNOWN:
        logger.info("Unhandled webhook event", extra={"context": {"event": payload.get("event")}})
        return Result.success(
            IgnoredEvent(kind=kind, instance_id=instance_id, data=data, reason=f"unhandled event {payload.get('event')}")
        )

    return Result.success(IgnoredEvent(kind=kind, instance_id=instance_id, data=data, reason="instance state event"))
