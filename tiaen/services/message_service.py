from datetime import datetime, timedelta, timezone
from typing import Optional, Tuple

from tiaen.logging_config import get_logger
from tiaen.models import Conversation, Message
from tiaen.services.event_normalizer import BOT_SENTINEL, InboundEvent
from tiaen.services.result import ErrorKind, Result
from tiaen.services.store import Store, StoreError

logger = get_logger("message_service")


def _phone_or_none(phone: Optional[str]) -> Optional[str]:
    return None if phone in (None, BOT_SENTINEL) else phone


def clamp_timestamp(
    timestamp: datetime,
    last_message_at: Optional[datetime],
    skew_tolerance_seconds: float,
) -> Tuple[datetime, bool]:
    """Floor a message timestamp at last_message_at minus the skew tolerance.

    Returns (timestamp, clamped).
    """
    if last_message_at is None:
        return timestamp, False
    if last_message_at.tzinfo is None:
        last_message_at = last_message_at.replace(tzinfo=timezone.utc)
    floor = last_message_at - timedelta(seconds=skew_tolerance_seconds)
    if timestamp < floor:
        return floor, True
    return timestamp, False


def advance_conversation(store: Store, conversation: Conversation, message_at: datetime) -> None:
    """Move last_message_at forward to message_at; never rewinds. Best effort."""
    try:
        store.advance_last_message_at(conversation.id, message_at)
    except StoreError as e:
        logger.warning(
            "Failed to advance last_message_at",
            extra={"context": {"conversation_id": str(conversation.id), "error": str(e)}},
        )
        return
    current = conversation.last_message_at
    if current is None or current < message_at:
        conversation.last_message_at = message_at


def save_inbound_message(
    store: Store,
    conversation: Conversation,
    event: InboundEvent,
    skew_tolerance_seconds: float = 5.0,
) -> Result[Message]:
    """Persist the inbound message and advance the conversation clock."""
    timestamp, clamped = clamp_timestamp(event.timestamp, conversation.last_message_at, skew_tolerance_seconds)

    metadata = dict(event.metadata)
    if event.instance_id:
        metadata["instance_id"] = event.instance_id
    if clamped:
        metadata["provider_timestamp"] = event.timestamp.isoformat()
        logger.info(
            "Inbound timestamp clamped",
            extra={
                "context": {
                    "conversation_id": str(conversation.id),
                    "provider_timestamp": event.timestamp.isoformat(),
                    "stored_timestamp": timestamp.isoformat(),
                }
            },
        )

    try:
        message = store.create_message(
            conversation_id=conversation.id,
            whatsapp_id=event.provider_message_id,
            from_phone=_phone_or_none(event.from_phone),
            to_phone=_phone_or_none(event.to_phone),
            body=event.body,
            message_type=event.type,
            status="delivered",
            is_from_bot=event.is_from_bot,
            metadata=metadata,
            timestamp=timestamp,
        )
    except StoreError as e:
        return Result.failure(f"Inbound message persist failed: {e}", ErrorKind.TRANSIENT_STORE_ERROR)

    advance_conversation(store, conversation, timestamp)
    return Result.success(message)
