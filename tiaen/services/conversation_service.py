from datetime import datetime, timezone
from typing import Optional
from uuid import UUID

from tiaen.logging_config import get_logger
from tiaen.models import Contact, Conversation
from tiaen.services.result import ErrorKind, Result
from tiaen.services.store import Store, StoreError

logger = get_logger("conversation_service")

DEFAULT_PRIORITY = "medium"
DEFAULT_SENTIMENT = "neutral"
MAX_PIPELINE_ERRORS = 10
CHANNEL_LABELS = {"whatsapp": "WhatsApp", "telegram": "Telegram", "instagram": "Instagram"}


def default_tags(channel: str) -> list:
    return [channel, "webhook"]


def default_summary(channel: str) -> str:
    return f"Conversation started via {CHANNEL_LABELS.get(channel, channel)}"


def resolve_conversation(store: Store, contact: Contact, channel: str = "whatsapp") -> Result[Conversation]:
    """Return the contact's open conversation, creating one if none exists.

    Creation is a conditional insert on (contact_id, open status), so two
    concurrent resolvers for the same contact end up with the same row.
    """
    try:
        conversation = store.get_open_conversation_by_contact(contact.id)
        if conversation is not None:
            return Result.success(conversation)

        conversation = store.create_conversation(
            contact_id=contact.id,
            priority=DEFAULT_PRIORITY,
            tags=default_tags(channel),
            summary=default_summary(channel),
            sentiment=DEFAULT_SENTIMENT,
        )
    except StoreError as e:
        return Result.failure(f"Conversation resolve failed: {e}", ErrorKind.TRANSIENT_STORE_ERROR)

    logger.info(
        "Conversation resolved",
        extra={"context": {"conversation_id": str(conversation.id), "contact_id": str(contact.id)}},
    )
    return Result.success(conversation)


def record_pipeline_error(
    store: Store,
    conversation: Conversation,
    stage: str,
    error: str,
    error_code: Optional[str] = None,
) -> None:
    """Append a failure note to conversation.context["pipeline_errors"]. Best effort."""
    context = dict(conversation.context or {})
    errors = list(context.get("pipeline_errors") or [])
    errors.append(
        {
            "stage": stage,
            "error": error,
            "code": error_code,
            "at": datetime.now(timezone.utc).isoformat(),
        }
    )
    context["pipeline_errors"] = errors[-MAX_PIPELINE_ERRORS:]
    try:
        store.update_conversation(conversation.id, context=context)
        conversation.context = context
    except StoreError as e:
        logger.warning(
            "Failed to record pipeline error on conversation",
            extra={"context": {"conversation_id": str(conversation.id), "stage": stage, "error": str(e)}},
        )


def update_sentiment(store: Store, conversation_id: UUID, sentiment: str) -> bool:
    try:
        store.update_conversation(conversation_id, sentiment=sentiment)
        return True
    except StoreError as e:
        logger.warning(
            "Sentiment update failed",
            extra={"context": {"conversation_id": str(conversation_id), "error": str(e)}},
        )
        return False
