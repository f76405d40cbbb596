from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional
from uuid import UUID

from tiaen.logging_config import get_logger
from tiaen.models import Message
from tiaen.services.gateway_service import Gateway
from tiaen.services.result import ErrorKind, Result
from tiaen.services.store import Store, StoreError

logger = get_logger("dispatch_service")


@dataclass
class DispatchResult:
    message: Optional[Message]
    provider_message_id: Optional[str] = None
    persisted: bool = True


class Dispatcher:
    """Send a reply through the gateway and record it as an outbound message."""

    def __init__(self, store: Store, gateway: Gateway, default_instance: Optional[str] = None):
        self.store = store
        self.gateway = gateway
        self.default_instance = default_instance

    def send(
        self,
        conversation_id: UUID,
        phone: str,
        text: str,
        *,
        instance_id: Optional[str] = None,
        metadata: Optional[dict] = None,
    ) -> Result[DispatchResult]:
        """Gateway failure persists nothing and is not retried."""
        instance = instance_id or self.default_instance
        sent = self.gateway.send_text(instance, phone, text)
        if not sent.success:
            logger.warning(
                "Dispatch failed",
                extra={"context": {"conversation_id": str(conversation_id), "error": sent.error}},
            )
            return Result.failure(sent.error or "gateway send failed", ErrorKind.DISPATCH_FAILED)

        now = datetime.now(timezone.utc)
        try:
            message = self.store.create_message(
                conversation_id=conversation_id,
                whatsapp_id=sent.message_id,
                from_phone=None,
                to_phone=phone,
                body=text,
                message_type="text",
                status="sent",
                is_from_bot=True,
                metadata=dict(metadata or {}),
                timestamp=now,
            )
        except StoreError as e:
            # The customer already has the reply; only the record is missing.
            logger.error(
                "Outbound message persist failed after send",
                extra={"context": {"conversation_id": str(conversation_id), "error": str(e)}},
            )
            return Result.success(DispatchResult(message=None, provider_message_id=sent.message_id, persisted=False))

        try:
            self.store.advance_last_message_at(conversation_id, now)
        except StoreError as e:
            logger.warning(
                "Failed to advance last_message_at after dispatch",
                extra={"context": {"conversation_id": str(conversation_id), "error": str(e)}},
            )

        logger.info(
            "Reply dispatched",
            extra={"context": {"conversation_id": str(conversation_id), "message_id": str(message.id)}},
        )
        return Result.success(DispatchResult(message=message, provider_message_id=sent.message_id))
