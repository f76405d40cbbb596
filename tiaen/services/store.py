"""Store capability used by the conversation pipeline.

The pipeline only talks to `Store`; `SqlStore` is the Postgres-backed
implementation. Every call is independent: writes are committed immediately
and no transaction spans more than one call.
"""

import uuid
from abc import ABC, abstractmethod
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Iterable, Iterator, List, Optional
from uuid import UUID

from sqlalchemy import func, text
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from tiaen.logging_config import get_logger
from tiaen.models import (
    AutomationExecution,
    AutomationRule,
    Contact,
    Conversation,
    GatewayInstance,
    KnowledgeEntry,
    Message,
    RagQueryLog,
)
from tiaen.models.conversation import OPEN_STATUS_PREDICATE, OPEN_STATUSES

logger = get_logger("store")


class StoreError(Exception):
    def __init__(self, operation: str, cause: Exception):
        self.operation = operation
        self.cause = cause
        super().__init__(f"{operation} failed: {cause}")


class Store(ABC):
    """Key-based CRUD over contacts, conversations, messages, rules and knowledge."""

    @abstractmethod
    def get_contact_by_phone(self, phone: str) -> Optional[Contact]:
        pass

    @abstractmethod
    def create_contact(
        self,
        *,
        phone: str,
        name: str,
        profile_picture: Optional[str],
        tags: List[str],
        notes: Optional[str],
    ) -> Contact:
        """Create-if-absent keyed by phone; returns the stored contact."""
        pass

    @abstractmethod
    def update_contact(self, contact_id: UUID, **fields) -> None:
        pass

    @abstractmethod
    def get_open_conversation_by_contact(self, contact_id: UUID) -> Optional[Conversation]:
        pass

    @abstractmethod
    def create_conversation(
        self,
        *,
        contact_id: UUID,
        priority: str,
        tags: List[str],
        summary: Optional[str],
        sentiment: Optional[str],
    ) -> Conversation:
        """Create-if-absent keyed by (contact_id, open status); returns the open conversation."""
        pass

    @abstractmethod
    def get_conversation(self, conversation_id: UUID) -> Optional[Conversation]:
        pass

    @abstractmethod
    def update_conversation(self, conversation_id: UUID, **fields) -> None:
        pass

    @abstractmethod
    def advance_last_message_at(self, conversation_id: UUID, message_at: datetime) -> None:
        """Set last_message_at to max(current, message_at)."""
        pass

    @abstractmethod
    def create_message(
        self,
        *,
        conversation_id: UUID,
        from_phone: Optional[str],
        to_phone: Optional[str],
        body: str,
        message_type: str,
        status: str,
        is_from_bot: bool,
        metadata: dict,
        timestamp: datetime,
        whatsapp_id: Optional[str] = None,
    ) -> Message:
        pass

    @abstractmethod
    def count_messages(self, conversation_id: UUID) -> int:
        pass

    @abstractmethod
    def get_active_automation_rules(self) -> List[AutomationRule]:
        pass

    @abstractmethod
    def record_automation_execution(
        self,
        *,
        rule_id: UUID,
        conversation_id: UUID,
        status: str,
        trigger_data: Optional[dict],
        action_data: Optional[dict],
        error_message: Optional[str],
        execution_time_ms: int,
    ) -> None:
        pass

    @abstractmethod
    def get_active_knowledge_entries(self) -> List[KnowledgeEntry]:
        pass

    @abstractmethod
    def increment_knowledge_usage(self, entry_ids: Iterable[UUID]) -> None:
        pass

    @abstractmethod
    def create_rag_query_log(
        self,
        *,
        conversation_id: Optional[UUID],
        query: str,
        response: str,
        confidence: float,
        sources: List[dict],
        suggested_actions: List[str],
        processing_time_ms: int,
        reasoning: Optional[str] = None,
    ) -> None:
        pass

    @abstractmethod
    def update_gateway_instance(self, instance_id: str, **fields) -> bool:
        """Returns False when the instance is unknown."""
        pass


class SqlStore(Store):
    def __init__(self, db: Session):
        self.db = db

    @contextmanager
    def _guard(self, operation: str) -> Iterator[None]:
        try:
            yield
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.warning(
                "Store operation failed",
                extra={"context": {"operation": operation, "error": str(exc)}},
            )
            raise StoreError(operation, exc) from exc

    @staticmethod
    def _now() -> datetime:
        return datetime.now(timezone.utc)

    # Contacts

    def get_contact_by_phone(self, phone: str) -> Optional[Contact]:
        with self._guard("get_contact_by_phone"):
            return self.db.query(Contact).filter(Contact.phone == phone).first()

    def create_contact(self, *, phone, name, profile_picture, tags, notes) -> Contact:
        now = self._now()
        with self._guard("create_contact"):
            stmt = (
                insert(Contact)
                .values(
                    id=uuid.uuid4(),
                    phone=phone,
                    name=name,
                    profile_picture=profile_picture,
                    is_online=True,
                    last_seen=now,
                    tags=list(tags),
                    notes=notes,
                    contact_metadata={},
                    created_at=now,
                    updated_at=now,
                )
                .on_conflict_do_nothing(index_elements=["phone"])
            )
            self.db.execute(stmt)
            self.db.commit()
            contact = self.db.query(Contact).filter(Contact.phone == phone).first()
        if contact is None:
            raise StoreError("create_contact", RuntimeError(f"contact {phone} missing after insert"))
        return contact

    def update_contact(self, contact_id: UUID, **fields) -> None:
        with self._guard("update_contact"):
            fields.setdefault("updated_at", self._now())
            self.db.query(Contact).filter(Contact.id == contact_id).update(fields, synchronize_session=False)
            self.db.commit()

    # Conversations

    def get_open_conversation_by_contact(self, contact_id: UUID) -> Optional[Conversation]:
        with self._guard("get_open_conversation_by_contact"):
            return (
                self.db.query(Conversation)
                .filter(Conversation.contact_id == contact_id, Conversation.status.in_(OPEN_STATUSES))
                .order_by(Conversation.created_at.desc(), Conversation.id.desc())
                .first()
            )

    def create_conversation(self, *, contact_id, priority, tags, summary, sentiment) -> Conversation:
        now = self._now()
        with self._guard("create_conversation"):
            stmt = (
                insert(Conversation)
                .values(
                    id=uuid.uuid4(),
                    contact_id=contact_id,
                    status="active",
                    priority=priority,
                    tags=list(tags),
                    summary=summary,
                    sentiment=sentiment,
                    context={},
                    created_at=now,
                    updated_at=now,
                )
                .on_conflict_do_nothing(
                    index_elements=["contact_id"],
                    index_where=text(OPEN_STATUS_PREDICATE),
                )
            )
            self.db.execute(stmt)
            self.db.commit()
        conversation = self.get_open_conversation_by_contact(contact_id)
        if conversation is None:
            raise StoreError("create_conversation", RuntimeError(f"no open conversation for {contact_id}"))
        return conversation

    def get_conversation(self, conversation_id: UUID) -> Optional[Conversation]:
        with self._guard("get_conversation"):
            return self.db.query(Conversation).filter(Conversation.id == conversation_id).first()

    def update_conversation(self, conversation_id: UUID, **fields) -> None:
        with self._guard("update_conversation"):
            fields.setdefault("updated_at", self._now())
            self.db.query(Conversation).filter(Conversation.id == conversation_id).update(
                fields, synchronize_session=False
            )
            self.db.commit()

    def advance_last_message_at(self, conversation_id: UUID, message_at: datetime) -> None:
        with self._guard("advance_last_message_at"):
            self.db.query(Conversation).filter(Conversation.id == conversation_id).update(
                {
                    Conversation.last_message_at: func.greatest(
                        func.coalesce(Conversation.last_message_at, message_at), message_at
                    ),
                    Conversation.updated_at: self._now(),
                },
                synchronize_session=False,
            )
            self.db.commit()

    # Messages

    def create_message(
        self,
        *,
        conversation_id,
        from_phone,
        to_phone,
        body,
        message_type,
        status,
        is_from_bot,
        metadata,
        timestamp,
        whatsapp_id=None,
    ) -> Message:
        with self._guard("create_message"):
            message = Message(
                conversation_id=conversation_id,
                whatsapp_id=whatsapp_id,
                from_phone=from_phone,
                to_phone=to_phone,
                body=body,
                message_type=message_type,
                status=status,
                is_from_bot=is_from_bot,
                message_metadata=metadata or {},
                timestamp=timestamp,
                created_at=self._now(),
            )
            self.db.add(message)
            self.db.commit()
            return message

    def count_messages(self, conversation_id: UUID) -> int:
        with self._guard("count_messages"):
            return self.db.query(Message).filter(Message.conversation_id == conversation_id).count()

    # Automation

    def get_active_automation_rules(self) -> List[AutomationRule]:
        with self._guard("get_active_automation_rules"):
            return self.db.query(AutomationRule).filter(AutomationRule.is_active == True).all()  # noqa: E712

    def record_automation_execution(
        self,
        *,
        rule_id,
        conversation_id,
        status,
        trigger_data,
        action_data,
        error_message,
        execution_time_ms,
    ) -> None:
        now = self._now()
        with self._guard("record_automation_execution"):
            self.db.add(
                AutomationExecution(
                    rule_id=rule_id,
                    conversation_id=conversation_id,
                    trigger_data=trigger_data,
                    action_data=action_data,
                    status=status,
                    error_message=error_message,
                    execution_time_ms=execution_time_ms,
                    executed_at=now,
                )
            )
            if status == "success":
                self.db.query(AutomationRule).filter(AutomationRule.id == rule_id).update(
                    {
                        AutomationRule.execution_count: AutomationRule.execution_count + 1,
                        AutomationRule.last_executed_at: now,
                    },
                    synchronize_session=False,
                )
            self.db.commit()

    # Knowledge

    def get_active_knowledge_entries(self) -> List[KnowledgeEntry]:
        with self._guard("get_active_knowledge_entries"):
            return (
                self.db.query(KnowledgeEntry)
                .filter(KnowledgeEntry.is_active == True, KnowledgeEntry.embedding.isnot(None))  # noqa: E712
                .all()
            )

    def increment_knowledge_usage(self, entry_ids: Iterable[UUID]) -> None:
        ids = list(entry_ids)
        if not ids:
            return
        with self._guard("increment_knowledge_usage"):
            self.db.query(KnowledgeEntry).filter(KnowledgeEntry.id.in_(ids)).update(
                {KnowledgeEntry.usage_count: KnowledgeEntry.usage_count + 1},
                synchronize_session=False,
            )
            self.db.commit()

    def create_rag_query_log(
        self,
        *,
        conversation_id,
        query,
        response,
        confidence,
        sources,
        suggested_actions,
        processing_time_ms,
        reasoning=None,
    ) -> None:
        with self._guard("create_rag_query_log"):
            self.db.add(
                RagQueryLog(
                    conversation_id=conversation_id,
                    query=query,
                    response=response,
                    confidence=confidence,
                    sources=sources,
                    reasoning=reasoning,
                    suggested_actions=list(suggested_actions),
                    processing_time_ms=processing_time_ms,
                    created_at=self._now(),
                )
            )
            self.db.commit()

    # Gateway instances

    def update_gateway_instance(self, instance_id: str, **fields) -> bool:
        with self._guard("update_gateway_instance"):
            fields.setdefault("updated_at", self._now())
            updated = (
                self.db.query(GatewayInstance)
                .filter(GatewayInstance.id == instance_id)
                .update(fields, synchronize_session=False)
            )
            self.db.commit()
            return updated > 0
