import uuid

from sqlalchemy import Column, ForeignKey, Index, Text, text
from sqlalchemy.dialects.postgresql import ARRAY, JSONB, TIMESTAMP, UUID
from sqlalchemy.orm import relationship

from tiaen.database import Base

OPEN_STATUSES = ("active", "pending")
CLOSED_STATUSES = ("resolved", "archived")
OPEN_STATUS_PREDICATE = "status IN ('active', 'pending')"


class Conversation(Base):
    __tablename__ = "conversations"
    __table_args__ = (
        # At most one open conversation per contact; conditional creates rely on it.
        Index(
            "uq_conversations_open_contact",
            "contact_id",
            unique=True,
            postgresql_where=text(OPEN_STATUS_PREDICATE),
        ),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    contact_id = Column(UUID(as_uuid=True), ForeignKey("contacts.id"), nullable=False)
    assigned_agent_id = Column(Text)
    status = Column(Text, nullable=False, default="active")  # active, pending, resolved, archived
    priority = Column(Text, nullable=False, default="medium")  # low, medium, high, urgent
    tags = Column(ARRAY(Text), nullable=False, default=list)
    summary = Column(Text)
    sentiment = Column(Text)  # positive, neutral, negative
    last_message_at = Column(TIMESTAMP(timezone=True))
    context = Column(JSONB, nullable=False, default=dict)
    created_at = Column(TIMESTAMP(timezone=True), nullable=False)
    updated_at = Column(TIMESTAMP(timezone=True), nullable=False)

    contact = relationship("Contact", back_populates="conversations")
    messages = relationship("Message", back_populates="conversation")
