import uuid

from sqlalchemy import Boolean, Column, ForeignKey, Text
from sqlalchemy.dialects.postgresql import JSONB, TIMESTAMP, UUID
from sqlalchemy.orm import relationship

from tiaen.database import Base


class Message(Base):
    __tablename__ = "messages"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    conversation_id = Column(UUID(as_uuid=True), ForeignKey("conversations.id"), nullable=False, index=True)
    whatsapp_id = Column(Text)
    from_phone = Column(Text)  # null when sent by the bot
    to_phone = Column(Text)  # null when addressed to the bot
    body = Column(Text, nullable=False)
    message_type = Column(Text, nullable=False, default="text")  # text, image, audio, video, document
    status = Column(Text, nullable=False, default="delivered")  # sent, delivered, read, failed
    is_from_bot = Column(Boolean, nullable=False, default=False)
    message_metadata = Column("metadata", JSONB, nullable=False, default=dict)
    timestamp = Column(TIMESTAMP(timezone=True), nullable=False)
    created_at = Column(TIMESTAMP(timezone=True), nullable=False)

    conversation = relationship("Conversation", back_populates="messages")
