import uuid

from sqlalchemy import Column, ForeignKey, Integer, Numeric, Text
from sqlalchemy.dialects.postgresql import ARRAY, JSONB, TIMESTAMP, UUID

from tiaen.database import Base


class RagQueryLog(Base):
    __tablename__ = "rag_queries"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    conversation_id = Column(UUID(as_uuid=True), ForeignKey("conversations.id"))
    query = Column(Text, nullable=False)
    response = Column(Text, nullable=False)
    confidence = Column(Numeric(4, 3))
    sources = Column(JSONB, nullable=False, default=list)  # [{"id": ..., "similarity": ...}]
    reasoning = Column(Text)
    suggested_actions = Column(ARRAY(Text), nullable=False, default=list)
    processing_time_ms = Column(Integer)
    created_at = Column(TIMESTAMP(timezone=True), nullable=False)
