import uuid

from sqlalchemy import Boolean, Column, ForeignKey, Integer, Text
from sqlalchemy.dialects.postgresql import JSONB, TIMESTAMP, UUID

from tiaen.database import Base


class AutomationRule(Base):
    __tablename__ = "automation_rules"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    name = Column(Text, nullable=False)
    description = Column(Text)
    trigger_type = Column(Text, nullable=False)  # keyword, first_message, sentiment, time
    trigger_config = Column(JSONB, nullable=False, default=dict)
    action_type = Column(Text, nullable=False)  # send_message, transfer_agent, add_tag, create_ticket
    action_config = Column(JSONB, nullable=False, default=dict)
    priority = Column(Integer)
    is_active = Column(Boolean, nullable=False, default=True)
    execution_count = Column(Integer, nullable=False, default=0)
    last_executed_at = Column(TIMESTAMP(timezone=True))
    created_at = Column(TIMESTAMP(timezone=True), nullable=False)
    updated_at = Column(TIMESTAMP(timezone=True), nullable=False)


class AutomationExecution(Base):
    __tablename__ = "automation_executions"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    rule_id = Column(UUID(as_uuid=True), ForeignKey("automation_rules.id"), nullable=False)
    conversation_id = Column(UUID(as_uuid=True), ForeignKey("conversations.id"), nullable=False)
    trigger_data = Column(JSONB)
    action_data = Column(JSONB)
    status = Column(Text, nullable=False)  # success, failed, skipped
    error_message = Column(Text)
    execution_time_ms = Column(Integer)
    executed_at = Column(TIMESTAMP(timezone=True), nullable=False)
