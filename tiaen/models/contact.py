import uuid

from sqlalchemy import Boolean, Column, Text
from sqlalchemy.dialects.postgresql import ARRAY, JSONB, TIMESTAMP, UUID
from sqlalchemy.orm import relationship

from tiaen.database import Base


class Contact(Base):
    __tablename__ = "contacts"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    phone = Column(Text, nullable=False, unique=True)
    name = Column(Text, nullable=False)
    profile_picture = Column(Text)
    is_online = Column(Boolean, nullable=False, default=False)
    last_seen = Column(TIMESTAMP(timezone=True))
    tags = Column(ARRAY(Text), nullable=False, default=list)
    notes = Column(Text)
    contact_metadata = Column("metadata", JSONB, nullable=False, default=dict)
    created_at = Column(TIMESTAMP(timezone=True), nullable=False)
    updated_at = Column(TIMESTAMP(timezone=True), nullable=False)

    conversations = relationship("Conversation", back_populates="contact")
