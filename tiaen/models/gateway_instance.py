from sqlalchemy import Column, Text
from sqlalchemy.dialects.postgresql import JSONB, TIMESTAMP

from tiaen.database import Base


class GatewayInstance(Base):
    __tablename__ = "evolution_instances"

    id = Column(Text, primary_key=True)  # instanceId as reported by the gateway
    name = Column(Text, nullable=False)
    status = Column(Text, nullable=False, default="disconnected")  # connected, disconnected, connecting, error
    qr_code = Column(Text)
    phone = Column(Text)
    settings = Column(JSONB, nullable=False, default=dict)
    last_connection = Column(TIMESTAMP(timezone=True))
    created_at = Column(TIMESTAMP(timezone=True))
    updated_at = Column(TIMESTAMP(timezone=True))
