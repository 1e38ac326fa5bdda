from enum import Enum
from sqlalchemy import Column, Integer, String, Text, DateTime, ForeignKey, Index, CheckConstraint
from database.connection import Base
from app.models.tenant import utcnow


class Direction(Enum):
    INBOUND = "inbound"
    OUTBOUND = "outbound"

    @property
    def role(self) -> str:
        """Rol conversacional que espera el proveedor IA."""
        return "user" if self is Direction.INBOUND else "assistant"


# Log de mensajes: solo inserción, nunca se modifica
class Message(Base):
    __tablename__ = "messages"

    id = Column(Integer, primary_key=True, autoincrement=True)
    tenant_key = Column(String(64), ForeignKey("tenants.key", ondelete="RESTRICT"), nullable=False)
    sender_id = Column(String(32), nullable=False)
    direction = Column(String(10), nullable=False)
    body = Column(Text, nullable=False)
    language = Column(String(8), nullable=True)
    # Asignado en Python (UTC, microsegundos) para ordenar de forma estable
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    __table_args__ = (
        CheckConstraint("direction IN ('inbound','outbound')", name="ck_message_direction"),
        Index("ix_messages_tenant_sender_created", "tenant_key", "sender_id", "created_at"),
    )

    def __repr__(self):
        return f"<Message(id={self.id}, tenant='{self.tenant_key}', direction='{self.direction}')>"
