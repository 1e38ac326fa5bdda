from datetime import datetime, timezone
from sqlalchemy import Column, String, Text, Boolean, Integer, DateTime, CheckConstraint
from database.connection import Base


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# Modelo de tenant (cliente del relay)
class Tenant(Base):
    __tablename__ = "tenants"

    key = Column(String(64), primary_key=True)
    name = Column(String(150), nullable=False)
    routing_number = Column(String(32), nullable=False, index=True)  # +E164, sin prefijo whatsapp:
    instructions = Column(Text, nullable=True)
    language = Column(String(8), nullable=False, default="en")
    active = Column(Boolean, nullable=False, default=True)

    # Horario y tareas programadas (opcionales)
    open_hour = Column(Integer, nullable=True)
    close_hour = Column(Integer, nullable=True)
    daily_summary_time = Column(String(5), nullable=True)  # "HH:MM"
    timezone = Column(String(64), nullable=True)
    broadcast_message = Column(Text, nullable=True)
    broadcast_time = Column(String(5), nullable=True)

    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)

    __table_args__ = (
        CheckConstraint("open_hour IS NULL OR (open_hour >= 0 AND open_hour <= 23)", name="ck_tenant_open_hour"),
        CheckConstraint("close_hour IS NULL OR (close_hour >= 1 AND close_hour <= 24)", name="ck_tenant_close_hour"),
    )

    @property
    def has_business_hours(self) -> bool:
        return self.open_hour is not None and self.close_hour is not None

    def to_dict(self) -> dict:
        return {
            "tenantKey": self.key,
            "businessName": self.name,
            "routingNumber": self.routing_number,
            "instructions": self.instructions,
            "languageTag": self.language,
            "active": self.active,
            "openHour": self.open_hour,
            "closeHour": self.close_hour,
            "dailySummaryTime": self.daily_summary_time,
            "timezone": self.timezone,
            "broadcastMessage": self.broadcast_message,
            "broadcastTime": self.broadcast_time,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
            "updatedAt": self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self):
        return f"<Tenant(key='{self.key}', name='{self.name}', active={self.active})>"
