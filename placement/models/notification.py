"""Notification, notification preference and effect delivery models."""

from sqlalchemy import Boolean, Column, ForeignKey, String, UniqueConstraint, Uuid

from placement.db.base import Base


class Notification(Base):
    """In-app notification. Created by the engine, never mutated or deleted by it."""

    __tablename__ = "notifications"

    recipient_id = Column(Uuid(as_uuid=True), ForeignKey("users.id"), nullable=False, index=True)
    recipient_type = Column(String(20), nullable=False)  # student, company, admin
    type = Column(String(50), nullable=False)
    title = Column(String(200), nullable=False)
    message = Column(String(1000), nullable=False)
    link = Column(String(500))
    is_read = Column(Boolean, default=False, nullable=False, index=True)

    # Replaying the same effect event maps to the same key
    dedupe_key = Column(String(255), unique=True, nullable=True)

    def __repr__(self):
        return f"<Notification {self.type} -> {self.recipient_id}>"


class NotificationPreference(Base):
    """Per-user, per-email-type opt-out."""

    __tablename__ = "notification_preferences"
    __table_args__ = (
        UniqueConstraint("user_id", "channel", "email_type", name="unique_user_channel_email_type"),
    )

    user_id = Column(Uuid(as_uuid=True), ForeignKey("users.id"), nullable=False, index=True)
    channel = Column(String(20), nullable=False, default="email")
    email_type = Column(String(50), nullable=False)
    opted_out = Column(Boolean, default=False, nullable=False)


class EffectDelivery(Base):
    """Ledger of delivered emails, keyed by effect event."""

    __tablename__ = "effect_deliveries"
    __table_args__ = (
        UniqueConstraint("event_key", "channel", "recipient", name="unique_effect_delivery"),
    )

    event_key = Column(String(255), nullable=False, index=True)
    channel = Column(String(20), nullable=False)
    recipient = Column(String(255), nullable=False)
