# lesson_ledger/models/notification_channel.py
import uuid
from sqlalchemy import Column, String, DateTime, JSON, UniqueConstraint
from sqlalchemy.sql import func

from lesson_ledger.db.base_class import Base


class NotificationChannel(Base):
    """A push subscription a user registered to receive course reminders."""

    __tablename__ = "notification_channels"

    id = Column(String, primary_key=True, default=lambda: f"nch_{uuid.uuid4().hex[:12]}")
    user_id = Column(String, nullable=False, index=True)
    endpoint = Column(String(1024), nullable=False)
    keys = Column(JSON, nullable=False, default=dict)  # p256dh / auth
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    __table_args__ = (
        UniqueConstraint("user_id", "endpoint", name="uq_notification_channel_endpoint"),
    )

    def as_subscription(self) -> dict:
        return {"endpoint": self.endpoint, "keys": dict(self.keys or {})}
