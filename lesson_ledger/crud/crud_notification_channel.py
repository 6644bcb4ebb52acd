# lesson_ledger/crud/crud_notification_channel.py
import logging
from typing import List

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from lesson_ledger.models.notification_channel import NotificationChannel
from lesson_ledger.schemas.notification import ChannelSubscription

logger = logging.getLogger(__name__)


class CRUDNotificationChannel:
    """Persistent push subscriptions, keyed by user and endpoint."""

    def register(
        self, db: Session, *, user_id: str, subscription: ChannelSubscription
    ) -> NotificationChannel:
        """Store a subscription; re-registering the same endpoint refreshes its keys."""
        existing = self.get_by_endpoint(db, user_id=user_id, endpoint=subscription.endpoint)
        if existing:
            existing.keys = dict(subscription.keys)
            db.add(existing)
            db.commit()
            db.refresh(existing)
            return existing

        channel = NotificationChannel(
            user_id=user_id,
            endpoint=subscription.endpoint,
            keys=dict(subscription.keys),
        )
        try:
            db.add(channel)
            db.commit()
        except IntegrityError:
            # Registered concurrently; keep the stored row
            db.rollback()
            return self.get_by_endpoint(db, user_id=user_id, endpoint=subscription.endpoint)
        db.refresh(channel)
        logger.info(f"User {user_id} registered a notification channel")
        return channel

    def get_by_endpoint(self, db: Session, *, user_id: str, endpoint: str):
        return (
            db.query(NotificationChannel)
            .filter(
                NotificationChannel.user_id == user_id,
                NotificationChannel.endpoint == endpoint,
            )
            .first()
        )

    def get_multi_by_user(self, db: Session, *, user_id: str) -> List[NotificationChannel]:
        return (
            db.query(NotificationChannel)
            .filter(NotificationChannel.user_id == user_id)
            .order_by(NotificationChannel.created_at.asc())
            .all()
        )

    def remove(self, db: Session, *, user_id: str, endpoint: str) -> bool:
        channel = self.get_by_endpoint(db, user_id=user_id, endpoint=endpoint)
        if not channel:
            return False
        db.delete(channel)
        db.commit()
        logger.info(f"User {user_id} removed a notification channel")
        return True


# Singleton instance
notification_channel = CRUDNotificationChannel()
