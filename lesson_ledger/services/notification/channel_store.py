# lesson_ledger/services/notification/channel_store.py
"""
Database-backed channel store.

Each call opens its own short-lived session from the factory, so the store
can be shared between the scheduler thread and request handlers.
"""

from typing import Any, Callable, Dict, List

from sqlalchemy.orm import Session

from lesson_ledger.crud.crud_notification_channel import notification_channel as crud_channel
from lesson_ledger.db.session import SessionLocal
from lesson_ledger.schemas.notification import ChannelSubscription
from lesson_ledger.services.notification.dispatcher_interface import ChannelStore


class SQLChannelStore(ChannelStore):
    def __init__(self, session_factory: Callable[[], Session] = SessionLocal):
        self._session_factory = session_factory

    def register_channel(self, user_id: str, subscription: Dict[str, Any]) -> None:
        sub = ChannelSubscription.model_validate(subscription)
        db = self._session_factory()
        try:
            crud_channel.register(db, user_id=user_id, subscription=sub)
        finally:
            db.close()

    def unregister_channel(self, user_id: str, endpoint: str) -> bool:
        db = self._session_factory()
        try:
            return crud_channel.remove(db, user_id=user_id, endpoint=endpoint)
        finally:
            db.close()

    def channels_for(self, user_id: str) -> List[Dict[str, Any]]:
        db = self._session_factory()
        try:
            return [c.as_subscription() for c in crud_channel.get_multi_by_user(db, user_id=user_id)]
        finally:
            db.close()
