from .dispatcher_interface import (
    ChannelResult,
    ChannelStore,
    DispatchResult,
    NotificationDispatcher,
)
from .channel_store import SQLChannelStore
from .push_gateway import PushGatewayDispatcher


def get_default_dispatcher() -> NotificationDispatcher:
    """Push gateway dispatcher over the database channel store."""
    return PushGatewayDispatcher(SQLChannelStore())
