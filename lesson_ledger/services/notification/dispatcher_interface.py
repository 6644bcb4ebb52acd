# lesson_ledger/services/notification/dispatcher_interface.py
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional


@dataclass
class ChannelResult:
    """Delivery outcome for a single registered channel."""
    endpoint: str
    ok: bool
    error: Optional[str] = None
    status_code: Optional[int] = None


@dataclass
class DispatchResult:
    """Per-channel outcome of one ``notify`` call."""
    user_id: str
    channels: List[ChannelResult] = field(default_factory=list)

    @property
    def no_channels(self) -> bool:
        return not self.channels

    @property
    def ok(self) -> bool:
        """Delivered to at least one channel."""
        return any(c.ok for c in self.channels)

    @property
    def failures(self) -> List[ChannelResult]:
        return [c for c in self.channels if not c.ok]

    def error_summary(self) -> str:
        if self.no_channels:
            return "no registered channel"
        return "; ".join(f"{c.endpoint}: {c.error or 'failed'}" for c in self.failures)


class ChannelStore(ABC):
    """Where users' notification channels are kept."""

    @abstractmethod
    def register_channel(self, user_id: str, subscription: Dict[str, Any]) -> None:
        pass

    @abstractmethod
    def unregister_channel(self, user_id: str, endpoint: str) -> bool:
        pass

    @abstractmethod
    def channels_for(self, user_id: str) -> List[Dict[str, Any]]:
        """Subscriptions as ``{"endpoint": ..., "keys": {...}}`` dicts."""
        pass


class NotificationDispatcher(ABC):
    """Delivers a payload to every channel a user registered."""

    @abstractmethod
    def notify(self, user_id: str, payload: Dict[str, Any]) -> DispatchResult:
        """Never raises for transport problems; failures are reported per channel."""
        pass
