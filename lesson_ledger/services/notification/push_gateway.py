"""
Push gateway dispatcher.

Hands each reminder to an HTTP push gateway (the service that speaks the Web
Push protocol and holds the VAPID keys). One POST is made per registered
channel; a channel failing never stops delivery to the others.
"""

import logging
from typing import Any, Dict, Optional

import httpx

from lesson_ledger.core.config import settings
from lesson_ledger.services.notification.dispatcher_interface import (
    ChannelResult,
    ChannelStore,
    DispatchResult,
    NotificationDispatcher,
)

logger = logging.getLogger(__name__)

# Gateway answers meaning the browser subscription no longer exists
GONE_STATUS_CODES = (404, 410)


def _mask_endpoint(endpoint: str) -> str:
    """Shorten a push endpoint for logging: keep the host and the last 6 chars."""
    if len(endpoint) <= 16:
        return endpoint
    return endpoint[:24] + "..." + endpoint[-6:]


class PushGatewayDispatcher(NotificationDispatcher):
    """Delivers payloads through ``settings.PUSH_GATEWAY_URL`` using httpx."""

    def __init__(
        self,
        channel_store: ChannelStore,
        gateway_url: Optional[str] = None,
        client: Optional[httpx.Client] = None,
        timeout: Optional[float] = None,
    ):
        self.channel_store = channel_store
        self.gateway_url = gateway_url if gateway_url is not None else settings.PUSH_GATEWAY_URL
        self.timeout = timeout or settings.PUSH_GATEWAY_TIMEOUT_SECONDS
        self._client = client

    def notify(self, user_id: str, payload: Dict[str, Any]) -> DispatchResult:
        result = DispatchResult(user_id=user_id)
        channels = self.channel_store.channels_for(user_id)
        if not channels:
            logger.info(f"User {user_id} has no notification channels, skipping")
            return result

        if not self.gateway_url:
            logger.debug(f"Push skipped (gateway not configured) for user {user_id}")
            result.channels = [
                ChannelResult(endpoint=c["endpoint"], ok=False, error="gateway_not_configured")
                for c in channels
            ]
            return result

        client = self._client or httpx.Client(timeout=self.timeout)
        try:
            for channel in channels:
                result.channels.append(self._send_one(client, user_id, channel, payload))
        finally:
            if self._client is None:
                client.close()

        logger.info(
            f"Push to user {user_id}: {len(result.channels) - len(result.failures)} delivered, "
            f"{len(result.failures)} failed"
        )
        return result

    def _send_one(
        self,
        client: httpx.Client,
        user_id: str,
        channel: Dict[str, Any],
        payload: Dict[str, Any],
    ) -> ChannelResult:
        endpoint = channel["endpoint"]
        masked = _mask_endpoint(endpoint)
        try:
            response = client.post(
                self.gateway_url,
                json={"subscription": channel, "payload": payload},
                headers={"x-internal-api-key": settings.INTERNAL_API_KEY},
            )
        except httpx.TimeoutException:
            logger.warning(f"Push gateway timeout for {masked}")
            return ChannelResult(endpoint=endpoint, ok=False, error="timeout")
        except httpx.RequestError as e:
            logger.warning(f"Push gateway request error for {masked}: {e}")
            return ChannelResult(endpoint=endpoint, ok=False, error=str(e))

        if response.status_code in GONE_STATUS_CODES:
            # The browser dropped this subscription; stop targeting it
            self.channel_store.unregister_channel(user_id, endpoint)
            logger.info(f"Removed expired channel {masked} for user {user_id}")
            return ChannelResult(
                endpoint=endpoint, ok=False, error="subscription_gone",
                status_code=response.status_code,
            )
        if response.is_success:
            return ChannelResult(endpoint=endpoint, ok=True, status_code=response.status_code)

        logger.warning(
            f"Push gateway returned {response.status_code} for {masked}: {response.text}"
        )
        return ChannelResult(
            endpoint=endpoint, ok=False,
            error=f"http_{response.status_code}", status_code=response.status_code,
        )
