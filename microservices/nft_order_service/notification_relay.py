"""
Notification Relay

Best-effort broadcast of order transitions to downstream automations
(Zapier/Slack style JSON webhooks, a Telegram bot). Delivery runs in
background tasks and never affects the pipeline: failures are logged and
dropped.
"""

import asyncio
import httpx
import logging
from typing import Any, Dict, List, Optional, Set
from urllib.parse import urlparse

from core.config.pipeline_config import NotificationConfig

from .models import Order, utc_now
from .protocols import NotificationChannelProtocol

logger = logging.getLogger(__name__)


def order_summary(order: Order) -> Dict[str, Any]:
    """Transition summary sent to every channel"""
    return {
        "order_id": order.order_id,
        "status": order.status.value,
        "payment_status": order.payment_status.value,
        "fulfillment_ref": order.fulfillment_ref,
        "token_id": order.nft.token_id if order.nft else None,
        "nft_minted": order.nft_minted,
        "total_amount": str(order.total_amount),
        "currency": order.currency,
        "customer_email": order.customer_contact.email,
        "updated_at": order.updated_at.isoformat(),
    }


class WebhookChannel:
    """Generic JSON webhook"""

    def __init__(self, url: str, client: httpx.AsyncClient):
        self.url = url
        self.client = client
        self.name = f"webhook:{urlparse(url).netloc}"

    async def send(self, subject: str, payload: Dict[str, Any]) -> None:
        response = await self.client.post(
            self.url,
            json={"event": subject, "data": payload, "timestamp": utc_now().isoformat()},
        )
        response.raise_for_status()


class TelegramChannel:
    """Telegram bot sendMessage"""

    name = "telegram"
    api_url = "https://api.telegram.org"

    def __init__(self, bot_token: str, chat_id: str, client: httpx.AsyncClient):
        self.bot_token = bot_token
        self.chat_id = chat_id
        self.client = client

    async def send(self, subject: str, payload: Dict[str, Any]) -> None:
        lines = [f"*{subject}*"]
        for key in ("order_id", "status", "payment_status", "fulfillment_ref", "token_id"):
            if payload.get(key):
                lines.append(f"{key}: `{payload[key]}`")
        response = await self.client.post(
            f"{self.api_url}/bot{self.bot_token}/sendMessage",
            json={"chat_id": self.chat_id, "text": "\n".join(lines), "parse_mode": "Markdown"},
        )
        response.raise_for_status()


class NotificationRelay:
    """Fans one notification out to every configured channel"""

    def __init__(
        self,
        channels: Optional[List[NotificationChannelProtocol]] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.channels = list(channels or [])
        self._client = client
        self._pending: Set[asyncio.Task] = set()

    @classmethod
    def from_config(
        cls, config: NotificationConfig, transport: Optional[httpx.AsyncBaseTransport] = None
    ) -> "NotificationRelay":
        client = httpx.AsyncClient(timeout=config.timeout, transport=transport)
        channels: List[NotificationChannelProtocol] = [WebhookChannel(url, client) for url in config.webhook_urls]
        if config.telegram_bot_token and config.telegram_chat_id:
            channels.append(TelegramChannel(config.telegram_bot_token, config.telegram_chat_id, client))
        logger.info(f"Notification relay configured with {len(channels)} channel(s)")
        return cls(channels, client=client)

    def notify(self, subject: str, order: Order, **extra: Any) -> None:
        """Schedule delivery to all channels and return immediately"""
        if not self.channels:
            return
        payload = order_summary(order)
        payload.update(extra)
        for channel in self.channels:
            task = asyncio.create_task(self._deliver(channel, subject, payload))
            self._pending.add(task)
            task.add_done_callback(self._pending.discard)

    async def _deliver(self, channel: NotificationChannelProtocol, subject: str, payload: Dict[str, Any]):
        try:
            await channel.send(subject, payload)
            logger.debug(f"Notification {subject} for {payload.get('order_id')} sent via {channel.name}")
        except Exception as e:
            logger.warning(f"Notification {subject} via {channel.name} failed: {e}")

    async def drain(self):
        """Wait for in-flight deliveries"""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    async def close(self):
        await self.drain()
        if self._client is not None:
            await self._client.aclose()
