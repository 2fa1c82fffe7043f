"""
TelegramChannel — posts rendered notifications through the Bot API.

Requires config:
    [telegram]
    token = "BOT_TOKEN"

Each recipient chat carries its own chat_id; the bot must be a member of
every group it posts to.

To get a group's chat_id:
    1. Add the bot to the group and send any message there.
    2. Visit https://api.telegram.org/bot<TOKEN>/getUpdates
       and read the "chat.id" field.
"""

from __future__ import annotations

import logging

import httpx

from notifier.notifications.base import DeliveryChannel
from notifier.scheduler.record import ChatTarget

logger = logging.getLogger(__name__)

_SEND_MESSAGE = "{base}/bot{token}/sendMessage"


class TelegramChannel(DeliveryChannel):
    """
    One sendMessage call per recipient chat.

    is_external = True.
    is_active   = True only when a bot token is configured.
    """

    def __init__(
        self,
        token: str = "",
        parse_mode: str = "HTML",
        timeout: float = 10.0,
        api_base: str = "https://api.telegram.org",
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._token = token.strip()
        self._parse_mode = parse_mode
        self._timeout = timeout
        self._api_base = api_base.rstrip("/")
        self._transport = transport

    @property
    def name(self) -> str:
        return "telegram"

    @property
    def is_external(self) -> bool:
        return True

    @property
    def is_active(self) -> bool:
        return bool(self._token)

    async def send(self, target: ChatTarget, message: str) -> bool:
        if not self.is_active:
            return False
        url = _SEND_MESSAGE.format(base=self._api_base, token=self._token)
        payload = {"chat_id": target.chat_id, "text": message}
        if self._parse_mode:
            payload["parse_mode"] = self._parse_mode
        try:
            async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
                resp = await client.post(url, json=payload)
                resp.raise_for_status()
                body = resp.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.warning(f"Telegram delivery to {target.name!r} failed: {e}")
            return False
        if not body.get("ok", False):
            logger.warning(
                f"Telegram rejected message for {target.name!r}: {body.get('description', 'unknown error')}"
            )
            return False
        logger.debug(f"Telegram notification sent to {target.chat_id}")
        return True
