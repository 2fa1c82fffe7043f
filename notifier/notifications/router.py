"""
ChannelRouter — fans one chat message out to the registered channels.

Routing logic:

    1. Send via every active EXTERNAL channel (Telegram, …).
    2. ALWAYS append to the local sinks (file log).
    3. The send counts as delivered if an external channel delivered it,
       or, when no external channel is active, if a local sink recorded it.

This means:
- Telegram configured → success depends on Telegram; file is a record
- No token configured → the file log is the delivery
"""

from __future__ import annotations

import logging

from notifier.notifications.base import DeliveryChannel
from notifier.scheduler.record import ChatTarget

logger = logging.getLogger(__name__)


class ChannelRouter(DeliveryChannel):
    """
    Routes messages to the appropriate channel(s).

    Usage:
        router = ChannelRouter()
        router.register(TelegramChannel(token))
        router.register(FileChannel())

        ok = await router.send(chat, text)
    """

    def __init__(self) -> None:
        self._channels: list[DeliveryChannel] = []

    @property
    def name(self) -> str:
        return "router"

    @property
    def is_external(self) -> bool:
        return any(c.is_external and c.is_active for c in self._channels)

    def register(self, channel: DeliveryChannel) -> None:
        """Add a channel; external vs local decides routing, not order."""
        self._channels.append(channel)
        logger.debug(f"Delivery channel registered: {channel.name}")

    @property
    def channel_names(self) -> list[str]:
        return [c.name for c in self._channels]

    async def send(self, target: ChatTarget, message: str) -> bool:
        """Deliver per the rules above. Never raises — failures are logged."""
        external = [c for c in self._channels if c.is_external and c.is_active]
        local = [c for c in self._channels if not c.is_external and c.is_active]

        external_delivered = False
        for channel in external:
            if await self._try(channel, target, message):
                external_delivered = True

        local_delivered = False
        for channel in local:
            if await self._try(channel, target, message):
                local_delivered = True

        if external:
            return external_delivered
        return local_delivered

    async def _try(self, channel: DeliveryChannel, target: ChatTarget, message: str) -> bool:
        try:
            ok = await channel.send(target, message)
        except Exception as e:
            logger.warning(f"Channel {channel.name} delivery to {target.name!r} failed: {e}")
            return False
        if ok:
            logger.debug(f"Message for {target.name!r} delivered via {channel.name}")
        return bool(ok)
