"""
Service wiring — builds the store, renderer, channels and scheduler from config.

Usage:
    service = build_service(NotifierConfig.load())
    await service.open()
    await service.lifecycle.start()
    ...
    await service.close()
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path

from notifier.core.config import NotifierConfig
from notifier.notifications.channels.file import FileChannel
from notifier.notifications.channels.telegram import TelegramChannel
from notifier.notifications.router import ChannelRouter
from notifier.notifications.templates import TagTemplateRenderer
from notifier.scheduler.engine import NotificationScheduler
from notifier.scheduler.lifecycle import ServiceLifecycle
from notifier.scheduler.manual import ManualTrigger
from notifier.store.sqlite import SQLiteNotificationStore

logger = logging.getLogger(__name__)


@dataclass
class NotifierService:
    """Everything one notifier process needs, constructed once."""

    config: NotifierConfig
    store: SQLiteNotificationStore
    renderer: TagTemplateRenderer
    router: ChannelRouter
    scheduler: NotificationScheduler
    manual: ManualTrigger
    lifecycle: ServiceLifecycle

    async def open(self) -> None:
        await self.store.initialize()
        if self.config.scheduler.enabled and self.config.scheduler.autostart:
            await self.lifecycle.start()

    async def close(self) -> None:
        await self.lifecycle.stop()
        await self.store.close()


def build_service(config: NotifierConfig) -> NotifierService:
    store = SQLiteNotificationStore(config.get_db_path())
    renderer = TagTemplateRenderer(store.get_template)

    router = ChannelRouter()
    if config.telegram.configured:
        router.register(
            TelegramChannel(
                token=config.telegram.token,
                parse_mode=config.telegram.parse_mode,
                timeout=config.telegram.timeout,
                api_base=config.telegram.api_base,
            )
        )
    else:
        logger.warning("Telegram token not configured; notifications go to the file log only")
    router.register(FileChannel(Path(config.logging.notifications_log).expanduser()))

    scheduler = NotificationScheduler(store, renderer, router)
    return NotifierService(
        config=config,
        store=store,
        renderer=renderer,
        router=router,
        scheduler=scheduler,
        manual=ManualTrigger(scheduler),
        lifecycle=ServiceLifecycle(scheduler, poll_interval=config.scheduler.poll_interval),
    )
