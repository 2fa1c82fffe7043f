"""Shared test fixtures for the notifier."""
from __future__ import annotations

import datetime

import pytest

from notifier.notifications.base import DeliveryChannel
from notifier.notifications.templates import TagTemplateRenderer
from notifier.scheduler.engine import NotificationScheduler
from notifier.scheduler.record import ChatTarget
from notifier.store.memory import InMemoryNotificationStore


class FakeChannel(DeliveryChannel):
    """Records what it was asked to send; fails for the chat ids in `fail_for`."""

    def __init__(
        self,
        name: str = "fake",
        *,
        active: bool = True,
        external: bool = False,
        fail_for: set[str] | None = None,
        raises: bool = False,
    ) -> None:
        self._name = name
        self._active = active
        self._external = external
        self._fail_for = fail_for or set()
        self._raises = raises
        self.sent: list[tuple[str, str]] = []

    @property
    def name(self) -> str:
        return self._name

    @property
    def is_active(self) -> bool:
        return self._active

    @property
    def is_external(self) -> bool:
        return self._external

    async def send(self, target: ChatTarget, message: str) -> bool:
        if self._raises:
            raise RuntimeError(f"{self._name} exploded")
        if target.chat_id in self._fail_for:
            return False
        self.sent.append((target.chat_id, message))
        return True


def at(year: int, month: int, day: int, hour: int = 0, minute: int = 0) -> datetime.datetime:
    """Naive local datetime shorthand."""
    return datetime.datetime(year, month, day, hour, minute)


@pytest.fixture
def store():
    """A fresh in-memory notification store."""
    return InMemoryNotificationStore()


@pytest.fixture
def channel():
    return FakeChannel()


@pytest.fixture
def renderer(store):
    return TagTemplateRenderer(store.get_template)


@pytest.fixture
def scheduler(store, renderer, channel):
    return NotificationScheduler(store, renderer, channel)
