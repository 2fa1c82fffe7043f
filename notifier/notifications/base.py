"""
Delivery primitives — the DeliveryChannel ABC.

Every delivery target (Telegram, file log, …) implements DeliveryChannel.
The scheduler calls send() once per recipient chat with the message
already rendered for that chat.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from notifier.scheduler.record import ChatTarget


class DeliveryChannel(ABC):
    """
    Abstract delivery target.

    send() returns True if the message was actually sent. Raising is
    allowed; the scheduler treats an exception like a False return.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Short identifier, e.g. 'telegram', 'file'."""
        ...

    @property
    def is_active(self) -> bool:
        """Whether this channel can currently deliver anything."""
        return True

    @property
    def is_external(self) -> bool:
        """
        External platforms (Telegram, …) are what recipients actually read.
        Local sinks such as the file log leave this False.
        """
        return False

    @abstractmethod
    async def send(self, target: ChatTarget, message: str) -> bool:
        """Deliver `message` to one chat."""
        ...
