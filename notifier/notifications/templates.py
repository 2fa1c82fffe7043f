"""
Template rendering — turns a template reference into the text for one chat.

TagTemplateRenderer substitutes %tag% placeholders, the auto-insert tags
admins put into portal templates ("%birthdays_month%", "%vacations_next_month%",
…). Each tag is backed by a provider registered by the host application;
providers may be plain functions or coroutines and receive the
RecipientContext of the chat being rendered for.

Built-in tags:
    %chat%          name of the recipient chat
    %notification%  name of the notification
    %date%          current date, DD.MM.YYYY
"""

from __future__ import annotations

import datetime
import inspect
import logging
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Awaitable, Callable, Union

from notifier.core.errors import RenderError
from notifier.scheduler.record import ChatTarget, NotificationRecord

logger = logging.getLogger(__name__)

_TAG = re.compile(r"%(\w[\w .-]*)%")

TagProvider = Callable[["RecipientContext"], Union[str, Awaitable[str]]]
TemplateLoader = Callable[[str], Awaitable[Union[str, None]]]


@dataclass(frozen=True)
class RecipientContext:
    """Everything a template may depend on for one delivery."""

    record: NotificationRecord
    chat: ChatTarget
    now: datetime.datetime


class TemplateRenderer(ABC):
    """Renders a template for one recipient."""

    @abstractmethod
    async def render(self, template_ref: str, context: RecipientContext) -> str:
        """Return the message text. Raises RenderError on failure."""
        ...


class TagTemplateRenderer(TemplateRenderer):
    """
    Loads template bodies through `loader` and fills in %tag% placeholders.

    Usage:
        renderer = TagTemplateRenderer(store.get_template)
        renderer.register_tag("birthdays_month", birthdays_this_month)
        text = await renderer.render("monthly-digest", context)

    Unknown tags are left in the text as-is.
    """

    def __init__(self, loader: TemplateLoader) -> None:
        self._loader = loader
        self._tags: dict[str, TagProvider] = {
            "chat": lambda ctx: ctx.chat.name,
            "notification": lambda ctx: ctx.record.name,
            "date": lambda ctx: ctx.now.strftime("%d.%m.%Y"),
        }

    def register_tag(self, tag: str, provider: TagProvider) -> None:
        self._tags[tag.strip("%")] = provider

    @property
    def tags(self) -> list[str]:
        return sorted(self._tags)

    async def render(self, template_ref: str, context: RecipientContext) -> str:
        try:
            content = await self._loader(template_ref)
        except Exception as e:
            raise RenderError(
                f"Failed to load template {template_ref!r}: {e}", template_ref=template_ref
            ) from e
        if content is None:
            raise RenderError(f"Template {template_ref!r} not found", template_ref=template_ref)

        values: dict[str, str] = {}
        for tag in set(_TAG.findall(content)):
            provider = self._tags.get(tag)
            if provider is None:
                logger.debug(f"Unknown tag %{tag}% in template {template_ref!r}, left as-is")
                continue
            try:
                value = provider(context)
                if inspect.isawaitable(value):
                    value = await value
            except Exception as e:
                raise RenderError(
                    f"Tag %{tag}% failed in template {template_ref!r}: {e}",
                    template_ref=template_ref,
                ) from e
            values[tag] = str(value)

        return _TAG.sub(lambda m: values.get(m.group(1), m.group(0)), content)
