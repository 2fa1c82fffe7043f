"""Tests for notifier/notifications/channels/telegram.py"""
from __future__ import annotations

import json

import httpx
import pytest

from notifier.notifications.channels.telegram import TelegramChannel
from notifier.scheduler.record import ChatTarget

CHAT = ChatTarget(name="Dev team", chat_id="-100123")


def _transport(status: int = 200, body: dict | None = None, calls: list | None = None):
    def handler(request: httpx.Request) -> httpx.Response:
        if calls is not None:
            calls.append(request)
        return httpx.Response(status, json=body if body is not None else {"ok": True, "result": {}})
    return httpx.MockTransport(handler)


class TestTelegramChannelProperties:
    def test_inactive_without_token(self):
        channel = TelegramChannel()
        assert not channel.is_active
        assert channel.is_external
        assert channel.name == "telegram"

    def test_active_with_token(self):
        assert TelegramChannel(token="123:abc").is_active


@pytest.mark.asyncio
class TestTelegramSend:
    async def test_posts_send_message(self):
        calls: list[httpx.Request] = []
        channel = TelegramChannel(token="123:abc", transport=_transport(calls=calls))

        assert await channel.send(CHAT, "<b>Hello</b>")

        assert len(calls) == 1
        request = calls[0]
        assert request.url == "https://api.telegram.org/bot123:abc/sendMessage"
        payload = json.loads(request.content)
        assert payload == {"chat_id": "-100123", "text": "<b>Hello</b>", "parse_mode": "HTML"}

    async def test_no_parse_mode(self):
        calls: list[httpx.Request] = []
        channel = TelegramChannel(token="t", parse_mode="", transport=_transport(calls=calls))
        await channel.send(CHAT, "plain")
        assert "parse_mode" not in json.loads(calls[0].content)

    async def test_custom_api_base(self):
        calls: list[httpx.Request] = []
        channel = TelegramChannel(
            token="t", api_base="http://bot-proxy.local/", transport=_transport(calls=calls)
        )
        await channel.send(CHAT, "hi")
        assert str(calls[0].url) == "http://bot-proxy.local/bott/sendMessage"

    async def test_api_rejection(self):
        transport = _transport(body={"ok": False, "description": "chat not found"})
        channel = TelegramChannel(token="t", transport=transport)
        assert not await channel.send(CHAT, "hi")

    async def test_http_error(self):
        channel = TelegramChannel(token="t", transport=_transport(status=403, body={"ok": False}))
        assert not await channel.send(CHAT, "hi")

    async def test_network_error(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        channel = TelegramChannel(token="t", transport=httpx.MockTransport(handler))
        assert not await channel.send(CHAT, "hi")

    async def test_without_token_does_not_call(self):
        calls: list[httpx.Request] = []
        channel = TelegramChannel(transport=_transport(calls=calls))
        assert not await channel.send(CHAT, "hi")
        assert calls == []
