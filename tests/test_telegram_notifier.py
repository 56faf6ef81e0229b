from __future__ import annotations

import asyncio

import pytest

from adapters.telegram_notifier import TelethonGroupSender
from core.models import RenderedMessage


class FakeClient:
    def __init__(self) -> None:
        self.calls: list[tuple[tuple, dict]] = []

    async def send_message(self, *args, **kwargs) -> None:
        self.calls.append((args, kwargs))


def test_send_targets_group_topic_with_button() -> None:
    client = FakeClient()
    sender = TelethonGroupSender(client, -100200, topic_id=7)
    rendered = RenderedMessage(
        text="<b>hi</b>",
        parse_mode="html",
        link_url="https://inbox.test/1",
        link_label="View in Intercom",
    )

    asyncio.run(sender.send(rendered))

    args, kwargs = client.calls[0]
    assert args == (-100200, "<b>hi</b>")
    assert kwargs["parse_mode"] == "html"
    assert kwargs["reply_to"] == 7
    assert kwargs["link_preview"] is False
    assert len(kwargs["buttons"]) == 1


def test_send_without_link_has_no_buttons() -> None:
    client = FakeClient()
    sender = TelethonGroupSender(client, -100200)

    asyncio.run(sender.send(RenderedMessage(text="hi", parse_mode="html")))

    assert client.calls[0][1]["buttons"] is None
    assert client.calls[0][1]["reply_to"] is None


def test_markdown_v2_is_refused() -> None:
    client = FakeClient()
    sender = TelethonGroupSender(client, -100200)

    with pytest.raises(ValueError):
        asyncio.run(sender.send(RenderedMessage(text="hi", parse_mode="markdown_v2")))
    assert client.calls == []
