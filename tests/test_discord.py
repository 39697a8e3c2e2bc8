"""Tests for webhook posting."""
import json

import httpx
import pytest

from newsbot.discord import (
    DiscordWebhookPoster,
    build_news_embed,
    build_news_text,
    format_published,
)
from newsbot.schemas import NewsPost

WEBHOOK = "https://discord.test/api/webhooks/1/abc"

POST = NewsPost(
    title="Bridge Opening Set",
    content="Officials confirmed the bridge opens next spring. " * 100,
    link="https://news.test/bridge",
    source="Test Feed",
    published="Tue, 07 Jan 2025 14:30:00 GMT",
    image_url="https://cdn.test/abc.webp",
)


class RecordingWebhook:
    def __init__(self, *statuses):
        self.statuses = list(statuses)
        self.payloads = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.payloads.append(json.loads(request.content))
        status = self.statuses.pop(0) if self.statuses else 204
        return httpx.Response(status)

    def poster(self) -> DiscordWebhookPoster:
        return DiscordWebhookPoster(WEBHOOK, http_client=httpx.AsyncClient(transport=httpx.MockTransport(self.handler)))


def test_format_published():
    assert format_published("Tue, 07 Jan 2025 14:30:00 GMT") == "Tue, Jan 07, 02:30 PM"
    assert format_published("2025-01-07T14:30:00Z") == "Tue, Jan 07, 02:30 PM"
    assert format_published("sometime last week") == "Recently"
    assert format_published(None) == "Recently"


def test_build_news_embed_truncates_and_sets_image():
    embed = build_news_embed(POST)

    assert embed["title"] == "Bridge Opening Set"
    assert embed["url"] == "https://news.test/bridge"
    assert len(embed["description"]) == 4003
    assert embed["description"].endswith("...")
    assert embed["image"] == {"url": "https://cdn.test/abc.webp"}
    assert embed["footer"]["text"] == "Source: Test Feed • Published: Tue, Jan 07, 02:30 PM"


def test_build_news_embed_without_image():
    embed = build_news_embed(POST.model_copy(update={"image_url": None, "link": ""}))
    assert "image" not in embed
    assert "url" not in embed


def test_build_news_text():
    text = build_news_text(POST)
    assert text.startswith("**Bridge Opening Set**\n\n")
    assert "*Source: Test Feed*" in text
    assert text.endswith("https://news.test/bridge")


@pytest.mark.anyio
async def test_post_news_sends_embed():
    webhook = RecordingWebhook(204)

    assert await webhook.poster().post_news(POST)

    assert len(webhook.payloads) == 1
    assert webhook.payloads[0]["embeds"][0]["title"] == "Bridge Opening Set"


@pytest.mark.anyio
async def test_post_news_falls_back_to_text():
    webhook = RecordingWebhook(400, 204)

    assert await webhook.poster().post_news(POST)

    assert "embeds" in webhook.payloads[0]
    assert webhook.payloads[1]["content"].startswith("**Bridge Opening Set**")


@pytest.mark.anyio
async def test_post_news_reports_total_failure():
    webhook = RecordingWebhook(500, 500)
    assert not await webhook.poster().post_news(POST)


@pytest.mark.anyio
async def test_post_poll_sends_embed():
    webhook = RecordingWebhook(204)

    assert await webhook.poster().post_poll("Open early?", ["Yes", "No"])

    assert webhook.payloads[0]["embeds"][0]["title"] == "📊 Poll: Open early?"


@pytest.mark.anyio
async def test_dry_run_without_webhook():
    poster = DiscordWebhookPoster(None)

    assert poster.dry_run
    assert await poster.post_news(POST)
    assert await poster.post_poll("Open early?", ["Yes", "No"])
    assert await poster.post_text("hello")
    await poster.close()
