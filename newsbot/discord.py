"""
Posting to Discord through an incoming webhook.

News goes out as an embed (title, link, description, footer, image). If the
embed is rejected a plain-text message is tried instead. Without a webhook
URL the poster runs dry and only logs what it would have sent.
"""
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Any, Dict, List, Optional

import httpx
import structlog

from .polls import build_poll_embed, build_poll_message
from .schemas import NewsPost

logger = structlog.get_logger()

NEWS_EMBED_COLOR = 0x0099FF
MAX_TITLE_CHARS = 256
MAX_EMBED_DESCRIPTION = 4000
MAX_FALLBACK_CONTENT = 1500


def truncate(text: str, limit: int) -> str:
    if len(text) <= limit:
        return text
    return text[:limit] + "..."


def format_published(published: Optional[str]) -> str:
    """Feed publish date as e.g. "Mon, Jan 06, 02:30 PM"; "Recently" if unparseable."""
    if not published:
        return "Recently"
    try:
        parsed = parsedate_to_datetime(published)
        if parsed is None:
            raise ValueError(published)
    except (TypeError, ValueError, IndexError):
        try:
            parsed = datetime.fromisoformat(published.replace("Z", "+00:00"))
        except ValueError:
            logger.warning("publish_date_unparseable", published=published)
            return "Recently"
    return parsed.strftime("%a, %b %d, %I:%M %p")


def build_news_embed(post: NewsPost) -> Dict[str, Any]:
    embed: Dict[str, Any] = {
        "title": truncate(post.title, MAX_TITLE_CHARS - 3),
        "description": truncate(post.content, MAX_EMBED_DESCRIPTION),
        "color": NEWS_EMBED_COLOR,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "footer": {"text": f"Source: {post.source} • Published: {format_published(post.published)}"},
    }
    if post.link:
        embed["url"] = post.link
    if post.image_url:
        embed["image"] = {"url": post.image_url}
    return embed


def build_news_text(post: NewsPost) -> str:
    """Plain-text fallback used when the embed is rejected."""
    message = f"**{post.title}**\n\n{truncate(post.content, MAX_FALLBACK_CONTENT)}\n\n*Source: {post.source}*"
    if post.link:
        message += f"\n{post.link}"
    return message


class DiscordWebhookPoster:
    """
    Sends messages to one Discord channel webhook.

    Example:
        async with DiscordWebhookPoster(settings.discord_webhook_url) as poster:
            await poster.post_news(post)
    """

    def __init__(
        self,
        webhook_url: Optional[str] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        timeout: int = 10,
    ):
        self.webhook_url = webhook_url
        self.timeout = timeout
        self._client = http_client
        self._owns_client = http_client is None

    @property
    def dry_run(self) -> bool:
        return not self.webhook_url

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create the HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout)
            self._owns_client = True
        return self._client

    async def close(self):
        """Close the HTTP client if this instance created it."""
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        await self.close()

    async def _send(self, payload: Dict[str, Any]):
        """POST one webhook message. Raises httpx.HTTPError on failure."""
        client = await self._get_client()
        response = await client.post(self.webhook_url, json=payload)
        response.raise_for_status()

    async def post_text(self, content: str) -> bool:
        if self.dry_run:
            logger.info("discord_dry_run", content=content[:200])
            return True
        try:
            await self._send({"content": content})
            return True
        except httpx.HTTPError as e:
            logger.error("discord_post_failed", kind="text", error=str(e))
            return False

    async def post_news(self, post: NewsPost) -> bool:
        """
        Post a news article.

        Returns:
            True if either the embed or the plain-text fallback was delivered
        """
        if self.dry_run:
            logger.info("discord_dry_run", title=post.title, link=post.link, image_url=post.image_url)
            return True

        try:
            await self._send({"embeds": [build_news_embed(post)]})
            logger.info("news_posted", title=post.title, has_image=bool(post.image_url))
            return True
        except httpx.HTTPError as e:
            logger.warning("news_embed_failed", title=post.title, error=str(e))

        try:
            await self._send({"content": build_news_text(post)})
            logger.info("news_posted_as_text", title=post.title)
            return True
        except httpx.HTTPError as e:
            logger.error("news_post_failed", title=post.title, error=str(e))
            return False

    async def post_poll(self, topic: str, options: List[str]) -> bool:
        """Announce a poll; falls back to plain text like post_news."""
        if self.dry_run:
            logger.info("discord_dry_run", poll=build_poll_message(topic, options))
            return True

        try:
            await self._send({"embeds": [build_poll_embed(topic, options)]})
            logger.info("poll_posted", topic=topic[:100], options=len(options))
            return True
        except httpx.HTTPError as e:
            logger.warning("poll_embed_failed", error=str(e))

        return await self.post_text(build_poll_message(topic, options))
