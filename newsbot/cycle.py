"""
The scheduled news cycle: fetch -> enhance -> image -> post -> remember -> poll.
"""
import asyncio
from typing import Any, Awaitable, Callable, Optional

import structlog

from gridclient.config import Settings
from gridclient.feeds import FeedReader

from .chat import RecentArticles
from .content import ContentPipeline
from .discord import DiscordWebhookPoster
from .polls import decide_poll
from .schemas import NewsPost, RecentArticle

logger = structlog.get_logger()

# Articles at least this long get a generated image when the feed has none
MIN_ARTICLE_CHARS_FOR_IMAGE = 100
IMAGE_PROMPT_EXCERPT_CHARS = 500


class NewsCycle:
    """
    One bot's posting loop.

    All state (feed tracker, recent articles) is held by the objects passed
    in, so a chat front-end can share `recent` with the cycle.
    """

    def __init__(
        self,
        pipeline: ContentPipeline,
        reader: FeedReader,
        poster: DiscordWebhookPoster,
        settings: Settings,
        recent: Optional[RecentArticles] = None,
        sleep: Optional[Callable[[float], Awaitable[Any]]] = None,
    ):
        self.pipeline = pipeline
        self.reader = reader
        self.poster = poster
        self.settings = settings
        self.recent = recent if recent is not None else RecentArticles()
        self._sleep = sleep or asyncio.sleep

    async def run_once(self) -> Optional[NewsPost]:
        """
        Post the next unposted feed item.

        Returns:
            The NewsPost that was sent, or None when no new item was available
            or the webhook rejected the post
        """
        item = await self.reader.fetch_latest_item(self.settings.news_feeds)
        if item is None:
            logger.warning("news_cycle_no_item")
            return None

        logger.info("news_cycle_processing", title=item.title, source=item.source)

        enhanced = await self.pipeline.enhance_article(item.title, item.content, source=item.source)
        article = enhanced.article or item.content or item.title

        image_url = item.image
        if not image_url and len(article) > MIN_ARTICLE_CHARS_FOR_IMAGE:
            prompt = await self.pipeline.generate_image_prompt(item.title, article[:IMAGE_PROMPT_EXCERPT_CHARS])
            image_url = await self.pipeline.generate_image(item.title, prompt)

        post = NewsPost(
            title=enhanced.title or item.title,
            content=article,
            link=item.link,
            source=item.source,
            published=item.published,
            image_url=image_url,
        )

        if not await self.poster.post_news(post):
            logger.error("news_cycle_post_failed", title=post.title)
            return None

        self.recent.add(RecentArticle(headline=post.title, article=article, link=post.link, source=post.source))

        if self.settings.enable_polls:
            decision = await decide_poll(self.pipeline.orchestrator, self.settings, post.title, article)
            if decision.is_viable:
                await self.poster.post_poll(decision.poll_question or post.title, decision.options)

        logger.info("news_cycle_complete", title=post.title, strategy=enhanced.strategy, has_image=bool(image_url))
        return post

    async def run_forever(self, max_cycles: Optional[int] = None):
        """
        Run a cycle now, then every update_frequency_minutes.

        A failing cycle is logged and the schedule continues.
        """
        interval = self.settings.update_frequency_minutes * 60
        logger.info("news_schedule_started", interval_minutes=self.settings.update_frequency_minutes)

        cycles = 0
        while max_cycles is None or cycles < max_cycles:
            cycles += 1
            try:
                await self.run_once()
            except Exception as e:
                logger.error("news_cycle_failed", cycle=cycles, error=str(e), exc_info=True)

            if max_cycles is not None and cycles >= max_cycles:
                break
            await self._sleep(interval)
