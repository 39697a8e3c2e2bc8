"""Tests for the scheduled news cycle."""
from unittest.mock import AsyncMock

import pytest

from conftest import faulted, image_done, text_done
from gridclient.feeds import FeedItem
from newsbot.chat import ChatHandler
from newsbot.content import ContentPipeline
from newsbot.cycle import NewsCycle
from newsbot.fallback import FallbackOrchestrator

SUMMARY = "Officials confirmed the new bridge will open next spring after years of construction delays. " * 2
ARTICLE = "The long-awaited bridge will finally open next spring, officials confirmed on Tuesday. " * 8


def feed_item(image=None, content=SUMMARY):
    return FeedItem(
        title="Bridge Opening Set",
        link="https://news.test/bridge",
        content=content,
        source="Test Feed",
        published="Tue, 07 Jan 2025 14:30:00 GMT",
        image=image,
    )


@pytest.fixture
def poster():
    mock = AsyncMock()
    mock.post_news.return_value = True
    mock.post_poll.return_value = True
    return mock


@pytest.fixture
def make_cycle(make_text_client, make_image_client, settings, poster, clock):
    def factory(item):
        reader = AsyncMock()
        reader.fetch_latest_item.return_value = item
        pipeline = ContentPipeline(FallbackOrchestrator(make_text_client(), make_image_client()), settings)
        return NewsCycle(pipeline, reader, poster, settings, sleep=clock.sleep)

    return factory


@pytest.mark.anyio
async def test_run_once_posts_enhanced_article_with_generated_image(grid, make_cycle, poster):
    grid.queue_job(text_done(ARTICLE))
    grid.queue_job(image_done("https://r2.test/tmp/x.webp", gen_id="img-1"))
    cycle = make_cycle(feed_item())

    post = await cycle.run_once()

    assert post.content == ARTICLE.strip()
    assert post.image_url == "https://cdn.test/img-1.webp"
    poster.post_news.assert_awaited_once_with(post)
    assert cycle.recent.latest.headline == "Bridge Opening Set"
    poster.post_poll.assert_not_awaited()


@pytest.mark.anyio
async def test_run_once_keeps_feed_image(grid, make_cycle):
    grid.queue_job(text_done(ARTICLE))
    cycle = make_cycle(feed_item(image="https://img.test/bridge.jpg"))

    post = await cycle.run_once()

    assert post.image_url == "https://img.test/bridge.jpg"
    assert len(grid.submissions) == 1


@pytest.mark.anyio
async def test_run_once_posts_text_only_when_image_fails(grid, make_cycle):
    grid.queue_job(text_done(ARTICLE))
    grid.queue_job(faulted())
    grid.queue_job(faulted())
    cycle = make_cycle(feed_item())

    post = await cycle.run_once()

    assert post.image_url is None
    assert post.content == ARTICLE.strip()


@pytest.mark.anyio
async def test_run_once_short_item_skips_generation(grid, make_cycle):
    cycle = make_cycle(feed_item(content="Bridge opens in spring."))

    post = await cycle.run_once()

    assert post.content == "Bridge opens in spring."
    assert post.image_url is None
    assert grid.submissions == []


@pytest.mark.anyio
async def test_run_once_without_item(make_cycle, poster):
    cycle = make_cycle(None)

    assert await cycle.run_once() is None
    poster.post_news.assert_not_awaited()


@pytest.mark.anyio
async def test_run_once_creates_poll_when_enabled(grid, make_cycle, poster, settings):
    settings.enable_polls = True
    grid.queue_job(text_done(ARTICLE))
    grid.queue_job(image_done("https://r2.test/tmp/x.webp", gen_id="img-1"))
    grid.queue_job(text_done('{"should_create_poll": true, "poll_question": "Worth the wait?", "options": ["Yes", "No"]}'))
    cycle = make_cycle(feed_item())

    await cycle.run_once()

    poster.post_poll.assert_awaited_once_with("Worth the wait?", ["Yes", "No"])


@pytest.mark.anyio
async def test_failed_post_is_not_remembered(grid, make_cycle, poster):
    poster.post_news.return_value = False
    cycle = make_cycle(feed_item(content="Bridge opens in spring."))

    assert await cycle.run_once() is None

    poster.post_news.assert_awaited_once()
    assert cycle.recent.latest is None


@pytest.mark.anyio
async def test_run_forever_survives_cycle_errors(make_cycle, clock, settings):
    cycle = make_cycle(None)
    cycle.reader.fetch_latest_item.side_effect = [RuntimeError("feed exploded"), None, None]

    await cycle.run_forever(max_cycles=3)

    assert cycle.reader.fetch_latest_item.await_count == 3
    assert clock.sleeps == [settings.update_frequency_minutes * 60] * 2


@pytest.mark.anyio
async def test_chat_answers_from_article_the_cycle_posted(grid, make_cycle, settings):
    grid.queue_job(text_done(ARTICLE))
    cycle = make_cycle(feed_item(image="https://img.test/bridge.jpg"))
    await cycle.run_once()

    grid.queue_job(text_done("The bridge opens next spring, officials confirmed on Tuesday after long delays."))
    handler = ChatHandler(cycle.pipeline, settings, cycle.recent)

    parts = await handler.handle_message("When does the bridge open?", user_id="u1")

    assert parts == ["The bridge opens next spring, officials confirmed on Tuesday after long delays."]
    prompt = grid.submissions[-1]["prompt"]
    assert "Title: Bridge Opening Set" in prompt
    assert "officials confirmed on Tuesday" in prompt
    assert handler.history.messages("u1")[0].content == "When does the bridge open?"
