"""
RSS feed source for the news bot.

Fetches feeds with httpx, parses them with feedparser, and picks the next
article that has not been posted yet.

Posted-URL history and per-feed cursors live in an explicit FeedTracker the
caller owns, so nothing here is process-global.
"""
import random
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence
from urllib.parse import urljoin

import feedparser
import httpx
import structlog
from bs4 import BeautifulSoup

from .config import FeedSource

logger = structlog.get_logger()

# How many entries per feed to inspect before moving on
MAX_ITEMS_CHECKED = 10

# Posted-URL history size
MAX_POSTED_URLS = 100

# Content shorter than this gets padded from other entry fields
MIN_CONTENT_CHARS = 100

# Content shorter than this (after padding) is replaced by a placeholder
MIN_USABLE_CONTENT_CHARS = 50

FEATURED_IMAGE_CLASS = re.compile(r"featured|main|hero|primary", re.IGNORECASE)
BLOCK_TAGS = ["p", "div", "h1", "h2", "h3", "h4", "h5", "h6", "blockquote", "ul", "ol"]


@dataclass
class FeedItem:
    """One article picked from a feed, with HTML already stripped."""
    title: str
    link: str
    content: str
    source: str
    published: str
    image: Optional[str] = None


@dataclass
class FeedTracker:
    """
    Dedup state across cycles.

    posted_urls keeps insertion order (oldest first) and is capped at
    max_posted_urls; cursors remember where each feed was last read.
    """
    max_posted_urls: int = MAX_POSTED_URLS
    posted_urls: Dict[str, None] = field(default_factory=dict)
    cursors: Dict[str, int] = field(default_factory=dict)

    def has_posted(self, url: str) -> bool:
        return url in self.posted_urls

    def mark_posted(self, url: str) -> None:
        self.posted_urls.pop(url, None)
        self.posted_urls[url] = None
        while len(self.posted_urls) > self.max_posted_urls:
            oldest = next(iter(self.posted_urls))
            del self.posted_urls[oldest]

    def forget_older_half(self) -> None:
        """Allow re-posting of older articles once every feed is exhausted."""
        urls = list(self.posted_urls)
        self.posted_urls = dict.fromkeys(urls[len(urls) // 2:])


class FeedReader:
    """
    Reads RSS feeds and returns the next unposted article.
    """

    def __init__(
        self,
        tracker: Optional[FeedTracker] = None,
        timeout: int = 30,
        http_client: Optional[httpx.AsyncClient] = None,
        shuffle: bool = True,
    ):
        """
        Initialize the reader.

        Args:
            tracker: Dedup state (a fresh one is created if omitted)
            timeout: Request timeout in seconds
            http_client: Optional pre-built httpx client
            shuffle: Try feeds in random order for variety
        """
        self.tracker = tracker or FeedTracker()
        self.shuffle = shuffle
        self._owns_client = http_client is None
        self.client = http_client or httpx.AsyncClient(
            timeout=timeout,
            follow_redirects=True,
            headers={"User-Agent": "Mozilla/5.0 (compatible; GridNewsBot/1.0)"},
        )

    async def fetch_entries(self, feed: FeedSource) -> List[Any]:
        """Fetch and parse one feed. Raises httpx.HTTPError on transport failure."""
        response = await self.client.get(feed.url)
        response.raise_for_status()
        parsed = feedparser.parse(response.text)
        if parsed.bozo and not parsed.entries:
            logger.warning("feed_parse_failed", feed=feed.name, error=str(parsed.get("bozo_exception")))
        return list(parsed.entries)

    async def fetch_latest_item(self, feeds: Sequence[FeedSource]) -> Optional[FeedItem]:
        """
        Return the next article not posted yet, or None if every feed is exhausted.

        Feeds are tried in (optionally shuffled) order; within a feed, up to
        MAX_ITEMS_CHECKED entries are checked starting from the feed's cursor.
        """
        ordered = list(feeds)
        if self.shuffle:
            random.shuffle(ordered)

        logger.info("fetching_feeds", count=len(ordered))

        saw_entries = False
        for feed in ordered:
            try:
                entries = await self.fetch_entries(feed)
            except httpx.HTTPError as e:
                logger.error("feed_fetch_failed", feed=feed.name, url=feed.url, error=str(e))
                continue

            if not entries:
                logger.warning("feed_empty", feed=feed.name)
                continue

            saw_entries = True
            total = len(entries)
            start = self.tracker.cursors.get(feed.url, 0) % total

            for offset in range(min(MAX_ITEMS_CHECKED, total)):
                index = (start + offset) % total
                entry = entries[index]
                link = entry.get("link")
                if not link or self.tracker.has_posted(link):
                    continue

                item = build_feed_item(entry, feed)
                self.tracker.mark_posted(link)
                self.tracker.cursors[feed.url] = (index + 1) % total
                logger.info("feed_item_selected", feed=feed.name, title=item.title[:80], content_len=len(item.content))
                return item

            self.tracker.cursors[feed.url] = (start + 1) % total
            logger.info("feed_no_new_items", feed=feed.name)

        if saw_entries and self.tracker.posted_urls:
            logger.info("all_feed_items_posted_trimming_history", posted=len(self.tracker.posted_urls))
            self.tracker.forget_older_half()

        logger.warning("no_feed_items_available")
        return None

    async def close(self):
        """Close the HTTP client if this reader created it."""
        if self._owns_client:
            await self.client.aclose()


# =============================================================================
# ENTRY PARSING
# =============================================================================

def build_feed_item(entry: Any, feed: FeedSource) -> FeedItem:
    """Turn a feedparser entry into a FeedItem with plain-text content."""
    link = entry.get("link", "")
    title = html_to_text(entry.get("title", "")) or "Untitled"
    raw_html = _raw_content(entry)
    content = html_to_text(raw_html)

    if len(content) < MIN_CONTENT_CHARS:
        combined = _combined_fields(entry, title)
        if len(combined) > len(content):
            content = combined

    published = entry.get("published") or datetime.now(timezone.utc).isoformat()

    if len(content) < MIN_USABLE_CONTENT_CHARS:
        logger.warning("feed_item_without_content", feed=feed.name, title=title[:80])
        content = (
            f'News item from {feed.name} with title "{title}". Published on {published}. '
            "Unfortunately, no detailed content was provided in the RSS feed."
        )

    return FeedItem(
        title=title,
        link=link,
        content=content,
        source=feed.name,
        published=published,
        image=extract_image(entry, raw_html, link),
    )


def _raw_content(entry: Any) -> str:
    """Longest of content:encoded / summary / description."""
    candidates = []
    for block in entry.get("content") or []:
        value = block.get("value") if isinstance(block, dict) else None
        if value:
            candidates.append(value)
    for key in ("summary", "description"):
        value = entry.get(key)
        if value:
            candidates.append(value)
    if not candidates:
        return ""
    return max(candidates, key=len)


def _combined_fields(entry: Any, title: str) -> str:
    parts = [f"Headline: {title}"]
    summary = html_to_text(entry.get("summary", ""))
    if summary:
        parts.append(f"Summary: {summary}")
    tags = [t.get("term") for t in entry.get("tags") or [] if t.get("term")]
    if tags:
        parts.append(f"Categories: {', '.join(tags)}")
    if entry.get("published"):
        parts.append(f"Published: {entry.get('published')}")
    if entry.get("author"):
        parts.append(f"Author: {entry.get('author')}")
    return "\n\n".join(parts)


def html_to_text(html: str) -> str:
    """
    Convert feed HTML to plain text for chat posting.

    Images and figures are dropped, paragraphs become blank-line separated,
    list items become bullets, entities are decoded.
    """
    if not html:
        return ""

    soup = BeautifulSoup(html, "lxml")
    for tag in soup.find_all(["img", "figure", "script", "style"]):
        tag.decompose()
    for br in soup.find_all("br"):
        br.replace_with("\n")
    for li in soup.find_all("li"):
        li.insert_before("\n• ")
    for block in soup.find_all(BLOCK_TAGS):
        block.insert_before("\n\n")

    text = soup.get_text()
    text = re.sub(r"[ \t]+\n", "\n", text)
    text = re.sub(r"\n[ \t]+", "\n", text)
    text = re.sub(r"\n{3,}", "\n\n", text)
    return text.strip()


def extract_image(entry: Any, raw_html: str, link: str) -> Optional[str]:
    """
    Best image URL for an entry, or None.

    Order: enclosure, media:content, media:thumbnail, itunes:image, then a
    featured <img> in the content, then the first <img>.
    """
    image = None

    for enclosure in entry.get("enclosures") or []:
        image = enclosure.get("href") or enclosure.get("url")
        if image:
            break

    if not image:
        for key in ("media_content", "media_thumbnail"):
            media = entry.get(key) or []
            if media and media[0].get("url"):
                image = media[0]["url"]
                break

    if not image:
        itunes = entry.get("image")
        if isinstance(itunes, dict) and itunes.get("href"):
            image = itunes["href"]

    if not image and raw_html and "<img" in raw_html:
        soup = BeautifulSoup(raw_html, "lxml")
        featured = soup.find("img", class_=FEATURED_IMAGE_CLASS, src=True)
        first = featured or soup.find("img", src=True)
        if first:
            image = first["src"]

    if not image:
        return None

    if image.startswith("/") and link:
        image = urljoin(link, image)

    if not image.startswith(("http://", "https://")):
        logger.debug("feed_image_url_rejected", url=image)
        return None
    return image
