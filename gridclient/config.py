"""
Runtime configuration for the news bot.

Settings are read from environment variables (the team's .env), with the
same names the bot has always used. Everything has a default except the
Grid API key, which is the only fatal omission.
"""
import os
from typing import List, Mapping, Optional, Tuple

import structlog
from pydantic import BaseModel, Field

from .errors import ConfigError
from .job_client import DEFAULT_BASE_URL, DEFAULT_CLIENT_AGENT, DEFAULT_IMAGE_CDN_URL

logger = structlog.get_logger()


class FeedSource(BaseModel):
    """One RSS feed: display name + URL."""
    name: str
    url: str


DEFAULT_FEEDS: List[FeedSource] = [
    FeedSource(name="BBC News", url="http://feeds.bbci.co.uk/news/world/rss.xml"),
    FeedSource(name="CNN", url="http://rss.cnn.com/rss/edition.rss"),
    FeedSource(name="TechCrunch", url="https://techcrunch.com/feed/"),
]

DEFAULT_TEXT_MODEL = "grid/llama-3.1-8b-instant"
DEFAULT_IMAGE_MODEL = "Flux.1-Schnell fp8 (Compact)"
DEFAULT_POLL_MODEL = "grid/llama-3.3-70b-versatile"


# =============================================================================
# ACCEPTANCE HEURISTICS
# =============================================================================

DEFAULT_REFUSAL_PHRASES: Tuple[str, ...] = (
    "i apologize",
    "as an ai",
    "i cannot",
    "i can't",
    "since there is no",
    "placeholder article",
    "i'm sorry, but",
    "no article content",
)


class AcceptancePolicy(BaseModel):
    """
    Tunable thresholds for deciding whether generated text is usable.

    Output is "too short" only when it is both shorter than
    short_output_ratio x input length AND shorter than short_output_min_chars.
    """
    min_input_chars: int = Field(default=100, ge=0, description="Below this, enhancement is skipped")
    short_output_ratio: float = Field(default=1.5, gt=0)
    short_output_min_chars: int = Field(default=500, ge=0)
    refusal_phrases: Tuple[str, ...] = DEFAULT_REFUSAL_PHRASES


class Settings(BaseModel):
    """
    All configuration for one bot process.

    Example:
        settings = Settings.from_env()
        settings.require_api_key()
    """
    grid_api_key: Optional[str] = None
    grid_api_base_url: str = DEFAULT_BASE_URL
    grid_image_cdn_url: str = DEFAULT_IMAGE_CDN_URL
    client_agent: str = DEFAULT_CLIENT_AGENT

    discord_webhook_url: Optional[str] = None
    news_feeds: List[FeedSource] = Field(default_factory=lambda: list(DEFAULT_FEEDS))
    update_frequency_minutes: int = Field(default=60, ge=1)

    text_model: str = DEFAULT_TEXT_MODEL
    fallback_text_model: Optional[str] = None
    image_model: str = DEFAULT_IMAGE_MODEL
    fallback_image_model: Optional[str] = None
    image_style: Optional[str] = "flux-photo"
    poll_model: str = DEFAULT_POLL_MODEL

    enable_polls: bool = False
    llm_assisted_image_prompts: bool = False

    # Prompt overrides; None means "use the built-in template"
    news_enhancement_prompt: Optional[str] = None
    image_prompt_template: Optional[str] = None
    image_prompt_generation_prompt: Optional[str] = None
    poll_creation_prompt: Optional[str] = None

    acceptance: AcceptancePolicy = Field(default_factory=AcceptancePolicy)

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "Settings":
        """Build settings from environment variables (defaults for anything unset)."""
        env = os.environ if environ is None else environ

        def get(key: str) -> Optional[str]:
            value = env.get(key)
            if value is None:
                return None
            value = value.strip()
            return value or None

        values = {
            "grid_api_key": get("GRID_API_KEY"),
            "grid_api_base_url": get("GRID_API_BASE_URL"),
            "grid_image_cdn_url": get("GRID_IMAGE_CDN_URL"),
            "client_agent": get("CLIENT_AGENT"),
            "discord_webhook_url": get("DISCORD_WEBHOOK_URL"),
            "news_feeds": parse_news_feeds(get("NEWS_FEEDS")),
            "update_frequency_minutes": _parse_int(get("UPDATE_FREQUENCY"), 60, minimum=1),
            "text_model": get("TEXT_MODEL"),
            "fallback_text_model": get("FALLBACK_TEXT_MODEL"),
            "image_model": get("IMAGE_MODEL"),
            "fallback_image_model": get("FALLBACK_IMAGE_MODEL"),
            "image_style": get("IMAGE_STYLE"),
            "poll_model": get("POLL_MODEL"),
            "enable_polls": _parse_bool(get("ENABLE_POLLS")),
            "llm_assisted_image_prompts": _parse_bool(get("LLM_ASSISTED_IMAGE_PROMPTS"))
                or get("LLM_ASSISTED_IMAGE_PROMPT_GENERATION") is not None,
            "news_enhancement_prompt": get("NEWS_ENHANCEMENT_PROMPT"),
            "image_prompt_template": get("IMAGE_PROMPT_TEMPLATE"),
            "image_prompt_generation_prompt": get("LLM_ASSISTED_IMAGE_PROMPT_GENERATION"),
            "poll_creation_prompt": get("POLL_CREATION_PROMPT"),
        }
        # Drop unset values so field defaults apply
        return cls(**{k: v for k, v in values.items() if v is not None})

    def require_api_key(self) -> str:
        """Return the API key or raise ConfigError (fatal at startup)."""
        if not self.grid_api_key:
            raise ConfigError("GRID_API_KEY is not set")
        return self.grid_api_key


def parse_news_feeds(raw: Optional[str]) -> Optional[List[FeedSource]]:
    """
    Parse NEWS_FEEDS ("Name|url,Name|url").

    Returns None (caller uses the defaults) when unset or when no entry parses.
    """
    if not raw:
        return None

    feeds = []
    for chunk in raw.split(","):
        name, sep, url = chunk.partition("|")
        name, url = name.strip(), url.strip()
        if not sep or not name or not url:
            logger.warning("news_feed_entry_invalid", entry=chunk.strip())
            continue
        feeds.append(FeedSource(name=name, url=url))

    if not feeds:
        logger.warning("news_feeds_unparseable_using_defaults")
        return None
    return feeds


def _parse_bool(raw: Optional[str]) -> Optional[bool]:
    if raw is None:
        return None
    return raw.lower() in ("true", "1", "yes")


def _parse_int(raw: Optional[str], default: int, minimum: Optional[int] = None) -> int:
    if raw is None:
        return default
    try:
        value = int(raw)
    except ValueError:
        logger.warning("config_int_invalid", value=raw, default=default)
        return default
    if minimum is not None and value < minimum:
        logger.warning("config_int_below_minimum", value=value, minimum=minimum, default=default)
        return default
    return value
