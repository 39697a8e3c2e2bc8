"""
Pydantic schemas for pipeline inputs and outputs.

These give the workflow steps typed results that callers (the news cycle,
the CLI, a chat front-end) can rely on without probing optional keys.
"""
from datetime import datetime, timezone
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator

MAX_POLL_OPTIONS = 4


def utc_now():
    """Return current UTC time as timezone-aware datetime."""
    return datetime.now(timezone.utc)


# =============================================================================
# CONTENT PIPELINE
# =============================================================================

class EnhancedArticle(BaseModel):
    """Output from ContentPipeline.enhance_article."""
    title: str
    article: str
    # "original" (input too small, returned as-is), "generated", or "canned"
    strategy: str = "generated"


class NewsPost(BaseModel):
    """A finished article ready for posting."""
    title: str
    content: str
    link: str = ""
    source: str = ""
    published: Optional[str] = None
    image_url: Optional[str] = None


class RecentArticle(BaseModel):
    """An article the bot already posted, kept as context for questions."""
    headline: str
    article: str
    link: str = ""
    source: str = ""
    posted_at: datetime = Field(default_factory=utc_now)


# =============================================================================
# POLLS
# =============================================================================

class PollDecision(BaseModel):
    """LLM verdict on whether a story deserves a poll."""
    should_create_poll: bool = False
    poll_question: str = ""
    options: List[str] = Field(default_factory=list)

    @field_validator("options", mode="before")
    @classmethod
    def clean_options(cls, v):
        """Strip blanks and keep at most MAX_POLL_OPTIONS."""
        if v is None:
            return []
        if isinstance(v, str):
            v = [v]
        cleaned = [str(o).strip() for o in v if o is not None and str(o).strip()]
        return cleaned[:MAX_POLL_OPTIONS]

    @field_validator("poll_question", mode="before")
    @classmethod
    def none_to_empty(cls, v):
        return (v or "").strip()

    @property
    def is_viable(self) -> bool:
        """A poll needs a yes verdict and at least two options."""
        return self.should_create_poll and len(self.options) >= 2
