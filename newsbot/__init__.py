"""
Workflow layer for the Grid news bot.

This package turns feed items into posted articles, images, answers and polls.
"""

from .normalizer import (
    normalize,
    strip_preamble,
    split_title,
)

from .fallback import (
    AttemptSpec,
    FallbackOrchestrator,
    build_text_ladder,
    build_image_ladder,
    article_acceptor,
)

from .content import (
    ContentPipeline,
    create_pipeline,
)

from .chat import (
    ChatHandler,
    RecentArticles,
    ConversationHistory,
    answer_question,
    extract_image_topic,
    is_image_request,
    split_message,
)

from .polls import (
    decide_poll,
    parse_poll_decision,
)

from .discord import DiscordWebhookPoster

from .cycle import NewsCycle

from .schemas import (
    EnhancedArticle,
    NewsPost,
    PollDecision,
    RecentArticle,
)

__all__ = [
    # Normalizer
    "normalize",
    "strip_preamble",
    "split_title",
    # Fallback
    "AttemptSpec",
    "FallbackOrchestrator",
    "build_text_ladder",
    "build_image_ladder",
    "article_acceptor",
    # Content
    "ContentPipeline",
    "create_pipeline",
    # Chat
    "ChatHandler",
    "RecentArticles",
    "ConversationHistory",
    "answer_question",
    "extract_image_topic",
    "is_image_request",
    "split_message",
    # Polls
    "decide_poll",
    "parse_poll_decision",
    # Posting
    "DiscordWebhookPoster",
    "NewsCycle",
    # Schemas
    "EnhancedArticle",
    "NewsPost",
    "PollDecision",
    "RecentArticle",
]
