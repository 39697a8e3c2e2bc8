"""
Conversational features: answering questions about recent news and
handling on-demand image requests.

State lives in explicit objects owned by the caller:
- RecentArticles: the last few posted articles, newest first
- ConversationHistory: the last few messages per user, newest first

ChatHandler routes an incoming message to the image or question path using
the same RecentArticles store the news cycle fills.
"""
import re
import time
from collections import deque
from dataclasses import dataclass, field
from typing import Deque, Dict, Iterator, List, Optional

import structlog

from gridclient.config import Settings

from .content import ContentPipeline
from .fallback import FallbackOrchestrator, build_text_ladder
from .normalizer import RESPONSE_PREAMBLES, strip_preamble
from .prompts import CHAT_ONLY_RESPONSE_PROMPT, NEWS_RESPONSE_PROMPT, fill_template
from .schemas import RecentArticle

logger = structlog.get_logger()

MAX_RECENT_ARTICLES = 10
MAX_MESSAGE_HISTORY = 5

RESPONSE_PARAMS = {
    "max_length": 1000,
    "max_context_length": 8192,
    "temperature": 0.75,
    "rep_pen": 1.1,
    "top_p": 0.92,
    "top_k": 100,
    "stop_sequence": ["Ċ", "<|endoftext|>"],
}
RESPONSE_MAX_WAIT_SECONDS = 120

# Answers shorter than this (or containing an evasive phrase) are replaced
MIN_ANSWER_CHARS = 50
EVASIVE_PHRASES = ("I can only provide information", "I don't have enough context")
ARTICLE_EXCERPT_CHARS = 300

DISCORD_MESSAGE_LIMIT = 1900
MIN_SENTENCE_BREAK = 1000

DEFAULT_IMAGE_TOPIC = "Breaking news headline"
IMAGE_DISCLAIMER = (
    "**DISCLAIMER: This image is AI-generated and fictional. "
    "It does not represent real events or people.**"
)
_IMAGE_REQUEST = re.compile(r"(?:generate|create|make) an image", re.IGNORECASE)


# =============================================================================
# STATE
# =============================================================================

class RecentArticles:
    """Bounded newest-first store of posted articles."""

    def __init__(self, max_items: int = MAX_RECENT_ARTICLES):
        self._items: Deque[RecentArticle] = deque(maxlen=max_items)

    def add(self, article: RecentArticle):
        self._items.appendleft(article)

    @property
    def latest(self) -> Optional[RecentArticle]:
        return self._items[0] if self._items else None

    def __iter__(self) -> Iterator[RecentArticle]:
        return iter(self._items)

    def __len__(self) -> int:
        return len(self._items)


@dataclass
class ChatMessage:
    content: str
    timestamp: float = field(default_factory=time.time)


class ConversationHistory:
    """Last few messages per user, newest first."""

    def __init__(self, max_messages: int = MAX_MESSAGE_HISTORY):
        self.max_messages = max_messages
        self._by_user: Dict[str, Deque[ChatMessage]] = {}

    def add(self, user_id: str, content: str, timestamp: Optional[float] = None):
        messages = self._by_user.setdefault(user_id, deque(maxlen=self.max_messages))
        messages.appendleft(ChatMessage(content, timestamp if timestamp is not None else time.time()))

    def messages(self, user_id: str) -> List[ChatMessage]:
        return list(self._by_user.get(user_id, ()))

    def format_previous(self, user_id: str) -> str:
        """
        Prompt block with the user's earlier messages.

        The newest message is the question being answered and is left out.
        Returns "" when there is no earlier message.
        """
        previous = self.messages(user_id)[1:]
        if not previous:
            return ""
        lines = ["Recent conversation history:"]
        for message in previous:
            stamp = time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime(message.timestamp))
            lines.append(f"User ({stamp}): {message.content}")
        return "\n".join(lines) + "\n\n"


# =============================================================================
# QUESTION ANSWERING
# =============================================================================

def _apology(latest: Optional[RecentArticle]) -> str:
    if latest is not None:
        return (
            "I'm having trouble generating a detailed response right now. "
            f'The article is about "{latest.headline}". Would you like me to try again later?'
        )
    return "I'm having trouble processing your question right now. Please try again in a moment."


def _article_summary_answer(latest: RecentArticle) -> str:
    return (
        f'Based on the article about "{latest.headline}", I can tell you that '
        f"{latest.article[:ARTICLE_EXCERPT_CHARS]}... "
        "Would you like to know more specific details about this news story?"
    )


def is_evasive(answer: str) -> bool:
    return len(answer) < MIN_ANSWER_CHARS or any(phrase in answer for phrase in EVASIVE_PHRASES)


def build_question_prompt(question: str, latest: Optional[RecentArticle], chat_history: str) -> str:
    """Prompt grounded on the most recent article, or on chat history alone."""
    if latest is not None:
        return fill_template(
            NEWS_RESPONSE_PROMPT,
            chat_history=chat_history,
            headline=latest.headline,
            article=latest.article,
            question=question,
        )
    if chat_history:
        return fill_template(CHAT_ONLY_RESPONSE_PROMPT, chat_history=chat_history, question=question)
    return question


async def answer_question(
    orchestrator: FallbackOrchestrator,
    settings: Settings,
    question: str,
    recent: RecentArticles,
    history: Optional[ConversationHistory] = None,
    user_id: str = "cli",
) -> str:
    """
    Answer a user's question about recent news.

    Records the question in `history`, then asks the text path using the
    newest article and the user's earlier messages as context. Never raises:
    failures produce a polite apology naming the latest headline.

    Returns:
        Answer text (may exceed Discord's limit; see split_message)
    """
    latest = recent.latest
    try:
        chat_history = ""
        if history is not None:
            history.add(user_id, question)
            chat_history = history.format_previous(user_id)

        ladder = build_text_ladder(
            build_question_prompt(question, latest, chat_history),
            settings.text_model,
            RESPONSE_PARAMS,
            RESPONSE_MAX_WAIT_SECONDS,
            fallback_model=settings.fallback_text_model,
        )
        text = await orchestrator.run_text(ladder)
    except Exception as e:
        logger.error("answer_question_failed", user_id=user_id, error=str(e))
        if latest is not None:
            return f'We have a recent news story about "{latest.headline}". Would you like to know more about this topic?'
        return "I'm having trouble processing your question right now. Please try again in a moment."

    if not text:
        logger.warning("answer_question_no_text", user_id=user_id)
        return _apology(latest)

    answer = strip_preamble(text, RESPONSE_PREAMBLES)
    if is_evasive(answer) and latest is not None:
        logger.info("answer_question_evasive_replaced", user_id=user_id, answer_len=len(answer))
        return _article_summary_answer(latest)
    return answer or _apology(latest)


# =============================================================================
# IMAGE REQUESTS
# =============================================================================

def is_image_request(message: str) -> bool:
    return bool(_IMAGE_REQUEST.search(message or ""))


def extract_image_topic(message: str, recent: Optional[RecentArticles] = None) -> str:
    """Topic for an image request; the newest headline when none is given."""
    topic = _IMAGE_REQUEST.sub("", message or "").strip()
    if topic:
        return topic
    if recent is not None and recent.latest is not None:
        return recent.latest.headline
    return DEFAULT_IMAGE_TOPIC


def image_reply(topic: str, image_url: Optional[str]) -> str:
    if not image_url:
        return "Sorry, I wasn't able to generate that image. Please try again later."
    return f'Generated image for: "{topic}"\n{image_url}\n\n{IMAGE_DISCLAIMER}'


# =============================================================================
# MESSAGE HANDLING
# =============================================================================

class ChatHandler:
    """
    Entry point for user messages.

    Pass the NewsCycle's `recent` store so answers can draw on the articles
    the bot has just posted. History is kept per user for this handler's
    lifetime.

    Example:
        handler = ChatHandler(pipeline, settings, cycle.recent)
        parts = await handler.handle_message("What happened?", user_id="42")
    """

    def __init__(
        self,
        pipeline: ContentPipeline,
        settings: Settings,
        recent: RecentArticles,
        history: Optional[ConversationHistory] = None,
    ):
        self.pipeline = pipeline
        self.settings = settings
        self.recent = recent
        self.history = history if history is not None else ConversationHistory()

    async def handle_message(self, content: str, user_id: str) -> List[str]:
        """
        Reply to one message.

        Image requests go to the image path; everything else is answered as a
        question about recent news.

        Returns:
            Reply split into Discord-sized parts (empty for a blank message)
        """
        content = (content or "").strip()
        if not content:
            return []

        if is_image_request(content):
            topic = extract_image_topic(content, self.recent)
            logger.info("chat_image_request", user_id=user_id, topic=topic[:80])
            prompt = await self.pipeline.generate_image_prompt(topic)
            image_url = await self.pipeline.generate_image(topic, prompt)
            return [image_reply(topic, image_url)]

        answer = await answer_question(
            self.pipeline.orchestrator,
            self.settings,
            content,
            self.recent,
            self.history,
            user_id=user_id,
        )
        return split_message(answer)


# =============================================================================
# MESSAGE SPLITTING
# =============================================================================

def split_message(text: str, limit: int = DISCORD_MESSAGE_LIMIT, min_break: int = MIN_SENTENCE_BREAK) -> List[str]:
    """
    Split a long reply into Discord-sized parts.

    Breaks after the last ". " within the limit when that falls past
    min_break characters; otherwise cuts hard at the limit.
    """
    if len(text) <= limit:
        return [text]

    parts = []
    remaining = text
    while remaining:
        break_point = limit
        if len(remaining) > limit:
            last_period = remaining[:limit].rfind(". ")
            if last_period > min_break:
                break_point = last_period + 1
        parts.append(remaining[:break_point])
        remaining = remaining[break_point:].strip()
    return parts
