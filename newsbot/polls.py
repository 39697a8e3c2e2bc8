"""
Poll decisions for freshly posted stories.

The text path is asked whether a story deserves a poll. The answer is
accepted either as the requested JSON object or as the older line format:

    YES
    Option 1: ...
    Option 2: ...

Anything unparseable, or fewer than two options, means "no poll".
"""
import json
import re
from typing import Any, Dict, List, Optional

import structlog
from pydantic import ValidationError

from gridclient.config import Settings

from .fallback import FallbackOrchestrator, build_text_ladder
from .prompts import POLL_CREATION_PROMPT, fill_template
from .schemas import PollDecision

logger = structlog.get_logger()

POLL_PARAMS = {
    "max_length": 600,
    "max_context_length": 8192,
    "temperature": 0.75,
    "rep_pen": 1.1,
    "top_p": 0.92,
    "top_k": 100,
    "stop_sequence": ["Ċ", "<|endoftext|>"],
}
POLL_MAX_WAIT_SECONDS = 20
POLL_CONTENT_CHARS = 1000

MAX_TOPIC_CHARS = 100
POLL_EMBED_COLOR = 0x9B59B6

_JSON_OBJECT = re.compile(r"\{.*\}", re.DOTALL)
_OPTION_MARKER = re.compile(r"option\s*\d+\s*:", re.IGNORECASE)
_QUESTION = re.compile(r"question\s*:\s*(?P<q>[^\n]+)", re.IGNORECASE)


def _parse_json_decision(text: str) -> Optional[PollDecision]:
    match = _JSON_OBJECT.search(text)
    if not match:
        return None
    try:
        data = json.loads(match.group(0))
    except ValueError:
        return None
    if not isinstance(data, dict):
        return None
    try:
        return PollDecision.model_validate(data)
    except ValidationError as e:
        logger.warning("poll_decision_invalid", error=str(e))
        return None


def _parse_line_decision(text: str) -> Optional[PollDecision]:
    # Line breaks may already have been joined by normalize(), so split on
    # the "Option N:" markers instead of on lines
    stripped = text.strip()
    if not stripped.upper().startswith("YES"):
        return None

    head, *options = _OPTION_MARKER.split(stripped)
    question_match = _QUESTION.search(head)
    question = question_match.group("q").strip() if question_match else ""
    return PollDecision(should_create_poll=True, poll_question=question, options=options)


def parse_poll_decision(text: Optional[str]) -> PollDecision:
    """Decode a model reply into a PollDecision; "no poll" on any failure."""
    if not text:
        return PollDecision()
    decision = _parse_json_decision(text) or _parse_line_decision(text)
    return decision or PollDecision()


async def decide_poll(
    orchestrator: FallbackOrchestrator,
    settings: Settings,
    title: str,
    content: str,
) -> PollDecision:
    """
    Ask the poll model whether `title` deserves a poll.

    Returns:
        PollDecision; check `is_viable` before posting. Never raises.
    """
    try:
        prompt = fill_template(
            settings.poll_creation_prompt or POLL_CREATION_PROMPT,
            title=title,
            content=(content or "")[:POLL_CONTENT_CHARS],
        )
        ladder = build_text_ladder(prompt, settings.poll_model, POLL_PARAMS, POLL_MAX_WAIT_SECONDS)
        text = await orchestrator.run_text(ladder)
    except Exception as e:
        logger.error("poll_decision_failed", title=title, error=str(e))
        return PollDecision()

    decision = parse_poll_decision(text)
    logger.info(
        "poll_decision",
        title=title,
        should_create=decision.should_create_poll,
        options=len(decision.options),
        viable=decision.is_viable,
    )
    return decision


# =============================================================================
# ANNOUNCEMENT
# =============================================================================

def shorten_topic(topic: str, limit: int = MAX_TOPIC_CHARS) -> str:
    if len(topic) <= limit:
        return topic
    return topic[: limit - 3] + "..."


def format_options(options: List[str]) -> str:
    return "\n\n".join(f"{i}. {option}" for i, option in enumerate(options, start=1))


def build_poll_embed(topic: str, options: List[str]) -> Dict[str, Any]:
    """Discord embed announcing a poll with numbered options."""
    return {
        "title": "📊 Poll: " + shorten_topic(topic),
        "color": POLL_EMBED_COLOR,
        "description": "Reply with the number of your choice to vote on this news topic!",
        "fields": [{"name": "Options", "value": format_options(options)}],
    }


def build_poll_message(topic: str, options: List[str]) -> str:
    """Plain-text version of the poll announcement."""
    return f"**📊 Poll: {shorten_topic(topic)}**\n\n{format_options(options)}"
