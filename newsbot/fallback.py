"""
Fallback orchestration over the generation job clients.

A logical request ("enhance this article", "draw this headline") is
described as a ladder of attempts. Each attempt is an independent job
(fresh request, fresh handle). The ladder is walked strictly in order and
the first acceptable result wins; later rungs are never tried after that.

Typical text ladder:
1. preferred model, primary prompt
2. configured fallback model (only if it differs)
3. no model (server picks any worker)
4. no model, forceful prompt that forbids meta-commentary

Submission errors, faulted jobs, poll timeouts, empty results and rejected
outputs all simply advance the ladder.
"""
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable, List, Mapping, Optional, Sequence, Tuple

import structlog

from gridclient.config import AcceptancePolicy
from gridclient.errors import GenerationError
from gridclient.job_client import GenerationJobClient
from gridclient.models import Done, GenerationRequest, ImagePayload, JobKind, Payload, TextPayload

from .normalizer import normalize

logger = structlog.get_logger()


@dataclass(frozen=True)
class AttemptSpec:
    """One rung of a fallback ladder."""
    name: str
    prompt: str
    models: Tuple[str, ...] = ()
    parameters: Mapping[str, Any] = field(default_factory=dict)
    max_wait_seconds: float = 120
    style: Optional[str] = None

    def to_request(self, kind: JobKind) -> GenerationRequest:
        return GenerationRequest(
            prompt=self.prompt,
            kind=kind,
            model_candidates=self.models,
            parameters=dict(self.parameters),
            style=self.style,
        )


FallbackLadder = List[AttemptSpec]


# =============================================================================
# LADDER BUILDERS
# =============================================================================

def _models(*names: Optional[str]) -> Tuple[str, ...]:
    return tuple(n for n in names if n)


def _dedupe(attempts: Iterable[AttemptSpec]) -> FallbackLadder:
    """Drop rungs identical (prompt + models) to an earlier one."""
    seen = set()
    ladder = []
    for attempt in attempts:
        key = (attempt.prompt, attempt.models)
        if key in seen:
            continue
        seen.add(key)
        ladder.append(attempt)
    return ladder


def build_text_ladder(
    prompt: str,
    primary_model: Optional[str],
    parameters: Mapping[str, Any],
    max_wait_seconds: float,
    fallback_model: Optional[str] = None,
    forceful_prompt: Optional[str] = None,
) -> FallbackLadder:
    """
    Standard text ladder: primary -> fallback model -> any model -> forceful.

    Args:
        prompt: Primary prompt
        primary_model: Preferred model (None/empty = let the server choose)
        parameters: Sampler settings shared by every rung
        max_wait_seconds: Poll budget per rung
        fallback_model: Second model to try before giving up on model choice
        forceful_prompt: Directive prompt for the last rung (text enhancement only)
    """
    attempts = [
        AttemptSpec("primary", prompt, _models(primary_model), parameters, max_wait_seconds),
        AttemptSpec("fallback_model", prompt, _models(fallback_model), parameters, max_wait_seconds)
        if fallback_model and fallback_model != primary_model
        else None,
        AttemptSpec("any_model", prompt, (), parameters, max_wait_seconds),
        AttemptSpec("forceful", forceful_prompt, (), parameters, max_wait_seconds) if forceful_prompt else None,
    ]
    return _dedupe(a for a in attempts if a is not None)


def build_image_ladder(
    prompt: str,
    primary_model: Optional[str],
    parameters: Mapping[str, Any],
    max_wait_seconds: float,
    fallback_model: Optional[str] = None,
    style: Optional[str] = None,
) -> FallbackLadder:
    """Image ladder: primary -> fallback model -> any model."""
    attempts = [
        AttemptSpec("primary", prompt, _models(primary_model), parameters, max_wait_seconds, style),
        AttemptSpec("fallback_model", prompt, _models(fallback_model), parameters, max_wait_seconds, style)
        if fallback_model and fallback_model != primary_model
        else None,
        AttemptSpec("any_model", prompt, (), parameters, max_wait_seconds, style),
    ]
    return _dedupe(a for a in attempts if a is not None)


# =============================================================================
# ACCEPTANCE HEURISTICS
# =============================================================================

def is_refusal(text: str, phrases: Sequence[str]) -> bool:
    """Case-insensitive substring match against known refusal/placeholder phrases."""
    lowered = text.lower()
    return any(phrase in lowered for phrase in phrases)


def is_too_short(output: str, source: str, policy: AcceptancePolicy) -> bool:
    """Short relative to the input AND below the absolute minimum."""
    return (
        len(output) < policy.short_output_ratio * len(source)
        and len(output) < policy.short_output_min_chars
    )


def article_acceptor(
    source: str,
    policy: AcceptancePolicy,
    clean: Optional[Callable[[str], str]] = None,
) -> Callable[[str], bool]:
    """Build an accept() callback for rewritten articles of `source`."""

    def accept(text: str) -> bool:
        candidate = clean(text) if clean else text
        if not candidate:
            return False
        if is_refusal(candidate, policy.refusal_phrases):
            logger.info("generated_text_rejected", reason="refusal", preview=candidate[:120])
            return False
        if is_too_short(candidate, source, policy):
            logger.info(
                "generated_text_rejected",
                reason="too_short",
                output_len=len(candidate),
                input_len=len(source),
            )
            return False
        return True

    return accept


# =============================================================================
# ORCHESTRATOR
# =============================================================================

class FallbackOrchestrator:
    """
    Walks fallback ladders against the text and image job clients.

    Holds no per-request state, so concurrent requests can share one instance.
    """

    def __init__(self, text_client: GenerationJobClient, image_client: Optional[GenerationJobClient] = None):
        self.text_client = text_client
        self.image_client = image_client

    async def _attempt(self, client: GenerationJobClient, attempt: AttemptSpec, kind: JobKind) -> Optional[Payload]:
        """Run one rung to a terminal status; None for every kind of failure."""
        logger.info(
            "ladder_attempt_started",
            kind=kind.value,
            attempt=attempt.name,
            models=list(attempt.models) or "any",
        )
        try:
            status = await client.generate(attempt.to_request(kind), attempt.max_wait_seconds)
        except GenerationError as e:
            logger.warning("ladder_attempt_failed", kind=kind.value, attempt=attempt.name, error=str(e))
            return None

        if isinstance(status, Done):
            return status.payload

        logger.warning(
            "ladder_attempt_failed",
            kind=kind.value,
            attempt=attempt.name,
            status=type(status).__name__,
            error=getattr(status, "message", None),
        )
        return None

    async def run_text(
        self,
        ladder: Sequence[AttemptSpec],
        accept: Optional[Callable[[str], bool]] = None,
        fallback: Optional[Callable[[], str]] = None,
    ) -> Optional[str]:
        """
        Return the first normalized text accepted by `accept`.

        When the ladder is exhausted, return fallback() (or None without one).
        """
        for attempt in ladder:
            payload = await self._attempt(self.text_client, attempt, JobKind.TEXT)
            if not isinstance(payload, TextPayload):
                continue

            text = normalize(payload.text)
            if not text:
                continue
            if accept is not None and not accept(text):
                logger.info("ladder_attempt_rejected", attempt=attempt.name, model=payload.model)
                continue

            logger.info("ladder_attempt_accepted", attempt=attempt.name, model=payload.model, length=len(text))
            return text

        logger.warning("text_ladder_exhausted", attempts=len(ladder), has_fallback=fallback is not None)
        return fallback() if fallback is not None else None

    async def run_image(self, ladder: Sequence[AttemptSpec]) -> Optional[ImagePayload]:
        """Return the first finished image, or None (callers post without an image)."""
        if self.image_client is None:
            logger.warning("image_client_not_configured")
            return None

        for attempt in ladder:
            payload = await self._attempt(self.image_client, attempt, JobKind.IMAGE)
            if isinstance(payload, ImagePayload):
                logger.info("ladder_attempt_accepted", attempt=attempt.name, image_url=payload.best_url)
                return payload

        logger.warning("image_ladder_exhausted", attempts=len(ladder))
        return None
