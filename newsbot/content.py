"""
Content pipeline: headline + summary in, finished article or image URL out.

Composes the normalizer and the fallback orchestrator:
- enhance_article: rewrite a feed summary into a Discord-ready article
- generate_image_prompt: optional LLM-written image prompt for a headline
- generate_image: render an image for a headline

Every public operation returns a value. Failures degrade to the input echo,
the canned article template, a template prompt, or "no image".
"""
from typing import Optional

import structlog

from gridclient.config import Settings
from gridclient.job_client import ImageJobClient, TextJobClient

from .fallback import FallbackOrchestrator, article_acceptor, build_image_ladder, build_text_ladder
from .normalizer import IMAGE_PROMPT_PREAMBLES, split_title, strip_preamble
from .prompts import (
    CANNED_ARTICLE_TEMPLATE,
    FALLBACK_IMAGE_PROMPT,
    FORCEFUL_ENHANCEMENT_PROMPT,
    IMAGE_PROMPT_GENERATION_PROMPT,
    IMAGE_PROMPT_TEMPLATE,
    NEWS_ENHANCEMENT_PROMPT,
    fill_template,
)
from .schemas import EnhancedArticle

logger = structlog.get_logger()


# =============================================================================
# GENERATION PARAMETERS
# =============================================================================

STOP_SEQUENCES = ["Ċ", "<|endoftext|>"]

ENHANCE_PARAMS = {
    "max_length": 2048,
    "max_context_length": 8192,
    "temperature": 0.7,
    "rep_pen": 1.1,
    "top_p": 0.92,
    "top_k": 100,
    "stop_sequence": STOP_SEQUENCES,
}
ENHANCE_MAX_WAIT_SECONDS = 120

IMAGE_PROMPT_PARAMS = {
    "max_length": 300,
    "max_context_length": 4096,
    "temperature": 0.7,
    "rep_pen": 1.1,
    "top_p": 0.92,
    "top_k": 100,
    "stop_sequence": STOP_SEQUENCES,
}
IMAGE_PROMPT_MAX_WAIT_SECONDS = 60

# The flux-photo style template sets these server-side too
IMAGE_PARAMS = {
    "width": 896,
    "height": 1152,
    "steps": 4,
    "cfg_scale": 1,
    "sampler_name": "k_euler",
}
IMAGE_MAX_POLLS = 30
IMAGE_MAX_WAIT_SECONDS = IMAGE_MAX_POLLS * ImageJobClient.poll_interval

IMAGE_SUMMARY_CHARS = 500
DEFAULT_SOURCE_NAME = "the original source"


class ContentPipeline:
    """
    Turns feed items into articles and images via the Grid job clients.

    Example:
        pipeline = create_pipeline(Settings.from_env())
        result = await pipeline.enhance_article(headline, summary, source="BBC News")
        image_url = await pipeline.generate_image(result.title)
        await pipeline.close()
    """

    def __init__(self, orchestrator: FallbackOrchestrator, settings: Settings):
        self.orchestrator = orchestrator
        self.settings = settings

    async def close(self):
        """Close the underlying job clients."""
        await self.orchestrator.text_client.close()
        if self.orchestrator.image_client is not None:
            await self.orchestrator.image_client.close()

    # -------------------------------------------------------------------------
    # Articles
    # -------------------------------------------------------------------------

    def is_minimal_input(self, headline: str, summary: Optional[str]) -> bool:
        """Too little text to be worth a generation call."""
        if not summary:
            return True
        if len(summary) < self.settings.acceptance.min_input_chars:
            return True
        return bool(headline) and summary == headline

    def canned_article(self, headline: str, summary: Optional[str], source: Optional[str] = None) -> str:
        """Deterministic last-resort article. Never empty."""
        return fill_template(
            CANNED_ARTICLE_TEMPLATE,
            title=headline or "News update",
            content=summary or headline or "Details are still emerging.",
            source=source or DEFAULT_SOURCE_NAME,
        )

    async def enhance_article(self, headline: str, summary: Optional[str], source: Optional[str] = None) -> EnhancedArticle:
        """
        Rewrite a feed summary into a finished article.

        Args:
            headline: Story headline
            summary: Feed summary / body text
            source: Feed name, used in the prompt and the canned template

        Returns:
            EnhancedArticle. `strategy` says which path produced it:
            "original" (minimal input, echoed without any generation call),
            "generated", or "canned".
        """
        if self.is_minimal_input(headline, summary):
            logger.info(
                "enhancement_skipped_minimal_input",
                headline=headline,
                summary_len=len(summary or ""),
            )
            return EnhancedArticle(title=headline, article=summary or headline, strategy="original")

        logger.info("enhancement_started", headline=headline, summary_len=len(summary))

        try:
            values = {"title": headline, "source": source or DEFAULT_SOURCE_NAME, "content": summary}
            prompt = fill_template(self.settings.news_enhancement_prompt or NEWS_ENHANCEMENT_PROMPT, **values)
            ladder = build_text_ladder(
                prompt,
                self.settings.text_model,
                ENHANCE_PARAMS,
                ENHANCE_MAX_WAIT_SECONDS,
                fallback_model=self.settings.fallback_text_model,
                forceful_prompt=fill_template(FORCEFUL_ENHANCEMENT_PROMPT, **values),
            )
            text = await self.orchestrator.run_text(
                ladder,
                accept=article_acceptor(summary, self.settings.acceptance, clean=strip_preamble),
            )
        except Exception as e:
            logger.error("enhancement_failed", headline=headline, error=str(e))
            text = None

        if not text:
            logger.warning("enhancement_using_canned_template", headline=headline)
            return EnhancedArticle(
                title=headline,
                article=self.canned_article(headline, summary, source),
                strategy="canned",
            )

        title, body = split_title(strip_preamble(text))
        logger.info("enhancement_complete", headline=headline, article_len=len(body), retitled=title is not None)
        return EnhancedArticle(title=title or headline, article=body, strategy="generated")

    # -------------------------------------------------------------------------
    # Images
    # -------------------------------------------------------------------------

    def template_image_prompt(self, headline: str) -> str:
        return fill_template(self.settings.image_prompt_template or IMAGE_PROMPT_TEMPLATE, headline=headline)

    async def generate_image_prompt(self, headline: str, article_excerpt: Optional[str] = None) -> str:
        """
        Image prompt for a headline.

        Uses the text path to write the prompt when LLM-assisted prompts are
        enabled; any failure there yields a fixed abstract prompt. With the
        feature off, the photojournalism template is returned directly.
        """
        if not self.settings.llm_assisted_image_prompts:
            return self.template_image_prompt(headline)

        fallback_prompt = fill_template(FALLBACK_IMAGE_PROMPT, headline=headline)
        summary = (article_excerpt or "")[:IMAGE_SUMMARY_CHARS] or "No article summary available"

        try:
            llm_prompt = fill_template(
                self.settings.image_prompt_generation_prompt or IMAGE_PROMPT_GENERATION_PROMPT,
                headline=headline,
                article_summary=summary,
            )
            ladder = build_text_ladder(
                llm_prompt,
                self.settings.text_model,
                IMAGE_PROMPT_PARAMS,
                IMAGE_PROMPT_MAX_WAIT_SECONDS,
                fallback_model=self.settings.fallback_text_model,
            )
            text = await self.orchestrator.run_text(
                ladder,
                accept=lambda t: bool(strip_preamble(t, IMAGE_PROMPT_PREAMBLES)),
            )
        except Exception as e:
            logger.error("image_prompt_generation_failed", headline=headline, error=str(e))
            return fallback_prompt

        if not text:
            logger.warning("image_prompt_using_fallback", headline=headline)
            return fallback_prompt

        prompt = strip_preamble(text, IMAGE_PROMPT_PREAMBLES)
        logger.info("image_prompt_generated", headline=headline, prompt=prompt[:200])
        return prompt

    async def generate_image(self, headline: str, prompt: Optional[str] = None) -> Optional[str]:
        """
        Render an image for a headline.

        Returns:
            The durable CDN URL when derivable, else the server URL, or None
            when every attempt failed (callers post text-only).
        """
        try:
            ladder = build_image_ladder(
                prompt or self.template_image_prompt(headline),
                self.settings.image_model,
                IMAGE_PARAMS,
                IMAGE_MAX_WAIT_SECONDS,
                fallback_model=self.settings.fallback_image_model,
                style=self.settings.image_style,
            )
            payload = await self.orchestrator.run_image(ladder)
        except Exception as e:
            logger.error("image_generation_failed", headline=headline, error=str(e))
            return None

        if payload is None:
            return None
        logger.info("image_generated", headline=headline, image_url=payload.best_url)
        return payload.best_url


def create_pipeline(settings: Settings) -> ContentPipeline:
    """
    Build a ContentPipeline with fresh text and image job clients.

    Raises:
        ConfigError: If GRID_API_KEY is missing
    """
    api_key = settings.require_api_key()
    text_client = TextJobClient(
        api_key,
        settings.grid_api_base_url,
        client_agent=settings.client_agent,
    )
    image_client = ImageJobClient(
        api_key,
        settings.grid_api_base_url,
        cdn_url=settings.grid_image_cdn_url,
        client_agent=settings.client_agent,
    )
    return ContentPipeline(FallbackOrchestrator(text_client, image_client), settings)
