"""
Prompt templates for the news bot.

All prompt constants are centralized here for easier maintenance and
iteration. Placeholders are written {{name}}; fill_template() also accepts
the single-brace {name} form used by older .env overrides.
"""
import re

_PLACEHOLDER = re.compile(r"\{\{(\w+)\}\}|\{(\w+)\}")

# =============================================================================
# ARTICLE ENHANCEMENT
# =============================================================================

NEWS_ENHANCEMENT_PROMPT = """You are a professional news writer for a Discord news channel.
Rewrite the article below so it is engaging and conversational for a Discord audience while staying accurate.
Keep every fact from the original. Do not invent quotes, numbers or names.

Original headline: {{title}}
Original source: {{source}}
Original article content:
{{content}}

Write the rewritten article now."""


FORCEFUL_ENHANCEMENT_PROMPT = """Write a complete news article of at least four paragraphs based on the information below.

STRICT RULES:
- Start directly with the first sentence of the article body.
- No introduction, no commentary about the task, no apologies, no notes about missing information.
- Do not say you are an AI. Do not describe what you are going to write.
- Use only the facts given; expand with context and explanation, not invented details.

Headline: {{title}}
Source: {{source}}
Facts:
{{content}}

Article:"""


CANNED_ARTICLE_TEMPLATE = """**{{title}}**

{{content}}

_This story is developing. Full coverage is available from {{source}}._"""


# =============================================================================
# QUESTION ANSWERING
# =============================================================================

NEWS_RESPONSE_PROMPT = """{{chat_history}}Recent news context:
Title: {{headline}}
Full article: {{article}}

User question: "{{question}}"

Instructions:
1. Provide a detailed, informative response about this news article
2. Include specific facts from the article that answer the question
3. If the user asks for more details or expansion, provide more in-depth information from the article
4. Response should be at least 3-5 sentences with substantive information
5. Consider previous messages in the conversation history when crafting your response
6. If the question is unrelated to the news article, politely explain that you can only provide information about this specific news item"""


CHAT_ONLY_RESPONSE_PROMPT = """{{chat_history}}User question: "{{question}}"

Instructions:
1. Provide a helpful response to the user's question
2. Consider previous messages in the conversation history when crafting your response
3. If you don't have relevant information, politely say so
4. Keep your response informative and direct"""


# =============================================================================
# IMAGES
# =============================================================================

IMAGE_PROMPT_TEMPLATE = """Create a photorealistic news image for the headline: {{headline}}.
The image should be eye-catching and appropriate for a news site, with high detail, realistic textures, and professional composition.
Style: Photojournalistic, high definition news photography"""


IMAGE_PROMPT_GENERATION_PROMPT = """Based on the news headline: '{{headline}}' and this summary:
{{article_summary}}

Write one concise image prompt (max 60 words) for an AI image generator that captures the essence of the news without being too literal.
Avoid text, words, logos and human faces. Respond with ONLY the image prompt."""


FALLBACK_IMAGE_PROMPT = 'Abstract news concept for: "{{headline}}". Artistic news image, no text.'


# =============================================================================
# POLLS
# =============================================================================

POLL_CREATION_PROMPT = """Given the news article titled '{{title}}' with content: '{{content}}', should a poll be created?
If yes, provide a compelling question for the poll and 2-4 concise, distinct poll options.
Respond in JSON format: { "should_create_poll": boolean, "poll_question": "string", "options": ["option1", "option2", ...] }.
If no, set should_create_poll to false."""


def fill_template(template: str, **values: object) -> str:
    """Substitute {{key}} (and legacy {key}) placeholders in one pass; unknown braces are left alone."""
    def replace(match: "re.Match[str]") -> str:
        key = match.group(1) or match.group(2)
        if key not in values:
            return match.group(0)
        value = values[key]
        return "" if value is None else str(value)

    return _PLACEHOLDER.sub(replace, template)
