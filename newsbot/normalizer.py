"""
Text cleanup for generated output.

The Grid text workers frequently wrap lines mid-word and prepend chatty
preambles ("Here's an enhanced version:"). Everything here is a pure
function that never raises.
"""
import re
from typing import Optional, Pattern, Sequence, Tuple

# A lone newline between two non-space characters is accidental wrapping
_WRAPPED_NEWLINE = re.compile(r"(?<=\S)\n(?=\S)")
_EXCESS_NEWLINES = re.compile(r"\n{3,}")

_TITLE_LINE = re.compile(
    r"\A[ \t]*(?:#{1,6}[ \t]*|title:[ \t]*)(?P<title>[^\n]+)\n[ \t]*\n",
    re.IGNORECASE,
)


def _patterns(*sources: str) -> Tuple[Pattern, ...]:
    return tuple(re.compile(s, re.IGNORECASE) for s in sources)


ENHANCEMENT_PREAMBLES = _patterns(
    r"^(?:sure|certainly|absolutely|of course)[!,.]\s*",
    r"^as requested[,:.]?\s*",
    r"^here(?:'s| is)\b[^:\n]{0,80}?\b(?:version|article|rewrite|story|take)\b[^:\n]*:\s*",
    r"^(?:below is|i've rewritten|i have rewritten)\b[^:\n]*:\s*",
)

RESPONSE_PREAMBLES = _patterns(
    r"^(?:here's|based on|according to|looking at)[^\n]*?(?:articles?|news|information)[^\n]*?:\s*",
    r"^(?:i'll|let me)[^\n]*?(?:answer|respond|address)[^\n]*?:\s*",
    r"^(?:as an ai power grid assistant|as a news assistant|speaking from ai power grid),?\s*",
)

IMAGE_PROMPT_PREAMBLES = _patterns(
    r"^(?:here's|here is|i will|i have|i've created|i've generated|generating|generated|"
    r"for the headline|based on the headline)[^\n]*?:\s*",
    r"^image prompt:\s*",
    r"^prompt:\s*",
)


def normalize(raw: Optional[str]) -> str:
    """
    Repair line breaks in raw generated text.

    - unify CRLF / CR line endings to LF
    - delete newlines that split a word ("foo\\nbar" -> "foobar")
    - collapse 3+ newlines to a single blank line
    - trim surrounding whitespace

    normalize(normalize(x)) == normalize(x) for every string.
    """
    if not raw:
        return ""
    text = raw.replace("\r\n", "\n").replace("\r", "\n")
    text = _WRAPPED_NEWLINE.sub("", text)
    text = _EXCESS_NEWLINES.sub("\n\n", text)
    return text.strip()


def strip_preamble(text: str, patterns: Sequence[Pattern] = ENHANCEMENT_PREAMBLES) -> str:
    """Remove leading boilerplate phrases, repeatedly, until none match."""
    if not text:
        return ""
    current = text.strip()
    changed = True
    while changed and current:
        changed = False
        for pattern in patterns:
            stripped = pattern.sub("", current, count=1).lstrip()
            if stripped != current:
                current = stripped
                changed = True
    return current


def split_title(text: str) -> Tuple[Optional[str], str]:
    """
    Split off a leading title line.

    Recognizes "# Heading" or "Title: ..." followed by a blank line.
    Returns (title, body); title is None when there is no such line.
    """
    if not text:
        return None, ""
    match = _TITLE_LINE.match(text)
    if not match:
        return None, text
    title = match.group("title").strip().strip("*").strip()
    body = text[match.end():].strip()
    if not title or not body:
        return None, text
    return title, body
