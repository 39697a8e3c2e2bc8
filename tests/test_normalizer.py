"""Tests for generated-text cleanup."""
import pytest

from newsbot.normalizer import (
    ENHANCEMENT_PREAMBLES,
    IMAGE_PROMPT_PREAMBLES,
    RESPONSE_PREAMBLES,
    normalize,
    split_title,
    strip_preamble,
)


def test_normalize_joins_wrapped_words():
    assert normalize("foo\nbar") == "foobar"


def test_normalize_collapses_blank_lines():
    assert normalize("para one\n\n\n\npara two") == "para one\n\npara two"


def test_normalize_keeps_paragraph_breaks_and_trims():
    assert normalize("  first para.\n\nsecond para.  ") == "first para.\n\nsecond para."


def test_normalize_handles_crlf():
    assert normalize("foo\r\nbar\r\n\r\n\r\nbaz") == "foobar\n\nbaz"


def test_normalize_empty_and_none():
    assert normalize("") == ""
    assert normalize(None) == ""


@pytest.mark.parametrize(
    "raw",
    [
        "a\nb\nc",
        "x\n\n\n\ny",
        "line one \nline two",
        "ab\r\ncd\r\n\r\n\r\n\r\nef",
        "\n\n  spaced \n\n out \n",
        "a\n\n\nb\nc\r\rd",
    ],
)
def test_normalize_is_idempotent(raw):
    once = normalize(raw)
    assert normalize(once) == once


def test_strip_enhancement_preamble():
    text = "Here's an enhanced version of the article:\n\nThe council voted on Tuesday."
    assert strip_preamble(text, ENHANCEMENT_PREAMBLES) == "The council voted on Tuesday."


def test_strip_preamble_repeats_until_clean():
    text = "Sure! As requested, here is the rewritten article: Markets rallied."
    assert strip_preamble(text) == "Markets rallied."


def test_strip_preamble_leaves_normal_words():
    assert strip_preamble("Surely this is news.") == "Surely this is news."


def test_strip_response_preamble():
    text = "Based on the article information: The vote passed 7-2."
    assert strip_preamble(text, RESPONSE_PREAMBLES) == "The vote passed 7-2."


def test_strip_image_prompt_preamble():
    assert strip_preamble("Image prompt: a quiet harbor at dawn", IMAGE_PROMPT_PREAMBLES) == "a quiet harbor at dawn"
    assert strip_preamble("Here is the prompt: neon skyline", IMAGE_PROMPT_PREAMBLES) == "neon skyline"


def test_split_title_markdown_heading():
    title, body = split_title("# Budget Passes\n\nThe council approved it.")
    assert title == "Budget Passes"
    assert body == "The council approved it."


def test_split_title_title_prefix():
    title, body = split_title("Title: **Storm Warning**\n\nResidents should prepare.")
    assert title == "Storm Warning"
    assert body == "Residents should prepare."


def test_split_title_without_heading():
    text = "No heading here.\n\nJust body."
    assert split_title(text) == (None, text)


def test_split_title_requires_blank_line():
    text = "# Heading\nBody right after"
    assert split_title(text) == (None, text)
