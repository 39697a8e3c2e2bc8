"""Tests for poll decisions and announcements."""
import pytest

from conftest import faulted, text_done
from newsbot.fallback import FallbackOrchestrator
from newsbot.polls import build_poll_embed, build_poll_message, decide_poll, parse_poll_decision, shorten_topic
from newsbot.schemas import PollDecision


def test_parse_json_decision():
    text = (
        'Sure, here is my answer: {"should_create_poll": true, "poll_question": "Should the bridge open early?", '
        '"options": ["Yes", "No", "  ", "Only on weekends"]}'
    )
    decision = parse_poll_decision(text)

    assert decision.should_create_poll
    assert decision.poll_question == "Should the bridge open early?"
    assert decision.options == ["Yes", "No", "Only on weekends"]
    assert decision.is_viable


def test_parse_json_caps_options_at_four():
    decision = parse_poll_decision('{"should_create_poll": true, "poll_question": "Q", "options": ["a", "b", "c", "d", "e"]}')
    assert decision.options == ["a", "b", "c", "d"]


def test_parse_line_format():
    text = "YES\nQuestion: Is the budget fair?\nOption 1: Yes\nOption 2: No\nOption 3: Not sure"
    decision = parse_poll_decision(text)

    assert decision.is_viable
    assert decision.poll_question == "Is the budget fair?"
    assert decision.options == ["Yes", "No", "Not sure"]


def test_parse_line_format_after_line_joining():
    decision = parse_poll_decision("YESOption 1: Yes Option 2: No")
    assert decision.options == ["Yes", "No"]


def test_single_option_is_not_viable():
    decision = parse_poll_decision('{"should_create_poll": true, "poll_question": "Q", "options": ["only"]}')
    assert not decision.is_viable


@pytest.mark.parametrize("text", [None, "", "NO", "not json at all", '{"should_create_poll": "maybe?"}', "[1, 2]"])
def test_unparseable_means_no_poll(text):
    assert parse_poll_decision(text) == PollDecision()


@pytest.mark.anyio
async def test_decide_poll_uses_poll_model(grid, make_text_client, settings):
    grid.queue_job(text_done('{"should_create_poll": true, "poll_question": "Open early?", "options": ["Yes", "No"]}'))
    orchestrator = FallbackOrchestrator(make_text_client())

    decision = await decide_poll(orchestrator, settings, "Bridge Opening Set", "x" * 5000)

    assert decision.is_viable
    submitted = grid.submissions[0]
    assert submitted["models"] == [settings.poll_model]
    assert "Bridge Opening Set" in submitted["prompt"]
    assert "x" * 1001 not in submitted["prompt"]


@pytest.mark.anyio
async def test_decide_poll_failure_means_no_poll(grid, make_text_client, settings):
    grid.queue_job(faulted())
    grid.queue_job(faulted())
    orchestrator = FallbackOrchestrator(make_text_client())

    decision = await decide_poll(orchestrator, settings, "Title", "Content")

    assert decision == PollDecision()


def test_shorten_topic():
    assert shorten_topic("short") == "short"
    long_topic = "t" * 150
    assert shorten_topic(long_topic) == "t" * 97 + "..."
    assert len(shorten_topic(long_topic)) == 100


def test_poll_announcements():
    embed = build_poll_embed("Open early?", ["Yes", "No"])
    assert embed["title"] == "📊 Poll: Open early?"
    assert embed["fields"][0]["value"] == "1. Yes\n\n2. No"

    message = build_poll_message("Open early?", ["Yes", "No"])
    assert "1. Yes" in message and "2. No" in message
