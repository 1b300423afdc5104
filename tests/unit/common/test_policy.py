import pytest
from pydantic import ValidationError

from copilot.common.models import MessageIntent
from copilot.common.policy import ChatPolicy


def test_defaults():
    policy = ChatPolicy()

    assert policy.low_confidence_threshold == 0.6
    assert policy.max_summaries == 2
    assert policy.message_history_limit == 40
    assert policy.message_limit == 100
    assert policy.rate_limit_period_hours == 24
    assert policy.default_title == "New Conversation"
    assert policy.summarization_threshold == pytest.approx(76_800)


def test_page_refusal_text_fills_in_resource_type():
    policy = ChatPolicy(page_refusal_template="Only questions about this {{RESOURCE_TYPE}}.")

    assert policy.page_refusal_text("refund") == "Only questions about this refund."


@pytest.mark.parametrize("fraction", [0, -0.1, 1.5])
def test_threshold_fraction_outside_range_is_rejected(fraction: float):
    with pytest.raises(ValidationError):
        ChatPolicy(token_threshold_percentage=fraction)


def test_refusal_intent_cannot_be_allowed():
    with pytest.raises(ValidationError):
        ChatPolicy(allowed_intents=frozenset({MessageIntent.DASHBOARD_INSIGHT, MessageIntent.OUT_OF_SCOPE}))


def test_policy_is_immutable():
    policy = ChatPolicy()

    with pytest.raises(ValidationError):
        policy.max_summaries = 5


def test_from_env_overrides_defaults(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv("MAX_SUMMARIES", "3")
    monkeypatch.setenv("CONTEXT_WINDOW_SIZE", "1000")
    monkeypatch.setenv("TOKEN_THRESHOLD_PERCENTAGE", "0.5")
    monkeypatch.setenv("MESSAGE_LIMIT", "10")

    policy = ChatPolicy.from_env()

    assert policy.max_summaries == 3
    assert policy.summarization_threshold == 500
    assert policy.message_limit == 10
    assert policy.low_confidence_threshold == 0.6


def test_from_env_rejects_invalid_values(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv("MESSAGE_LIMIT", "0")

    with pytest.raises(ValidationError):
        ChatPolicy.from_env()
