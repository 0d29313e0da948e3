"""Tests for classification reply parsing."""

import pytest

from intentflow.errors import ClassificationParseError
from intentflow.routing.parsing import find_first_json_object, parse_classification_reply


def test_reply_wrapped_in_prose_and_fence():
    reply = (
        "Sure, here is the routing decision:\n"
        "```json\n"
        '{"targetAgent": "Finance", "confidence": 0.92, "reasoning": "spending question",'
        ' "extractedEntities": {"amount": 30, "timeReference": "last_month"},'
        ' "suggestedActions": ["analyze_spending"], "contextualInfo": "monthly"}\n'
        "```\n"
        "Let me know if you need anything else."
    )
    payload = parse_classification_reply(reply)

    assert payload.target_agent_type == "finance"
    assert payload.confidence == pytest.approx(0.92)
    assert payload.reasoning == "spending question"
    assert payload.extracted_entities == {"amount": 30, "time_reference": "last_month"}
    assert payload.suggested_actions == ["analyze_spending"]
    assert payload.contextual_info == "monthly"


def test_snake_case_keys():
    payload = parse_classification_reply(
        '{"target_agent_type": "inventory", "confidence": 0.8, "extracted_entities": {"item_name": "抽纸"}}'
    )

    assert payload.target_agent_type == "inventory"
    assert payload.extracted_entities == {"item_name": "抽纸"}


@pytest.mark.parametrize(
    "raw, expected",
    [
        (None, 0.5),
        ("high", 0.5),
        (1.7, 1.0),
        (-0.3, 0.0),
        ("0.65", 0.65),
    ],
)
def test_confidence_coercion(raw, expected):
    payload = parse_classification_reply(f'{{"targetAgent": "inventory", "confidence": {_json(raw)}}}')

    assert payload.confidence == pytest.approx(expected)


def test_missing_confidence_defaults():
    payload = parse_classification_reply('{"targetAgent": "inventory"}')

    assert payload.confidence == pytest.approx(0.5)


def test_empty_entity_values_dropped():
    payload = parse_classification_reply(
        '{"targetAgent": "inventory", "extractedEntities": {"itemName": "牛奶", "quantity": null, "unit": ""}}'
    )

    assert payload.extracted_entities == {"item_name": "牛奶"}


def test_skips_unparseable_braces():
    payload = parse_classification_reply('Candidates {a, b} -> {"targetAgent": "notification"}')

    assert payload.target_agent_type == "notification"


@pytest.mark.parametrize(
    "reply",
    [
        "",
        "   ",
        "I would route this to inventory.",
        '{"confidence": 0.9}',
        '{"targetAgent": "  "}',
    ],
)
def test_unusable_replies_raise(reply):
    with pytest.raises(ClassificationParseError):
        parse_classification_reply(reply)


def test_find_first_json_object():
    assert find_first_json_object('[1, 2] then {"a": {"b": 1}} and {"c": 2}') == {"a": {"b": 1}}
    assert find_first_json_object("no objects here") is None


def _json(value):
    if value is None:
        return "null"
    if isinstance(value, str):
        return f'"{value}"'
    return str(value)


def test_nan_confidence_is_zero():
    payload = parse_classification_reply('{"targetAgent": "finance", "confidence": NaN}')

    assert payload.confidence == 0.0
