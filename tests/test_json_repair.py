from __future__ import annotations

import json

import pytest

from trialscreen.core.errors import ResponseNotParseable
from trialscreen.utils.json_repair import (
    EXCERPT_LIMIT,
    extract_structured,
    isolate_candidate,
    last_balanced_offset,
    normalise_undefined,
)


def test_plain_object_parses() -> None:
    assert extract_structured('{"a": 1, "b": [1, 2]}') == {"a": 1, "b": [1, 2]}


def test_fenced_block_is_preferred_over_surrounding_prose() -> None:
    text = 'Here you go {not this}\n```json\n{"status": "ok"}\n```\nThanks!'
    assert extract_structured(text) == {"status": "ok"}


def test_prose_around_object_is_stripped() -> None:
    text = 'Sure. The analysis is: {"score": 70, "notes": ["x"]} Let me know if you need more.'
    assert extract_structured(text) == {"score": 70, "notes": ["x"]}


def test_unclosed_fence_still_yields_content() -> None:
    assert isolate_candidate('```json\n{"a": 1}') == '{"a": 1}'


def test_truncated_second_object_recovers_complete_prefix() -> None:
    text = '{"first": {"value": 1}} {"second": {"inner": 2}, "cut": "off'
    assert extract_structured(text) == {"first": {"value": 1}}


def test_truncated_tail_inside_object_recovers_nothing_more_than_balanced_prefix() -> None:
    candidate = '{"a": {"b": 1}}{"c": {"d": 2}, '
    assert last_balanced_offset(candidate) == len('{"a": {"b": 1}}')


def test_braces_inside_strings_do_not_affect_depth() -> None:
    candidate = '{"text": "a } brace and { another", "n": 1}{"x": '
    assert last_balanced_offset(candidate) == len('{"text": "a } brace and { another", "n": 1}')


def test_escaped_quotes_inside_strings_are_respected() -> None:
    candidate = '{"quote": "he said \\"}\\" loudly"}{"tail": '
    offset = last_balanced_offset(candidate)
    assert json.loads(candidate[:offset]) == {"quote": 'he said "}" loudly'}


def test_undefined_tokens_are_normalised() -> None:
    text = '{"startDate": undefined, "items": [1, undefined, 3], "last": undefined}'
    with pytest.raises(json.JSONDecodeError):
        json.loads(text)
    assert extract_structured(text) == {"startDate": None, "items": [1, None, 3], "last": None}


def test_undefined_inside_strings_is_preserved() -> None:
    text = '{"note": "value was undefined, sadly", "x": undefined}'
    assert normalise_undefined(text) == '{"note": "value was undefined, sadly", "x": null}'


def test_undefined_as_first_array_element() -> None:
    assert extract_structured('{"a": [undefined]}') == {"a": [None]}


def test_repair_is_idempotent_on_valid_input() -> None:
    text = json.dumps({"scenarios": [{"id": 1, "startDate": None}], "conclusion": "stable"})
    first = extract_structured(text)
    second = extract_structured(text)
    assert first == second
    assert extract_structured(json.dumps(first)) == first


def test_unrecoverable_text_raises_with_bounded_excerpt() -> None:
    text = "The model refused to answer. " * 40
    with pytest.raises(ResponseNotParseable) as excinfo:
        extract_structured(text)
    assert len(excinfo.value.excerpt) <= EXCERPT_LIMIT
    assert excinfo.value.kind == "ResponseNotParseable"


def test_balanced_but_invalid_prefix_raises() -> None:
    with pytest.raises(ResponseNotParseable):
        extract_structured("{'single': 'quotes'}")


def test_non_object_json_is_rejected() -> None:
    with pytest.raises(ResponseNotParseable):
        extract_structured("[1, 2, 3]")
