import pytest

from callqa_batch.core.exceptions import ValidationError
from callqa_batch.response import excerpt, extract_json

pytestmark = pytest.mark.unit


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ('{"a": 1}', {"a": 1}),
        ('```json\n{"a": 1}\n```', {"a": 1}),
        ('Here is the result:\n{"a": [1, 2]}\nThanks!', {"a": [1, 2]}),
        ('{"a": 1, "b": [1, 2,],}', {"a": 1, "b": [1, 2]}),
        ('{\n  // note\n  "a": 1 /* inline */\n}', {"a": 1}),
        ("[1, 2, 3]", [1, 2, 3]),
    ],
)
def test_recovers_json_payloads(raw, expected):
    assert extract_json(raw) == expected


@pytest.mark.parametrize("raw", ["", "no json here", '{"a": }', "positive"])
def test_unrecoverable_text_raises_validation_error(raw):
    with pytest.raises(ValidationError) as exc_info:
        extract_json(raw)
    assert exc_info.value.raw_response == raw


def test_non_text_input_is_a_validation_error():
    with pytest.raises(ValidationError, match="Expected text response"):
        extract_json({"already": "parsed"})


def test_excerpt_truncates_long_responses():
    assert excerpt("short") == "short"
    long = "x" * 500
    assert excerpt(long) == "x" * 200 + "..."


def test_excessive_nesting_is_a_validation_error():
    with pytest.raises(ValidationError, match="nested too deeply"):
        extract_json("[" * 100_000 + "]" * 100_000)
