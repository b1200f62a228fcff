"""JSON extraction from free-form model output.

Models frequently wrap JSON in markdown fences, prepend commentary, or leave
trailing commas behind. ``extract_json`` recovers the payload where it can and
raises ``ValidationError`` where it cannot, so the invoker can retry with a
corrective instruction.
"""

from __future__ import annotations

import json
import logging
import re
from typing import Any

from callqa_batch.core.exceptions import ValidationError

log = logging.getLogger(__name__)

EXCERPT_LENGTH = 200

_FENCE_RE = re.compile(r"```(?:json)?\s*\n?", re.IGNORECASE)
_PAYLOAD_RE = re.compile(r"(\{[\s\S]*\}|\[[\s\S]*\])")
_TRAILING_COMMA_RE = re.compile(r",(\s*[}\]])")
_LINE_COMMENT_RE = re.compile(r"^\s*//.*$", re.MULTILINE)
_BLOCK_COMMENT_RE = re.compile(r"/\*[\s\S]*?\*/")


def excerpt(text: str, limit: int = EXCERPT_LENGTH) -> str:
    """Return at most ``limit`` characters of ``text`` for diagnostics."""
    return text if len(text) <= limit else text[:limit] + "..."


def extract_json(raw: str) -> Any:
    """Parse the JSON object or array embedded in ``raw``.

    Raises:
        ValidationError: If no parseable JSON payload is present.
    """
    if not isinstance(raw, str):
        raise ValidationError(
            f"Expected text response, got {type(raw).__name__}",
            raw_response=excerpt(repr(raw)),
        )

    text = _FENCE_RE.sub("", raw.strip()).replace("```", "")
    match = _PAYLOAD_RE.search(text)
    if match is None:
        raise ValidationError(
            "No JSON object or array found in response",
            raw_response=excerpt(raw),
        )
    payload = match.group(0)

    try:
        return json.loads(payload)
    except json.JSONDecodeError:
        log.debug("Strict JSON parse failed; retrying with cleanup")
    except RecursionError as e:
        raise ValidationError(
            "JSON payload is nested too deeply", raw_response=excerpt(raw)
        ) from e

    cleaned = _BLOCK_COMMENT_RE.sub("", payload)
    cleaned = _LINE_COMMENT_RE.sub("", cleaned)
    cleaned = _TRAILING_COMMA_RE.sub(r"\1", cleaned)
    try:
        return json.loads(cleaned)
    except json.JSONDecodeError as e:
        raise ValidationError(
            f"JSON parse error: {e.msg} (line {e.lineno}, column {e.colno})",
            raw_response=excerpt(raw),
        ) from e
    except RecursionError as e:
        raise ValidationError(
            "JSON payload is nested too deeply", raw_response=excerpt(raw)
        ) from e
