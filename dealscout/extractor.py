"""Recover one JSON value from freeform model output.

Models add preambles, trailing commentary, and code fences despite being
told not to.  The extractor strips fences, then slices from the first
opening delimiter to the last closing one and parses that span.  It never
tries to repair broken JSON.
"""
from __future__ import annotations

import json
import re
from typing import Any, Literal

from dealscout.errors import MalformedJSON, NoDelimiterFound

Shape = Literal["object", "array"]

_DELIMITERS: dict[str, tuple[str, str]] = {
    "object": ("{", "}"),
    "array": ("[", "]"),
}

# Opening fence with any (or no) language tag, and bare closing fences.
_FENCE_RE = re.compile(r"```[\w+.-]*[ \t]*\n?")


def strip_fences(text: str) -> str:
    return _FENCE_RE.sub("", text).strip()


def extract(raw: str, shape: Shape) -> Any:
    """Return the JSON object or array embedded in *raw*.

    Raises ``NoDelimiterFound`` if the shape's delimiters are absent or out of
    order, ``MalformedJSON`` if the delimited span does not parse.
    """
    if shape not in _DELIMITERS:
        raise ValueError(f"Unknown shape: {shape!r}")
    open_ch, close_ch = _DELIMITERS[shape]

    text = strip_fences(raw or "")
    start = text.find(open_ch)
    end = text.rfind(close_ch)
    if start == -1 or end == -1 or end < start:
        raise NoDelimiterFound(f"No JSON {shape} found in response: {text[:200]!r}")

    span = text[start:end + 1]
    try:
        return json.loads(span)
    except json.JSONDecodeError as exc:
        raise MalformedJSON(f"Invalid JSON {shape} ({exc.msg}): {span[:200]!r}") from exc
