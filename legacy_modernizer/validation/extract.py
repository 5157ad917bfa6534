"""
Pull a JSON value out of free-form generator text.

Models wrap JSON in prose or markdown fences; callers want the object.
"""
from __future__ import annotations
from typing import Any, Optional
import json
import re

_FENCE = re.compile(r"```(?:json)?\s*\n?(.*?)\n?```", re.S)
_decoder = json.JSONDecoder()


def extract_json(text: str) -> Optional[Any]:
    """
    Return the first JSON object found in text, or None.

    Order: whole text, fenced ```json blocks, then the first '{' that
    decodes to a complete object.
    """
    if not isinstance(text, str) or not text.strip():
        return None

    stripped = text.strip()
    try:
        return json.loads(stripped)
    except (ValueError, RecursionError):
        pass

    for m in _FENCE.finditer(text):
        try:
            return json.loads(m.group(1).strip())
        except (ValueError, RecursionError):
            continue

    pos = text.find("{")
    while pos != -1:
        try:
            value, _ = _decoder.raw_decode(text, pos)
            return value
        except (ValueError, RecursionError):
            pos = text.find("{", pos + 1)
    return None
