"""
Structured (JSON) validation.

Parse failures are hard errors; everything after a successful parse is a
soft heuristic that only produces warnings.
"""
from __future__ import annotations
from typing import Any, Set
import json
import logging

from legacy_modernizer.validation.result import ValidationResult

logger = logging.getLogger(__name__)

MAX_DEPTH = 10
PARSED_CONFIDENCE = 0.9
FAILED_CONFIDENCE = 0.1

JSON_SCHEMA_TYPES = {"object", "array", "string", "number", "integer", "boolean", "null"}


def _children(value: Any):
    if isinstance(value, dict):
        return list(value.values())
    if isinstance(value, list):
        return value
    return []


def is_deeply_nested(value: Any, max_depth: int = MAX_DEPTH) -> bool:
    """True if containers nest more than max_depth levels."""
    stack = [(value, 0)]
    while stack:
        node, depth = stack.pop()
        if depth > max_depth:
            return True
        for child in _children(node):
            if isinstance(child, (dict, list)):
                stack.append((child, depth + 1))
    return False


def has_cycle(value: Any) -> bool:
    """Depth-first walk keeping the set of containers currently being visited."""
    visiting: Set[int] = set()
    # (node, exiting) pairs; exiting pops the node off the visiting set
    stack = [(value, False)]
    while stack:
        node, exiting = stack.pop()
        if exiting:
            visiting.discard(id(node))
            continue
        if not isinstance(node, (dict, list)):
            continue
        if id(node) in visiting:
            return True
        visiting.add(id(node))
        stack.append((node, True))
        for child in _children(node):
            stack.append((child, False))
    return False


def _check_shape(data: Any, result: ValidationResult) -> None:
    if not isinstance(data, dict):
        return

    # API envelope
    if any(k in data for k in ("data", "status", "message")):
        if "status" not in data and "success" not in data:
            result.warnings.append("API response should include status or success field")

    # JSON schema
    if any(k in data for k in ("type", "properties", "$schema")):
        schema_type = data.get("type")
        if isinstance(schema_type, str) and schema_type not in JSON_SCHEMA_TYPES:
            result.warnings.append(f"Unknown schema type: {schema_type}")
        if "properties" in data and not isinstance(data["properties"], dict):
            result.warnings.append("Schema properties should be an object")

    # Configuration object
    for key in ("config", "settings", "options"):
        if key in data and not isinstance(data[key], dict):
            result.warnings.append(f"Configuration field '{key}' should be an object")


def validate_structured(candidate: Any) -> ValidationResult:
    """
    Validate a JSON document given as text or as already-parsed data.

    Confidence reflects parseability only: 0.9 when parsed, 0.1 when not.
    """
    result = ValidationResult(kind="json")

    if isinstance(candidate, (bytes, bytearray)):
        candidate = candidate.decode("utf-8", errors="replace")

    if isinstance(candidate, str):
        try:
            data = json.loads(candidate)
        except (ValueError, RecursionError) as e:
            result.errors.append(f"JSON parse error: {e}")
            result.confidence = FAILED_CONFIDENCE
            return result
    elif isinstance(candidate, (dict, list)):
        data = candidate
    else:
        result.errors.append(f"Invalid input: expected JSON text or object, got {type(candidate).__name__}")
        result.confidence = FAILED_CONFIDENCE
        return result

    result.confidence = PARSED_CONFIDENCE

    _check_shape(data, result)
    if is_deeply_nested(data):
        result.warnings.append(f"JSON structure is deeply nested (>{MAX_DEPTH} levels)")
    if has_cycle(data):
        result.warnings.append("Potential circular references detected")

    logger.debug(f"JSON validation: {len(result.errors)} errors, {len(result.warnings)} warnings")
    return result
