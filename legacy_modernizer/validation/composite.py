"""
Composite and typed artifact validation.

A generated artifact is a JSON object whose sub-fields may themselves be
JSON documents (schema, API design) or SQL. The composite validator runs
the structured and SQL validators over those sub-fields and folds their
findings into one result.
"""
from __future__ import annotations
from typing import Any, Dict, List, Tuple
import json
import logging

from legacy_modernizer.validation.extract import extract_json
from legacy_modernizer.validation.result import ValidationResult, clamp_confidence
from legacy_modernizer.validation.sql import split_statements, validate_sql
from legacy_modernizer.validation.structured import validate_structured

logger = logging.getLogger(__name__)

COMPOSITE_BASE = 0.8
QUALITY_BASE = 0.8

QUALITY_FIELDS = ("complexity", "maintainability", "testability")
QUALITY_LEVELS = ("low", "medium", "high")

# Top-level fields a well-formed artifact must carry, per declared output type
REQUIRED_FIELDS: Dict[str, Tuple[str, ...]] = {
    "analysis": ("programInfo", "dependencies", "dataStructures"),
    "modernization": ("modernization", "convertedCode", "migrationPlan"),
    "validation": ("validation", "issues", "qualityMetrics"),
    "explanation": ("explanation", "sections", "insights"),
    "unknown": (),
}

STRUCTURED_SUBFIELDS = ("schema", "api_design", "apiDesign")


def overall_confidence(result: ValidationResult, base: float = COMPOSITE_BASE) -> float:
    return clamp_confidence(base - 0.2 * len(result.errors) - 0.05 * len(result.warnings))


def _sql_statements(value: Any) -> List[str]:
    if isinstance(value, str):
        return split_statements(value)
    if isinstance(value, (list, tuple)):
        return [v for v in value if isinstance(v, str)]
    return []


def _absorb(target: ValidationResult, source: ValidationResult, label: str) -> None:
    target.errors.extend(f"{label}: {e}" for e in source.errors)
    target.warnings.extend(f"{label}: {w}" for w in source.warnings)
    for t in source.tables:
        if t not in target.tables:
            target.tables.append(t)
    for c in source.columns:
        if c not in target.columns:
            target.columns.append(c)


def _load(candidate: Any, result: ValidationResult) -> Any:
    """Parse text candidates; on failure record the error and return None."""
    if isinstance(candidate, (bytes, bytearray)):
        candidate = candidate.decode("utf-8", errors="replace")
    if not isinstance(candidate, str):
        return candidate
    try:
        return json.loads(candidate)
    except (ValueError, RecursionError):
        data = extract_json(candidate)
        if data is None:
            result.errors.extend(validate_structured(candidate).errors)
        return data


def validate_composite(candidate: Any) -> ValidationResult:
    """
    Validate the schema, API design and SQL sub-fields of an artifact.

    Args:
        candidate: Artifact as a dict or JSON text

    Returns:
        ValidationResult(kind="composite") with the union of sub-field findings
    """
    result = ValidationResult(kind="composite")

    data = _load(candidate, result)
    if data is None and result.errors:
        result.confidence = clamp_confidence(0)
        return result
    if not isinstance(data, dict):
        result.errors.append(f"Artifact must be a JSON object, got {type(data).__name__}")
        result.confidence = clamp_confidence(0)
        return result

    for name in STRUCTURED_SUBFIELDS:
        if data.get(name):
            _absorb(result, validate_structured(data[name]), name)

    if "sql" in data:
        statements = _sql_statements(data["sql"])
        if not statements:
            result.errors.append("sql: expected SQL text or a list of statements")
        for n, stmt in enumerate(statements, start=1):
            label = "sql" if len(statements) == 1 else f"sql[{n}]"
            _absorb(result, validate_sql(stmt), label)

    result.confidence = overall_confidence(result)
    return result


def validate_quality_metrics(metrics: Any) -> ValidationResult:
    """Check complexity/maintainability/testability ratings are low, medium or high."""
    result = ValidationResult(kind="quality")

    if not isinstance(metrics, dict):
        result.errors.append("Quality metrics must be an object")
        result.confidence = clamp_confidence(0)
        return result

    for name in QUALITY_FIELDS:
        if name not in metrics:
            result.errors.append(f"Missing required field: {name}")
        elif metrics[name] not in QUALITY_LEVELS:
            result.errors.append(f"Invalid value for {name}: {metrics[name]}")

    result.confidence = overall_confidence(result, QUALITY_BASE)
    return result


def validate_for(expected: Any, candidate: Any) -> ValidationResult:
    """
    Validate a candidate against its declared output type.

    Runs the composite checks, the structural heuristics over the whole
    object, and the required-field check for the type. Unknown types only
    get the generic checks.
    """
    key = getattr(expected, "value", expected)
    required = REQUIRED_FIELDS.get(key, ())

    result = ValidationResult(kind="composite")
    data = _load(candidate, result)
    if data is None and result.errors:
        result.confidence = clamp_confidence(0)
        return result

    if not isinstance(data, dict):
        result.errors.append(f"Expected a JSON object for {key} output, got {type(data).__name__}")
        result.confidence = clamp_confidence(0)
        return result

    result = validate_composite(data)
    result.warnings.extend(validate_structured(data).warnings)

    for name in required:
        if name not in data:
            result.errors.append(f"Missing required field: {name}")
        elif data[name] is None:
            result.errors.append(f"Required field is null: {name}")

    result.confidence = overall_confidence(result)
    logger.debug(f"{key} validation: {result.summary()} (confidence {result.confidence})")
    return result
