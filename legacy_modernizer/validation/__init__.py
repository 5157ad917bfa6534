"""
Validation

Pure, synchronous checks over generated artifacts. Malformed input is
reported in the result, never raised.
"""
from legacy_modernizer.validation.result import ValidationResult, clamp_confidence
from legacy_modernizer.validation.structured import validate_structured
from legacy_modernizer.validation.sql import validate_sql, split_statements
from legacy_modernizer.validation.composite import (
    REQUIRED_FIELDS,
    validate_composite,
    validate_for,
    validate_quality_metrics,
)
from legacy_modernizer.validation.extract import extract_json

__all__ = [
    "ValidationResult",
    "clamp_confidence",
    "validate_structured",
    "validate_sql",
    "split_statements",
    "validate_composite",
    "validate_for",
    "validate_quality_metrics",
    "REQUIRED_FIELDS",
    "extract_json",
]
