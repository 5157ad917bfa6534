"""
Failure taxonomy and strategy selection.

Both repair surfaces classify failures here and pick strategies from the
same table, so a given failure is always handled the same way.
"""
from __future__ import annotations
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Pattern, Tuple
import json
import re
import logging

from legacy_modernizer.errors import GenerationError
from legacy_modernizer.validation.result import ValidationResult

logger = logging.getLogger(__name__)


class FailureKind(str, Enum):
    PARSE_ERROR = "parse_error"
    FORMAT_ERROR = "format_error"
    INCOMPLETE_OUTPUT = "incomplete_output"
    VALIDATION_FAILURE = "validation_failure"
    NETWORK_FAILURE = "network_failure"
    RATE_LIMIT = "rate_limit"
    UNKNOWN_FAILURE = "unknown_failure"


class StrategyKind(str, Enum):
    SIMPLIFY_PROMPT = "simplify_prompt"
    ALTERNATIVE_APPROACH = "alternative_approach"
    ERROR_SPECIFIC_FIX = "error_specific_fix"
    FALLBACK_TEMPLATE = "fallback_template"
    PARTIAL_PROCESSING = "partial_processing"
    GENERIC_FIX = "generic_fix"


class ExpectedOutput(str, Enum):
    ANALYSIS = "analysis"
    MODERNIZATION = "modernization"
    VALIDATION = "validation"
    EXPLANATION = "explanation"
    UNKNOWN = "unknown"


# Transport failures are only recognised in the error message itself, never in
# validator findings, which quote field names from the artifact.
TRANSPORT_PATTERNS: List[Tuple[FailureKind, Pattern[str]]] = [
    (FailureKind.NETWORK_FAILURE, re.compile(r"timed out|\btimeout\b|\bnetwork\b|\beconn\w*|\bconnection\b", re.I)),
    (FailureKind.RATE_LIMIT, re.compile(r"rate[ _]limit|\b429\b|\bquota\b|too many requests|\boverloaded\b", re.I)),
]

# Checked in order against the error message and validator errors; first hit wins
CONTENT_PATTERNS: List[Tuple[FailureKind, Tuple[str, ...]]] = [
    (FailureKind.FORMAT_ERROR, ("json", "parse", "syntax", "unexpected token")),
    (FailureKind.VALIDATION_FAILURE, ("validation", "invalid")),
    (FailureKind.INCOMPLETE_OUTPUT, ("incomplete", "truncat")),
]

INITIAL_STRATEGY: Dict[FailureKind, StrategyKind] = {
    FailureKind.PARSE_ERROR: StrategyKind.ERROR_SPECIFIC_FIX,
    FailureKind.FORMAT_ERROR: StrategyKind.ERROR_SPECIFIC_FIX,
    FailureKind.VALIDATION_FAILURE: StrategyKind.ERROR_SPECIFIC_FIX,
    FailureKind.INCOMPLETE_OUTPUT: StrategyKind.PARTIAL_PROCESSING,
    FailureKind.NETWORK_FAILURE: StrategyKind.SIMPLIFY_PROMPT,
    FailureKind.RATE_LIMIT: StrategyKind.SIMPLIFY_PROMPT,
    FailureKind.UNKNOWN_FAILURE: StrategyKind.GENERIC_FIX,
}

# Rotation for the per-artifact processor after its first pass
ROTATION: List[StrategyKind] = [
    StrategyKind.ERROR_SPECIFIC_FIX,
    StrategyKind.PARTIAL_PROCESSING,
    StrategyKind.ALTERNATIVE_APPROACH,
    StrategyKind.SIMPLIFY_PROMPT,
    StrategyKind.GENERIC_FIX,
    StrategyKind.FALLBACK_TEMPLATE,
]

PLACEHOLDERS = ("...", "…", "todo: complete", "[truncated]")
MIN_COMPLETE_OUTPUT = 100    # serialized characters

BASE_TEMPERATURE = 0.7
TEMPERATURE_DECAY = 0.6


@dataclass
class FailedResult:
    """What a failed generation left behind: error text, validator errors, output."""
    error: str = ""
    errors: List[str] = field(default_factory=list)
    output: Any = None
    kind: Optional[str] = None    # classification hint from the generator adapter

    @property
    def message(self) -> str:
        if self.error:
            return self.error
        if self.errors:
            return self.errors[0]
        return "Validation failed"

    @classmethod
    def from_value(cls, value: Any) -> "FailedResult":
        """
        Normalize the shapes callers hand to repair.

        Accepts a FailedResult, an exception, a ValidationResult, a dict with
        error/errors/data/output keys, or raw output text.
        """
        if isinstance(value, FailedResult):
            return value
        if isinstance(value, GenerationError):
            return cls(error=str(value), kind=value.kind)
        if isinstance(value, BaseException):
            return cls(error=f"{type(value).__name__}: {value}")
        if isinstance(value, ValidationResult):
            return cls(error=value.errors[0] if value.errors else "", errors=list(value.errors))
        if isinstance(value, dict):
            output = value.get("data", value.get("output"))
            errors = value.get("errors") or []
            if isinstance(errors, str):
                errors = [errors]
            return cls(
                error=str(value.get("error") or ""),
                errors=[str(e) for e in errors],
                output=output,
                kind=value.get("kind"),
            )
        return cls(output=value)


def _serialize(output: Any) -> str:
    if isinstance(output, str):
        return output
    try:
        return json.dumps(output, default=str)
    except (TypeError, ValueError):
        return str(output)


def _is_parseable(text: str) -> bool:
    try:
        json.loads(text)
        return True
    except (ValueError, RecursionError):
        return False


def classify_failure(failed: FailedResult) -> FailureKind:
    """
    Classify a failure from its error text, then from the output's shape.

    An explicit kind hint on the failure wins when it names a known kind.
    """
    if failed.kind:
        try:
            return FailureKind(failed.kind)
        except ValueError:
            logger.debug(f"Ignoring unknown failure kind hint: {failed.kind}")

    for kind, pattern in TRANSPORT_PATTERNS:
        if pattern.search(failed.error):
            return kind
    text = " ".join([failed.error, *failed.errors]).lower()
    for kind, needles in CONTENT_PATTERNS:
        if any(n in text for n in needles):
            return kind
    if failed.errors:
        return FailureKind.VALIDATION_FAILURE

    output = failed.output
    if output is None or output == "" or output == {} or output == []:
        return FailureKind.UNKNOWN_FAILURE

    serialized = _serialize(output)
    lowered = serialized.lower()
    if any(p in lowered for p in PLACEHOLDERS) or len(serialized.strip()) < MIN_COMPLETE_OUTPUT:
        return FailureKind.INCOMPLETE_OUTPUT
    if isinstance(output, str) and not _is_parseable(output):
        return FailureKind.PARSE_ERROR
    return FailureKind.UNKNOWN_FAILURE


def select_strategy(kind: FailureKind, attempt: int, max_attempts: Optional[int] = None) -> StrategyKind:
    """
    Attempt 1 uses the table, attempt 2 escalates, the final attempt uses the
    canned template. Attempts in between cycle through the strategies not yet tried.
    """
    last = max_attempts if max_attempts is not None else 3
    initial = INITIAL_STRATEGY[kind]
    if attempt <= 1:
        return initial
    if attempt >= last:
        return StrategyKind.FALLBACK_TEMPLATE
    if attempt == 2:
        return StrategyKind.ALTERNATIVE_APPROACH
    middle = [
        s for s in ROTATION
        if s not in (initial, StrategyKind.ALTERNATIVE_APPROACH, StrategyKind.FALLBACK_TEMPLATE)
    ]
    return middle[(attempt - 3) % len(middle)]


def temperature_for(attempt: int, base: float = BASE_TEMPERATURE) -> float:
    """Strictly decreasing with each escalation."""
    return base * TEMPERATURE_DECAY ** attempt


def rotation_after(tried: StrategyKind) -> List[StrategyKind]:
    return [s for s in ROTATION if s != tried]
