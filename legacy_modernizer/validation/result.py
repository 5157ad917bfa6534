from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any, Dict, List, Literal, Optional

ValidationKind = Literal["json", "sql", "quality", "composite"]

MIN_CONFIDENCE = 0.1
MAX_CONFIDENCE = 0.95


def clamp_confidence(value: float) -> float:
    """Clamp to [0.1, 0.95], rounded to hide float noise."""
    return round(max(MIN_CONFIDENCE, min(value, MAX_CONFIDENCE)), 2)


@dataclass
class ValidationResult:
    """Outcome of validating one artifact."""
    kind: ValidationKind
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    confidence: float = MIN_CONFIDENCE
    statement_type: Optional[str] = None     # SQL only
    tables: List[str] = field(default_factory=list)
    columns: List[str] = field(default_factory=list)

    @property
    def valid(self) -> bool:
        return not self.errors

    def merge(self, other: "ValidationResult") -> None:
        """Union another result's findings into this one."""
        self.errors.extend(other.errors)
        self.warnings.extend(other.warnings)
        for t in other.tables:
            if t not in self.tables:
                self.tables.append(t)
        for c in other.columns:
            if c not in self.columns:
                self.columns.append(c)

    def summary(self) -> str:
        if self.errors:
            return f"{len(self.errors)} errors: {self.errors[0]}"
        if self.warnings:
            return f"valid with {len(self.warnings)} warnings"
        return "valid"

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {
            "kind": self.kind,
            "valid": self.valid,
            "errors": list(self.errors),
            "warnings": list(self.warnings),
            "confidence": self.confidence,
        }
        if self.statement_type is not None:
            d["statement_type"] = self.statement_type
        if self.tables or self.columns:
            d["extracted"] = {"tables": list(self.tables), "columns": list(self.columns)}
        return d
