"""
Repair

Classification of failed generations, strategy selection, and the two
repair surfaces: the per-agent-call orchestrator and the per-artifact
processor. Both share one taxonomy and one fallback template registry.
"""
from legacy_modernizer.repair.taxonomy import (
    ExpectedOutput,
    FailedResult,
    FailureKind,
    INITIAL_STRATEGY,
    StrategyKind,
    classify_failure,
    select_strategy,
    temperature_for,
)
from legacy_modernizer.repair.templates import FallbackTemplates, expected_output_for, fallback_templates
from legacy_modernizer.repair.history import RepairAttempt, RepairHistory, RepairSession, RepairStats
from legacy_modernizer.repair.orchestrator import RepairConfig, RepairOrchestrator, RepairOutcome
from legacy_modernizer.repair.processor import ArtifactRepair, ArtifactRepairProcessor

__all__ = [
    "ExpectedOutput",
    "FailedResult",
    "FailureKind",
    "INITIAL_STRATEGY",
    "StrategyKind",
    "classify_failure",
    "select_strategy",
    "temperature_for",
    "FallbackTemplates",
    "expected_output_for",
    "fallback_templates",
    "RepairAttempt",
    "RepairHistory",
    "RepairSession",
    "RepairStats",
    "RepairConfig",
    "RepairOrchestrator",
    "RepairOutcome",
    "ArtifactRepair",
    "ArtifactRepairProcessor",
]
