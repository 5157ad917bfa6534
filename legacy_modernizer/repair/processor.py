"""
Per-artifact repair.

Where the orchestrator repairs an agent call, the processor repairs one
damaged artifact: a single pass with the strategy the taxonomy picks, then
the remaining strategies in a fixed rotation, then an emergency fallback.
"""
from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, TYPE_CHECKING
import logging

from legacy_modernizer.repair.orchestrator import (
    AttemptResult,
    RepairConfig,
    Validate,
    run_strategy,
)
from legacy_modernizer.repair.strategies import RepairRequest, build_registry, get_strategy
from legacy_modernizer.repair.taxonomy import (
    INITIAL_STRATEGY,
    ExpectedOutput,
    FailedResult,
    FailureKind,
    StrategyKind,
    classify_failure,
    rotation_after,
    temperature_for,
)
from legacy_modernizer.repair.templates import FallbackTemplates, as_expected, fallback_templates
from legacy_modernizer.validation import validate_for

if TYPE_CHECKING:
    from legacy_modernizer.llm.client import TextGenerator

logger = logging.getLogger(__name__)

EMERGENCY_CONFIDENCE = 0.2
DEFAULT_AGENT = "RepairAgent"


@dataclass
class ArtifactRepair:
    """Result of repairing one artifact."""
    status: str                     # success | partial | failed
    strategy: str
    original_issue: str
    confidence: float
    repaired_output: Any
    diagnostics: Dict[str, Any] = field(default_factory=dict)
    emergency_fallback: bool = False
    raw_response: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        d = {
            "repair": {
                "status": self.status,
                "strategy": self.strategy,
                "original_issue": self.original_issue,
                "confidence": self.confidence,
            },
            "repaired_output": self.repaired_output,
            "diagnostics": self.diagnostics,
            "emergency_fallback": self.emergency_fallback,
        }
        if self.raw_response is not None:
            d["raw_response"] = self.raw_response
        return d


class ArtifactRepairProcessor:
    """Repairs a failed artifact against its declared output type."""

    def __init__(
        self,
        generator: "TextGenerator",
        config: Optional[RepairConfig] = None,
        *,
        templates: Optional[FallbackTemplates] = None,
        validate: Validate = validate_for,
    ):
        self.config = config or RepairConfig()
        self.config.validate()
        self.generator = generator
        self.templates = templates or fallback_templates
        self.registry = build_registry(self.templates)
        self.validate = validate

    async def _attempt(
        self,
        strategy_kind: StrategyKind,
        attempt: int,
        agent_name: str,
        expected: ExpectedOutput,
        failed: FailedResult,
        original_input: Any,
        context: Dict[str, Any],
    ) -> AttemptResult:
        request = RepairRequest(
            agent_name=agent_name,
            expected=expected,
            failed=failed,
            original_input=original_input,
            attempt=attempt,
            temperature=temperature_for(attempt, self.config.base_temperature),
            context=context,
        )
        strategy = get_strategy(self.registry, strategy_kind)
        return await run_strategy(strategy, request, self.generator, self.validate, self.config.acceptance_threshold)

    def _diagnostics(self, kind: FailureKind, failed: FailedResult, tried: List[AttemptResult]) -> Dict[str, Any]:
        return {
            "failure_kind": kind.value,
            "issues_found": list(failed.errors) or [failed.message],
            "repair_actions": [
                {
                    "strategy": a.strategy.value,
                    "confidence": a.confidence,
                    "success": a.confidence >= self.config.acceptance_threshold,
                    "error": a.error,
                }
                for a in tried
            ],
        }

    def emergency_fallback(
        self,
        expected: ExpectedOutput,
        issue: str,
        diagnostics: Optional[Dict[str, Any]] = None,
    ) -> ArtifactRepair:
        """Canned artifact for the type, labelled as an emergency fallback."""
        logger.error(f"Emergency fallback for {expected.value} artifact: {issue}")
        return ArtifactRepair(
            status="failed",
            strategy="emergency_fallback",
            original_issue=issue,
            confidence=EMERGENCY_CONFIDENCE,
            repaired_output=self.templates.get(expected),
            diagnostics=diagnostics or {},
            emergency_fallback=True,
        )

    def _accept(
        self,
        result: AttemptResult,
        kind: FailureKind,
        failed: FailedResult,
        tried: List[AttemptResult],
    ) -> ArtifactRepair:
        templated = result.strategy == StrategyKind.FALLBACK_TEMPLATE or (
            isinstance(result.data, dict) and "raw_response" in result.data
        )
        logger.info(f"Artifact repaired with {result.strategy.value} (confidence {result.confidence:.2f})")
        return ArtifactRepair(
            status="partial" if templated else "success",
            strategy=result.strategy.value,
            original_issue=failed.message,
            confidence=result.confidence,
            repaired_output=result.data,
            diagnostics=self._diagnostics(kind, failed, tried),
            raw_response=result.raw_response,
        )

    async def process(
        self,
        failed_output: Any,
        expected_format: Any,
        error_context: Optional[Dict[str, Any]] = None,
    ) -> ArtifactRepair:
        """
        Repair one artifact.

        Args:
            failed_output: The damaged output, as text or parsed data
            expected_format: ExpectedOutput, its name, an agent name, or {"type": ...}
            error_context: Optional "error", "errors", "agent", "kind" and
                "original_input" (defaults to the failed output itself)

        Returns:
            ArtifactRepair; an emergency fallback when nothing clears the threshold
        """
        ctx = dict(error_context or {})
        expected = ExpectedOutput.UNKNOWN
        try:
            expected = as_expected(expected_format)
            errors = ctx.get("errors") or []
            failed = FailedResult(
                error=str(ctx.get("error") or ""),
                errors=[errors] if isinstance(errors, str) else [str(e) for e in errors],
                output=failed_output,
                kind=ctx.get("kind"),
            )
            kind = classify_failure(failed)
            agent_name = ctx.get("agent") or DEFAULT_AGENT
            original_input = ctx.get("original_input", failed_output)
            threshold = self.config.acceptance_threshold

            first = INITIAL_STRATEGY[kind]
            logger.info(f"Repairing {expected.value} artifact: {kind.value} -> {first.value}")
            tried = [await self._attempt(first, 1, agent_name, expected, failed, original_input, ctx)]
            best = tried[0]
            if best.confidence >= threshold:
                return self._accept(best, kind, failed, tried)

            for strategy_kind in rotation_after(first):
                if len(tried) >= self.config.max_repair_attempts:
                    break
                result = await self._attempt(
                    strategy_kind, len(tried) + 1, agent_name, expected, failed, original_input,
                    {**ctx, "alternative_repair": True},
                )
                tried.append(result)
                if result.confidence >= threshold and result.confidence > best.confidence:
                    return self._accept(result, kind, failed, tried)
                if result.confidence > best.confidence:
                    best = result

            return self.emergency_fallback(
                expected,
                "All repair strategies failed",
                self._diagnostics(kind, failed, tried),
            )
        except Exception as e:
            logger.exception("Artifact repair crashed")
            return self.emergency_fallback(expected, str(e))
