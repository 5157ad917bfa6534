"""
Repair Orchestrator

Retries a failed generation with escalating strategies until a candidate
clears the acceptance threshold or the retry budget runs out. Every call
returns a RepairOutcome; failures of the generator, the validator or the
loop itself are reported in the outcome rather than raised.
"""
from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional, TYPE_CHECKING
import asyncio
import logging
import time

from legacy_modernizer.errors import ConfigError, GenerationError
from legacy_modernizer.repair.history import RepairAttempt, RepairHistory, RepairSession, RepairStats
from legacy_modernizer.repair.strategies import (
    RepairRequest,
    RepairStrategy,
    StrategyResult,
    build_registry,
    get_strategy,
)
from legacy_modernizer.repair.taxonomy import (
    BASE_TEMPERATURE,
    ExpectedOutput,
    FailedResult,
    StrategyKind,
    classify_failure,
    select_strategy,
    temperature_for,
)
from legacy_modernizer.repair.templates import FallbackTemplates, as_expected, expected_output_for, fallback_templates
from legacy_modernizer.validation import ValidationResult, validate_for

if TYPE_CHECKING:
    from legacy_modernizer.llm.client import TextGenerator

logger = logging.getLogger(__name__)

EXHAUSTED_CONFIDENCE = 0.1
INVALID_CONFIDENCE_CAP = 0.3

Sleep = Callable[[float], Awaitable[None]]
Validate = Callable[[Any, Any], ValidationResult]


@dataclass(frozen=True)
class RepairConfig:
    """Configuration for both repair surfaces."""
    max_retries: int = 3
    acceptance_threshold: float = 0.6
    backoff_base: float = 1.0          # seconds; attempt N waits backoff_base * N
    base_temperature: float = BASE_TEMPERATURE
    max_repair_attempts: int = 3       # per-artifact processor budget

    def validate(self) -> None:
        if self.max_retries < 1:
            raise ConfigError(f"max_retries must be >= 1, got {self.max_retries}")
        if self.max_repair_attempts < 1:
            raise ConfigError(f"max_repair_attempts must be >= 1, got {self.max_repair_attempts}")
        if not 0 < self.acceptance_threshold <= 1:
            raise ConfigError(f"acceptance_threshold must be in (0, 1], got {self.acceptance_threshold}")
        if self.backoff_base < 0:
            raise ConfigError(f"backoff_base must be >= 0, got {self.backoff_base}")
        if not 0 <= self.base_temperature <= 1:
            raise ConfigError(f"base_temperature must be in [0, 1], got {self.base_temperature}")


@dataclass
class RepairOutcome:
    success: bool
    data: Any
    confidence: float
    error: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "data": self.data,
            "confidence": self.confidence,
            "error": self.error,
            "metadata": self.metadata,
        }


@dataclass
class AttemptResult:
    """Scored candidate from one strategy execution."""
    strategy: StrategyKind
    data: Any
    confidence: float
    error: Optional[str] = None
    errors: List[str] = field(default_factory=list)
    kind_hint: Optional[str] = None
    raw_response: Optional[str] = None


def score(result: StrategyResult, validation: ValidationResult) -> float:
    """Confidence for a candidate: capped by the strategy, and low when invalid."""
    if validation.valid:
        return min(result.ceiling, validation.confidence)
    return min(validation.confidence, INVALID_CONFIDENCE_CAP)


async def run_strategy(
    strategy: RepairStrategy,
    request: RepairRequest,
    generator: "TextGenerator",
    validate: Validate,
    threshold: float,
) -> AttemptResult:
    """
    Execute one strategy and score its candidate.

    Generator and validator exceptions become a failed AttemptResult whose
    error text feeds the next classification.
    """
    try:
        result = await strategy.process(request, generator)
    except Exception as e:
        hint = e.kind if isinstance(e, GenerationError) else None
        logger.warning(f"Strategy {strategy.kind.value} failed for {request.agent_name}: {e}")
        return AttemptResult(
            strategy=strategy.kind,
            data=None,
            confidence=EXHAUSTED_CONFIDENCE,
            error=f"Repair strategy '{strategy.kind.value}' failed: {type(e).__name__}: {e}",
            kind_hint=hint,
        )

    try:
        validation = validate(request.expected, result.data)
    except Exception as e:
        logger.warning(f"Validation raised for {request.agent_name}: {e}")
        return AttemptResult(
            strategy=strategy.kind,
            data=result.data,
            confidence=EXHAUSTED_CONFIDENCE,
            error=f"Validation error: {type(e).__name__}: {e}",
            raw_response=result.raw_response,
        )

    confidence = score(result, validation)
    error = None
    if not validation.valid:
        error = f"Validation failed: {validation.errors[0]}"
    elif confidence < threshold:
        error = f"Confidence {confidence:.2f} below acceptance threshold {threshold:.2f}"
    return AttemptResult(
        strategy=strategy.kind,
        data=result.data,
        confidence=confidence,
        error=error,
        errors=list(validation.errors),
        raw_response=result.raw_response,
    )


class RepairOrchestrator:
    """
    Per-agent-call repair loop.

    Attempts within a session run strictly in sequence. Independent sessions
    may run concurrently on one event loop; each gets its own history slot.
    """

    def __init__(
        self,
        generator: "TextGenerator",
        config: Optional[RepairConfig] = None,
        *,
        sleep: Sleep = asyncio.sleep,
        templates: Optional[FallbackTemplates] = None,
        validate: Validate = validate_for,
    ):
        self.config = config or RepairConfig()
        self.config.validate()
        self.generator = generator
        self.sleep = sleep
        self.templates = templates or fallback_templates
        self.registry = build_registry(self.templates)
        self.validate = validate
        self.history = RepairHistory()

    def _expected(self, agent_name: str, context: Dict[str, Any]) -> ExpectedOutput:
        if context.get("expected_output"):
            return as_expected(context["expected_output"])
        return expected_output_for(agent_name)

    async def repair(
        self,
        agent_name: str,
        failed_result: Any,
        original_input: Any = None,
        context: Optional[Dict[str, Any]] = None,
    ) -> RepairOutcome:
        """
        Repair a failed agent call.

        Args:
            agent_name: Agent whose output failed, e.g. "ParserAgent"
            failed_result: FailedResult, exception, ValidationResult, dict or raw output
            original_input: Input the agent was processing
            context: Optional; "expected_output" overrides the agent's output type

        Returns:
            RepairOutcome; never raises for ordinary failures
        """
        context = context or {}
        session: Optional[RepairSession] = None
        original_error = ""
        expected = ExpectedOutput.UNKNOWN
        try:
            failed = FailedResult.from_value(failed_result)
            original_error = failed.message
            expected = self._expected(agent_name, context)
            session = self.history.open(agent_name, original_error)
            logger.info(
                f"Starting repair {session.id}: {agent_name} ({expected.value}), "
                f"max {self.config.max_retries} attempts"
            )
            return await self._run(session, expected, failed, original_input, context)
        except Exception as e:
            if session is not None:
                session.crashed = True
            logger.exception(f"Repair process crashed for {agent_name}")
            return RepairOutcome(
                success=False,
                data=self.templates.get(expected),
                confidence=EXHAUSTED_CONFIDENCE,
                error=f"Repair process failed: {e}",
                metadata={
                    "repaired": False,
                    "repair_crashed": True,
                    "fallback": True,
                    "session_id": session.id if session else None,
                    "original_error": original_error,
                },
            )

    async def _run(
        self,
        session: RepairSession,
        expected: ExpectedOutput,
        failed: FailedResult,
        original_input: Any,
        context: Dict[str, Any],
    ) -> RepairOutcome:
        cfg = self.config
        current = failed
        last: Optional[AttemptResult] = None

        for attempt in range(1, cfg.max_retries + 1):
            kind = classify_failure(current)
            strategy_kind = select_strategy(kind, attempt, cfg.max_retries)
            strategy = get_strategy(self.registry, strategy_kind)
            logger.info(
                f"Repair attempt {attempt}/{cfg.max_retries} for {session.agent_name}: "
                f"{kind.value} -> {strategy_kind.value}"
            )

            request = RepairRequest(
                agent_name=session.agent_name,
                expected=expected,
                failed=current,
                original_input=original_input,
                attempt=attempt,
                temperature=temperature_for(attempt, cfg.base_temperature),
                context=context,
            )
            last = await run_strategy(strategy, request, self.generator, self.validate, cfg.acceptance_threshold)
            success = last.confidence >= cfg.acceptance_threshold
            session.record(RepairAttempt(
                attempt_number=attempt,
                timestamp=time.time(),
                strategy=strategy_kind,
                failure_kind=kind,
                success=success,
                confidence=last.confidence,
                error=last.error,
            ))

            if success:
                session.closed = True
                logger.info(
                    f"Repair {session.id} succeeded on attempt {attempt} "
                    f"({strategy_kind.value}, confidence {last.confidence:.2f})"
                )
                return RepairOutcome(
                    success=True,
                    data=last.data,
                    confidence=last.confidence,
                    metadata={
                        "repaired": True,
                        "repair_attempts": attempt,
                        "repair_strategy": strategy_kind.value,
                        "failure_kind": kind.value,
                        "session_id": session.id,
                        "original_error": session.original_error,
                    },
                )

            current = FailedResult(
                error=last.error or "Validation failed",
                errors=last.errors,
                output=last.data if last.data is not None else current.output,
                kind=last.kind_hint,
            )
            if attempt < cfg.max_retries:
                await self.sleep(cfg.backoff_base * attempt)

        session.closed = True
        attempts = len(session.attempts)
        logger.error(f"Repair {session.id} failed after {attempts} attempts")

        fallback = last is None or last.data is None
        return RepairOutcome(
            success=False,
            data=self.templates.get(expected) if fallback else last.data,
            confidence=EXHAUSTED_CONFIDENCE,
            error=f"Repair failed after {attempts} attempts",
            metadata={
                "repaired": False,
                "repair_attempts": attempts,
                "fallback": fallback or last.strategy == StrategyKind.FALLBACK_TEMPLATE,
                "session_id": session.id,
                "original_error": session.original_error,
                "repair_history": session.to_dict(),
            },
        )

    def get_session(self, session_id: str) -> Optional[RepairSession]:
        return self.history.get(session_id)

    def get_stats(self) -> RepairStats:
        return self.history.stats()

    def clear_history(self) -> int:
        return self.history.clear()

    def clear_session(self, session_id: str) -> bool:
        return self.history.clear_session(session_id)
