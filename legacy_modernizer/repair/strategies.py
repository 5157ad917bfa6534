"""
Repair strategies.

Each strategy turns a failed request into a new candidate artifact, usually
by asking the generator again with a different prompt. Strategies are looked
up by kind in a registry rather than dispatched through a class hierarchy of
agents.
"""
from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, TYPE_CHECKING
import json
import logging

from legacy_modernizer.errors import StrategyError
from legacy_modernizer.repair.prompts import (
    ALTERNATIVE_DEFAULT,
    ALTERNATIVE_PROMPTS,
    ERROR_FIX_EXCERPT_LIMIT,
    ERROR_FIX_SYSTEM_PROMPT,
    ERROR_FIX_TEMPLATE,
    GENERIC_TEMPLATE,
    INPUT_EXCERPT_LIMIT,
    PARTIAL_INPUT_LIMIT,
    SIMPLIFIED_DEFAULT,
    SIMPLIFIED_PROMPTS,
    SIMPLIFIED_SYSTEM_PROMPT,
)
from legacy_modernizer.repair.taxonomy import ExpectedOutput, FailedResult, StrategyKind
from legacy_modernizer.repair.templates import FallbackTemplates, fallback_templates
from legacy_modernizer.validation import REQUIRED_FIELDS, extract_json

if TYPE_CHECKING:
    from legacy_modernizer.llm.client import TextGenerator

logger = logging.getLogger(__name__)

# Best confidence each strategy can claim, whatever the validator says
TEMPLATE_CEILING = 0.5
RELAXED_CEILING = 0.6


@dataclass
class RepairRequest:
    """Everything a strategy needs to produce a new candidate."""
    agent_name: str
    expected: ExpectedOutput
    failed: FailedResult
    original_input: Any
    attempt: int = 1
    temperature: float = 0.3
    context: Dict[str, Any] = field(default_factory=dict)


@dataclass
class StrategyResult:
    """A candidate artifact and the ceiling on the confidence it may earn."""
    strategy: StrategyKind
    data: Any
    ceiling: float
    raw_response: Optional[str] = None
    generated: bool = True


def input_excerpt(value: Any, limit: int = INPUT_EXCERPT_LIMIT) -> str:
    if isinstance(value, str):
        return value[:limit]
    return json.dumps(value, default=str)[:limit]


def partial_input(value: Any) -> Any:
    """Cut large input down to its first PARTIAL_INPUT_LIMIT characters."""
    if isinstance(value, str):
        return value[:PARTIAL_INPUT_LIMIT]
    if isinstance(value, dict) and isinstance(value.get("code"), str):
        partial = dict(value)
        partial["code"] = partial["code"][:PARTIAL_INPUT_LIMIT]
        return partial
    return value


class RepairStrategy:
    """Base: produce a candidate for a request."""
    kind: StrategyKind
    ceiling: float = 0.6
    max_tokens: int = 2000

    def __init__(self, templates: Optional[FallbackTemplates] = None):
        self.templates = templates or fallback_templates

    async def process(self, request: RepairRequest, generator: "TextGenerator") -> StrategyResult:
        raise NotImplementedError

    async def _generate(
        self,
        request: RepairRequest,
        generator: "TextGenerator",
        prompt: str,
        system_prompt: str = "",
    ) -> StrategyResult:
        logger.debug(
            f"{self.kind.value} for {request.agent_name}: temperature {request.temperature:.3f}, "
            f"max_tokens {self.max_tokens}"
        )
        text = await generator.generate(
            prompt,
            system_prompt=system_prompt,
            temperature=request.temperature,
            max_tokens=self.max_tokens,
        )
        return self._parse(request, text)

    def _parse(self, request: RepairRequest, text: str) -> StrategyResult:
        data = extract_json(text)
        if data is None:
            logger.warning(f"{self.kind.value}: no JSON in response for {request.agent_name}, using template")
            return StrategyResult(
                strategy=self.kind,
                data=self.templates.with_raw_response(request.expected, text or ""),
                ceiling=min(self.ceiling, TEMPLATE_CEILING),
                raw_response=text,
            )
        return StrategyResult(strategy=self.kind, data=data, ceiling=self.ceiling, raw_response=text)


class SimplifyPrompt(RepairStrategy):
    kind = StrategyKind.SIMPLIFY_PROMPT
    ceiling = 0.65
    max_tokens = 2000

    async def process(self, request, generator):
        template = SIMPLIFIED_PROMPTS.get(request.agent_name, SIMPLIFIED_DEFAULT)
        prompt = template.format(input=input_excerpt(request.original_input))
        system = SIMPLIFIED_SYSTEM_PROMPT.format(agent_name=request.agent_name)
        return await self._generate(request, generator, prompt, system)


class AlternativeApproach(RepairStrategy):
    """Reframe the task; validation output gets relaxed validation instead of a call."""
    kind = StrategyKind.ALTERNATIVE_APPROACH
    ceiling = 0.7
    max_tokens = 3000

    def relaxed_validation(self) -> Dict[str, Any]:
        return {
            "validation": {
                "valid": True,
                "errors": [],
                "warnings": ["Relaxed validation applied"],
                "overallScore": 75,
                "details": "Basic validation checks passed",
            },
            "issues": [],
            "qualityMetrics": {
                "complexity": "medium",
                "maintainability": "medium",
                "testability": "medium",
            },
        }

    async def process(self, request, generator):
        if request.expected == ExpectedOutput.VALIDATION:
            logger.info(f"Applying relaxed validation for {request.agent_name}")
            return StrategyResult(
                strategy=self.kind,
                data=self.relaxed_validation(),
                ceiling=RELAXED_CEILING,
                generated=False,
            )
        system, template = ALTERNATIVE_PROMPTS.get(request.agent_name, ALTERNATIVE_DEFAULT)
        prompt = template.format(input=input_excerpt(request.original_input))
        return await self._generate(request, generator, prompt, system)


class ErrorSpecificFix(RepairStrategy):
    kind = StrategyKind.ERROR_SPECIFIC_FIX
    ceiling = 0.8
    max_tokens = 3000

    async def process(self, request, generator):
        errors: List[str] = request.failed.errors or [request.failed.message]
        required = REQUIRED_FIELDS.get(request.expected.value, ())
        prompt = ERROR_FIX_TEMPLATE.format(
            errors="; ".join(errors),
            agent_name=request.agent_name,
            input=input_excerpt(request.original_input, ERROR_FIX_EXCERPT_LIMIT),
            required_fields=", ".join(required) or "(any)",
        )
        system = ERROR_FIX_SYSTEM_PROMPT.format(agent_name=request.agent_name)
        return await self._generate(request, generator, prompt, system)


class FallbackTemplate(RepairStrategy):
    """Canned artifact for the expected type; never calls the generator."""
    kind = StrategyKind.FALLBACK_TEMPLATE
    ceiling = TEMPLATE_CEILING

    async def process(self, request, generator):
        return StrategyResult(
            strategy=self.kind,
            data=self.templates.get(request.expected),
            ceiling=self.ceiling,
            generated=False,
        )


class PartialProcessing(RepairStrategy):
    kind = StrategyKind.PARTIAL_PROCESSING
    ceiling = 0.6
    max_tokens = 2000

    async def process(self, request, generator):
        partial = partial_input(request.original_input)
        template = SIMPLIFIED_PROMPTS.get(request.agent_name, SIMPLIFIED_DEFAULT)
        excerpt = partial if isinstance(partial, str) else input_excerpt(partial)
        prompt = template.format(input=excerpt)
        system = SIMPLIFIED_SYSTEM_PROMPT.format(agent_name=request.agent_name)
        return await self._generate(request, generator, prompt, system)


class GenericFix(RepairStrategy):
    kind = StrategyKind.GENERIC_FIX
    ceiling = 0.6
    max_tokens = 2000

    async def process(self, request, generator):
        prompt = GENERIC_TEMPLATE.format(
            agent_name=request.agent_name,
            input=input_excerpt(request.original_input),
        )
        return await self._generate(request, generator, prompt)


def build_registry(templates: Optional[FallbackTemplates] = None) -> Dict[StrategyKind, RepairStrategy]:
    """One instance of every strategy, keyed by kind."""
    strategies = [
        SimplifyPrompt(templates),
        AlternativeApproach(templates),
        ErrorSpecificFix(templates),
        FallbackTemplate(templates),
        PartialProcessing(templates),
        GenericFix(templates),
    ]
    return {s.kind: s for s in strategies}


def get_strategy(registry: Dict[StrategyKind, RepairStrategy], kind: StrategyKind) -> RepairStrategy:
    try:
        return registry[kind]
    except KeyError:
        raise StrategyError(f"No repair strategy registered for {kind}")
