"""
Chunk Pipeline

Coordinates one agent pass over a chunked file:
1. Generate a result for each chunk, one at a time
2. Extract and validate the structured result
3. Hand failures to the repair orchestrator
4. Merge successful results and summarize
"""
from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, TYPE_CHECKING
import logging
import time

from legacy_modernizer.chunking import Chunk
from legacy_modernizer.repair import (
    ExpectedOutput,
    FailedResult,
    RepairOrchestrator,
    RepairStats,
    expected_output_for,
)
from legacy_modernizer.validation import REQUIRED_FIELDS, ValidationResult, extract_json

if TYPE_CHECKING:
    from legacy_modernizer.llm.client import TextGenerator

logger = logging.getLogger(__name__)

CHUNK_SYSTEM_PROMPT = (
    "You are a {agent_name} working on legacy {language} source. "
    "Respond with a single JSON object and nothing else."
)

CHUNK_USER_TEMPLATE = """Process chunk {number} of {total} from {file_name} (lines {start_line}-{end_line}{section}).

Return a JSON object with these top-level fields: {required_fields}

Source:
```
{content}
```"""

LANGUAGES = {
    ".cbl": "COBOL", ".cob": "COBOL", ".cobol": "COBOL", ".cpy": "COBOL",
    ".rpg": "RPG", ".rpgle": "RPG", ".sqlrpgle": "RPG", ".clle": "CL",
}

BuildPrompt = Callable[[Chunk], str]


def _language(file_name: str) -> str:
    dot = file_name.rfind(".")
    return LANGUAGES.get(file_name[dot:].lower(), "legacy") if dot != -1 else "legacy"


def default_prompt_builder(expected: ExpectedOutput) -> BuildPrompt:
    """Prompt asking for the required fields of the expected output type."""
    required = ", ".join(REQUIRED_FIELDS.get(expected.value, ())) or "any relevant fields"

    def build(chunk: Chunk) -> str:
        return CHUNK_USER_TEMPLATE.format(
            number=chunk.index + 1,
            total=chunk.total_chunks if chunk.total_chunks is not None else "?",
            file_name=chunk.file_name,
            start_line=chunk.start_line,
            end_line=chunk.end_line,
            section=f", {chunk.section_label}" if chunk.section_label else "",
            required_fields=required,
            content=chunk.content,
        )

    return build


@dataclass
class ChunkOutcome:
    """Result for a single chunk."""
    chunk: Chunk
    success: bool
    data: Any
    confidence: float
    repaired: bool = False
    validation: Optional[ValidationResult] = None
    error: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)
    duration_ms: float = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "chunk_index": self.chunk.index,
            "start_line": self.chunk.start_line,
            "end_line": self.chunk.end_line,
            "section": self.chunk.section_label,
            "success": self.success,
            "repaired": self.repaired,
            "confidence": self.confidence,
            "error": self.error,
            "strategy": self.metadata.get("repair_strategy"),
            "duration_ms": round(self.duration_ms, 1),
        }


@dataclass
class PipelineStats:
    total_chunks: int
    succeeded: int
    repaired: int
    failed: int
    average_confidence: float
    total_time_s: float
    repair: RepairStats = field(default_factory=RepairStats)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_chunks": self.total_chunks,
            "succeeded": self.succeeded,
            "repaired": self.repaired,
            "failed": self.failed,
            "average_confidence": round(self.average_confidence, 3),
            "total_time_s": round(self.total_time_s, 3),
            "repair": self.repair.to_dict(),
        }


@dataclass
class PipelineResult:
    file_name: str
    agent_name: str
    outcomes: List[ChunkOutcome]
    merged: Optional[Dict[str, Any]]
    stats: PipelineStats


async def _process_one(
    chunk: Chunk,
    generator: "TextGenerator",
    orchestrator: RepairOrchestrator,
    agent_name: str,
    expected: ExpectedOutput,
    build_prompt: BuildPrompt,
    system_prompt: str,
) -> ChunkOutcome:
    threshold = orchestrator.config.acceptance_threshold
    start = time.time()
    validation = None

    try:
        text = await generator.generate(
            build_prompt(chunk),
            system_prompt=system_prompt,
            temperature=orchestrator.config.base_temperature,
        )
    except Exception as e:
        logger.warning(f"Chunk {chunk.index + 1} generation failed: {e}")
        failed = FailedResult.from_value(e)
    else:
        data = extract_json(text)
        validation = orchestrator.validate(expected, data if data is not None else text)
        if validation.valid and validation.confidence >= threshold:
            return ChunkOutcome(
                chunk=chunk,
                success=True,
                data=data,
                confidence=validation.confidence,
                validation=validation,
                duration_ms=(time.time() - start) * 1000,
            )
        failed = FailedResult(
            error=validation.errors[0] if validation.errors else "Validation failed",
            errors=list(validation.errors),
            output=data if data is not None else text,
        )

    outcome = await orchestrator.repair(
        agent_name,
        failed,
        original_input={"code": chunk.content, "file_name": chunk.file_name, "chunk_index": chunk.index},
        context={"expected_output": expected, "chunk_index": chunk.index},
    )
    return ChunkOutcome(
        chunk=chunk,
        success=outcome.success,
        data=outcome.data,
        confidence=outcome.confidence,
        repaired=outcome.success,
        validation=validation,
        error=outcome.error,
        metadata=outcome.metadata,
        duration_ms=(time.time() - start) * 1000,
    )


async def process_chunks(
    chunks: List[Chunk],
    generator: "TextGenerator",
    orchestrator: RepairOrchestrator,
    agent_name: str,
    build_prompt: Optional[BuildPrompt] = None,
    progress_callback: Optional[Callable[[int, int], None]] = None,
) -> PipelineResult:
    """
    Process chunks sequentially, repairing failures.

    Args:
        chunks: Output of chunk() or chunk_file()
        generator: Text generation service
        orchestrator: Repair orchestrator; its validator scores first-pass results
        agent_name: Agent the results are produced for, e.g. "ParserAgent"
        build_prompt: Optional prompt builder; defaults to one listing the required fields
        progress_callback: Optional callback(completed, total)

    Returns:
        PipelineResult with per-chunk outcomes, merged data and stats
    """
    expected = expected_output_for(agent_name)
    build_prompt = build_prompt or default_prompt_builder(expected)
    file_name = chunks[0].file_name if chunks else "unknown"
    system_prompt = CHUNK_SYSTEM_PROMPT.format(agent_name=agent_name, language=_language(file_name))

    logger.info(f"Processing {len(chunks)} chunks of {file_name} with {agent_name}")
    start_time = time.time()
    outcomes: List[ChunkOutcome] = []

    for i, chunk in enumerate(chunks):
        outcome = await _process_one(chunk, generator, orchestrator, agent_name, expected, build_prompt, system_prompt)
        outcomes.append(outcome)
        status = "repaired" if outcome.repaired else ("ok" if outcome.success else "failed")
        logger.info(
            f"Chunk {i + 1}/{len(chunks)} (lines {chunk.start_line}-{chunk.end_line}): "
            f"{status}, confidence {outcome.confidence:.2f}"
        )
        if progress_callback:
            progress_callback(i + 1, len(chunks))

    succeeded = sum(1 for o in outcomes if o.success)
    stats = PipelineStats(
        total_chunks=len(chunks),
        succeeded=succeeded,
        repaired=sum(1 for o in outcomes if o.repaired),
        failed=len(outcomes) - succeeded,
        average_confidence=sum(o.confidence for o in outcomes) / len(outcomes) if outcomes else 0.0,
        total_time_s=time.time() - start_time,
        repair=orchestrator.get_stats(),
    )
    logger.info(f"Completed {len(chunks)} chunks in {stats.total_time_s:.1f}s ({succeeded} successful)")

    return PipelineResult(
        file_name=file_name,
        agent_name=agent_name,
        outcomes=outcomes,
        merged=merge_chunk_results(outcomes),
        stats=stats,
    )


def _merge_into(target: Dict[str, Any], source: Dict[str, Any]) -> None:
    for key, value in source.items():
        if key not in target:
            target[key] = value
        elif isinstance(target[key], list) and isinstance(value, list):
            target[key] = target[key] + value
        elif isinstance(target[key], dict) and isinstance(value, dict):
            merged = dict(target[key])
            _merge_into(merged, value)
            target[key] = merged
        # differing scalars: first chunk wins


def merge_chunk_results(outcomes: List[ChunkOutcome]) -> Optional[Dict[str, Any]]:
    """
    Merge successful chunk results into one artifact.

    Lists are concatenated in chunk order, nested objects merged key by key,
    and scalars keep the first value seen. Returns None if no chunk succeeded.
    """
    merged: Dict[str, Any] = {}
    used = 0
    for outcome in sorted(outcomes, key=lambda o: o.chunk.index):
        if outcome.success and isinstance(outcome.data, dict):
            _merge_into(merged, outcome.data)
            used += 1
    if not used:
        logger.warning("No successful chunks to merge")
        return None
    logger.info(f"Merged {used} chunk results")
    return merged


def generate_report(result: PipelineResult) -> str:
    """Markdown summary of a pipeline run."""
    s = result.stats
    lines = []

    lines.append(f"# Modernization Report: {result.file_name}")
    lines.append("")
    lines.append(f"Agent: {result.agent_name}")
    lines.append("")

    lines.append("## Summary")
    lines.append("")
    lines.append("| Metric | Value |")
    lines.append("|--------|-------|")
    lines.append(f"| Total chunks | {s.total_chunks} |")
    lines.append(f"| Succeeded | {s.succeeded} |")
    lines.append(f"| Repaired | {s.repaired} |")
    lines.append(f"| Failed | {s.failed} |")
    lines.append(f"| Average confidence | {s.average_confidence:.2f} |")
    lines.append(f"| Processing time | {s.total_time_s:.1f}s |")
    lines.append("")

    lines.append("## Chunks")
    lines.append("")
    lines.append("| # | Lines | Section | Status | Confidence | Strategy |")
    lines.append("|---|-------|---------|--------|------------|----------|")
    for o in result.outcomes:
        status = "repaired" if o.repaired else ("ok" if o.success else "failed")
        section = o.chunk.section_label or ""
        if len(section) > 35:
            section = section[:35] + "..."
        strategy = o.metadata.get("repair_strategy", "")
        lines.append(
            f"| {o.chunk.index + 1} | {o.chunk.start_line}-{o.chunk.end_line} | {section} | "
            f"{status} | {o.confidence:.2f} | {strategy} |"
        )
    lines.append("")

    failed = [o for o in result.outcomes if not o.success]
    if failed:
        lines.append("## Items Requiring Review")
        lines.append("")
        for o in failed:
            lines.append(f"### Chunk {o.chunk.index + 1} (lines {o.chunk.start_line}-{o.chunk.end_line})")
            lines.append(f"**Error:** {o.error}")
            if o.validation and o.validation.errors:
                lines.append("")
                lines.append("**Validation errors:**")
                for e in o.validation.errors:
                    lines.append(f"- {e}")
            if o.metadata.get("fallback"):
                lines.append("")
                lines.append("A fallback artifact was substituted for this chunk.")
            lines.append("")
            lines.append("---")
            lines.append("")

    if s.repair.total_sessions:
        lines.append("## Repair Statistics")
        lines.append("")
        lines.append(f"Sessions: {s.repair.total_sessions}, success rate {s.repair.success_rate:.0%}, "
                     f"average attempts {s.repair.average_attempts:.1f}")
        lines.append("")
        lines.append("| Strategy | Uses |")
        lines.append("|----------|------|")
        for name, count in sorted(s.repair.strategies_used.items()):
            lines.append(f"| {name} | {count} |")
        lines.append("")

    return "\n".join(lines)
