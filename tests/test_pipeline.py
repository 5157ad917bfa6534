import pytest

from legacy_modernizer.chunking import chunk
from legacy_modernizer.chunking.chunker import ChunkOptions
from legacy_modernizer.llm import MockGenerator, ScriptedGenerator
from legacy_modernizer.pipeline import ChunkOutcome, generate_report, merge_chunk_results, process_chunks
from legacy_modernizer.repair import RepairOrchestrator
from legacy_modernizer.repair.taxonomy import ExpectedOutput


def cobol_source(n):
    lines = ["       IDENTIFICATION DIVISION.", "       PROGRAM-ID. PAYROLL."]
    lines += [f"           DISPLAY 'LINE {i}'." for i in range(n - 2)]
    return "\n".join(lines)


@pytest.mark.asyncio
async def test_all_chunks_succeed_with_mock(sleep):
    chunks = chunk(cobol_source(450), "PAYROLL.cbl")
    gen = MockGenerator(ExpectedOutput.ANALYSIS)
    orch = RepairOrchestrator(gen, sleep=sleep)

    progress = []
    result = await process_chunks(chunks, gen, orch, "ParserAgent", progress_callback=lambda d, t: progress.append((d, t)))

    assert result.stats.total_chunks == len(chunks) == 3
    assert result.stats.succeeded == 3
    assert result.stats.repaired == 0
    assert result.stats.failed == 0
    assert progress[-1] == (3, 3)
    assert result.merged["programInfo"]["name"] == "unknown_program"
    assert len(result.merged["businessLogic"]) == 3
    assert "PAYROLL.cbl" in gen.calls[0].prompt
    assert "programInfo, dependencies, dataStructures" in gen.calls[0].prompt
    assert "COBOL" in gen.calls[0].system_prompt


@pytest.mark.asyncio
async def test_malformed_first_response_is_repaired(sleep):
    chunks = chunk(cobol_source(100), "PAYROLL.cbl")
    gen = MockGenerator(ExpectedOutput.ANALYSIS, fail_first=1)
    orch = RepairOrchestrator(gen, sleep=sleep)

    result = await process_chunks(chunks, gen, orch, "ParserAgent")

    outcome = result.outcomes[0]
    assert outcome.success and outcome.repaired
    assert outcome.metadata["repair_strategy"] == "error_specific_fix"
    assert outcome.validation is not None and not outcome.validation.valid
    assert result.stats.repair.total_sessions == 1
    assert "| Repaired | 1 |" in generate_report(result)


@pytest.mark.asyncio
async def test_unrepairable_chunk_is_reported(sleep):
    chunks = chunk(cobol_source(10), "PAYROLL.cbl")
    gen = ScriptedGenerator(["The program prints ten lines."])
    orch = RepairOrchestrator(gen, sleep=sleep)

    result = await process_chunks(chunks, gen, orch, "ParserAgent")

    assert result.stats.failed == 1
    assert result.merged is None
    report = generate_report(result)
    assert "## Items Requiring Review" in report
    assert "Repair failed after 3 attempts" in report


def test_merge_concatenates_lists_and_keeps_first_scalar():
    chunks = chunk("\n".join(str(i) for i in range(30)), "x.txt", ChunkOptions(max_lines_per_chunk=10, overlap_lines=2, min_chunk_size=1))
    outcomes = [
        ChunkOutcome(chunk=chunks[1], success=True, data={"name": "B", "items": [2], "meta": {"b": 1}}, confidence=0.8),
        ChunkOutcome(chunk=chunks[0], success=True, data={"name": "A", "items": [1], "meta": {"a": 1}}, confidence=0.8),
        ChunkOutcome(chunk=chunks[2], success=False, data={"items": [3]}, confidence=0.1),
    ]
    merged = merge_chunk_results(outcomes)
    assert merged == {"name": "A", "items": [1, 2], "meta": {"a": 1, "b": 1}}
    assert merge_chunk_results([]) is None
