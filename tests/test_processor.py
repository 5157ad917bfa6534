import pytest

from legacy_modernizer.llm import ScriptedGenerator
from legacy_modernizer.repair import ArtifactRepairProcessor, RepairConfig, fallback_templates
from legacy_modernizer.repair.taxonomy import ExpectedOutput

TRUNCATED = '{"programInfo": {"name": "PAYROLL", "dependencies": ['


@pytest.mark.asyncio
async def test_first_pass_repair(good_analysis):
    processor = ArtifactRepairProcessor(ScriptedGenerator([good_analysis]))
    repair = await processor.process(TRUNCATED, "analysis", {"error": "Unexpected end of JSON input"})

    assert repair.status == "success"
    assert repair.strategy == "error_specific_fix"
    assert repair.confidence == 0.8
    assert repair.repaired_output["programInfo"]["name"] == "PAYROLL"
    assert repair.diagnostics["failure_kind"] == "format_error"
    assert repair.diagnostics["issues_found"] == ["Unexpected end of JSON input"]
    assert not repair.emergency_fallback


@pytest.mark.asyncio
async def test_rotation_after_failed_first_pass(good_analysis):
    gen = ScriptedGenerator(["no json here", good_analysis])
    processor = ArtifactRepairProcessor(gen)
    repair = await processor.process(TRUNCATED, {"type": "analysis"}, {"error": "JSON parse error"})

    assert repair.status == "success"
    assert repair.strategy == "partial_processing"
    assert repair.confidence == 0.6
    actions = repair.diagnostics["repair_actions"]
    assert [a["strategy"] for a in actions] == ["error_specific_fix", "partial_processing"]
    assert actions[0]["success"] is False
    assert len(gen.calls) == 2


@pytest.mark.asyncio
async def test_emergency_fallback_when_nothing_clears_threshold():
    gen = ScriptedGenerator(["still not json"])
    processor = ArtifactRepairProcessor(gen, RepairConfig(max_repair_attempts=3))
    repair = await processor.process(TRUNCATED, ExpectedOutput.ANALYSIS, {"error": "JSON parse error"})

    assert repair.status == "failed"
    assert repair.strategy == "emergency_fallback"
    assert repair.emergency_fallback
    assert repair.confidence == 0.2
    assert repair.repaired_output == fallback_templates.get(ExpectedOutput.ANALYSIS)
    assert len(repair.diagnostics["repair_actions"]) == 3

    d = repair.to_dict()
    assert d["repair"]["status"] == "failed"
    assert d["emergency_fallback"] is True


@pytest.mark.asyncio
async def test_generator_crash_is_reported_not_raised(good_analysis):
    gen = ScriptedGenerator([ConnectionError("connection reset"), good_analysis])
    processor = ArtifactRepairProcessor(gen)
    repair = await processor.process("{}", "ModernizerAgent", {"error": "Request timed out"})

    assert repair.diagnostics["failure_kind"] == "network_failure"
    assert repair.diagnostics["repair_actions"][0]["strategy"] == "simplify_prompt"
    assert repair.diagnostics["repair_actions"][0]["success"] is False
