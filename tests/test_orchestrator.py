import asyncio

import pytest

from legacy_modernizer.errors import ConfigError, GenerationError
from legacy_modernizer.llm import ScriptedGenerator
from legacy_modernizer.repair import RepairConfig, RepairOrchestrator, fallback_templates
from legacy_modernizer.repair.history import RepairHistory
from legacy_modernizer.repair.taxonomy import ExpectedOutput

JSON_ERROR = {"error": "Unexpected token in JSON at position 42"}


@pytest.mark.asyncio
async def test_repair_succeeds_on_first_attempt(good_analysis, sleep):
    gen = ScriptedGenerator([good_analysis])
    orch = RepairOrchestrator(gen, sleep=sleep)

    outcome = await orch.repair("ParserAgent", JSON_ERROR, original_input={"code": "IDENTIFICATION DIVISION."})

    assert outcome.success
    assert outcome.data["programInfo"]["name"] == "PAYROLL"
    assert outcome.confidence == 0.8
    assert outcome.metadata["repaired"] is True
    assert outcome.metadata["repair_attempts"] == 1
    assert outcome.metadata["repair_strategy"] == "error_specific_fix"
    assert outcome.metadata["failure_kind"] == "format_error"
    assert outcome.metadata["original_error"] == JSON_ERROR["error"]
    assert len(gen.calls) == 1
    assert "IDENTIFICATION DIVISION." in gen.calls[0].prompt
    assert sleep.delays == []


@pytest.mark.asyncio
async def test_exhaustion_returns_template_after_max_retries(sleep):
    gen = ScriptedGenerator(["I could not produce JSON for this program."])
    orch = RepairOrchestrator(gen, sleep=sleep)

    outcome = await orch.repair("ParserAgent", JSON_ERROR)

    assert not outcome.success
    assert outcome.confidence == 0.1
    assert outcome.error == "Repair failed after 3 attempts"
    assert outcome.metadata["repaired"] is False
    assert outcome.metadata["fallback"] is True
    assert outcome.data == fallback_templates.get(ExpectedOutput.ANALYSIS)

    session = orch.get_session(outcome.metadata["session_id"])
    assert len(session.attempts) == 3
    assert session.outcome == "exhausted"
    strategies = [a.strategy.value for a in session.attempts]
    assert strategies == ["error_specific_fix", "alternative_approach", "fallback_template"]
    assert strategies[0] != strategies[1]
    assert all(not a.success for a in session.attempts)
    assert "below acceptance threshold" in session.attempts[0].error
    assert outcome.metadata["repair_history"]["attempts"][2]["strategy"] == "fallback_template"


@pytest.mark.asyncio
async def test_linear_backoff_between_attempts(sleep):
    gen = ScriptedGenerator(["nothing useful"])
    orch = RepairOrchestrator(gen, RepairConfig(backoff_base=1.0), sleep=sleep)
    await orch.repair("ParserAgent", JSON_ERROR)
    assert sleep.delays == [1.0, 2.0]


@pytest.mark.asyncio
async def test_temperature_drops_with_each_attempt(sleep):
    gen = ScriptedGenerator(["nothing useful"])
    orch = RepairOrchestrator(gen, RepairConfig(max_retries=2), sleep=sleep)
    await orch.repair("ModernizerAgent", JSON_ERROR)

    temps = gen.temperatures
    assert len(temps) == 2
    assert temps[0] > temps[1]
    assert temps[0] == pytest.approx(0.42)


@pytest.mark.asyncio
async def test_generator_failure_feeds_next_classification(good_analysis, sleep):
    gen = ScriptedGenerator([GenerationError("RateLimitError: slow down", kind="rate_limit"), good_analysis])
    orch = RepairOrchestrator(gen, sleep=sleep)

    outcome = await orch.repair("ParserAgent", JSON_ERROR)

    assert outcome.success
    assert outcome.confidence == 0.7
    assert outcome.metadata["repair_attempts"] == 2
    assert outcome.metadata["repair_strategy"] == "alternative_approach"
    assert outcome.metadata["failure_kind"] == "rate_limit"
    session = orch.get_session(outcome.metadata["session_id"])
    assert "failed" in session.attempts[0].error


@pytest.mark.asyncio
async def test_validator_agent_gets_relaxed_validation(sleep):
    gen = ScriptedGenerator(["garbage"])
    orch = RepairOrchestrator(gen, sleep=sleep)

    outcome = await orch.repair("ValidatorAgent", JSON_ERROR)

    assert outcome.success
    assert outcome.confidence == 0.6
    assert outcome.metadata["repair_strategy"] == "alternative_approach"
    assert outcome.data["validation"]["warnings"] == ["Relaxed validation applied"]
    assert len(gen.calls) == 1


@pytest.mark.asyncio
async def test_unparseable_response_never_clears_threshold(sleep):
    gen = ScriptedGenerator(["Sure! Here is the analysis: PAYROLL reads EMPFILE."])
    orch = RepairOrchestrator(gen, RepairConfig(max_retries=1), sleep=sleep)

    outcome = await orch.repair("ParserAgent", JSON_ERROR)

    assert not outcome.success
    assert "raw_response" in outcome.data
    assert outcome.metadata["fallback"] is False


@pytest.mark.asyncio
async def test_crash_in_loop_returns_fallback_outcome():
    async def broken_sleep(seconds):
        raise RuntimeError("event loop is closing")

    orch = RepairOrchestrator(ScriptedGenerator(["garbage"]), sleep=broken_sleep)
    outcome = await orch.repair("ExplainerAgent", JSON_ERROR)

    assert not outcome.success
    assert outcome.metadata["repair_crashed"] is True
    assert outcome.metadata["fallback"] is True
    assert "event loop is closing" in outcome.error
    assert outcome.data == fallback_templates.get(ExpectedOutput.EXPLANATION)
    assert orch.get_session(outcome.metadata["session_id"]).outcome == "crashed"


@pytest.mark.asyncio
async def test_validator_exception_is_a_failed_attempt(good_analysis, sleep):
    def exploding_validator(expected, candidate):
        raise KeyError("schema")

    orch = RepairOrchestrator(ScriptedGenerator([good_analysis]), sleep=sleep, validate=exploding_validator)
    outcome = await orch.repair("ParserAgent", JSON_ERROR)

    assert not outcome.success
    assert "repair_crashed" not in outcome.metadata
    session = orch.get_session(outcome.metadata["session_id"])
    assert session.attempts[0].error.startswith("Validation error: KeyError")


@pytest.mark.asyncio
async def test_expected_output_from_context(good_analysis, sleep):
    orch = RepairOrchestrator(ScriptedGenerator([good_analysis]), sleep=sleep)
    outcome = await orch.repair("CustomAgent", JSON_ERROR, context={"expected_output": "analysis"})
    assert outcome.success


@pytest.mark.asyncio
async def test_stats_and_history_management(good_analysis, sleep):
    orch = RepairOrchestrator(ScriptedGenerator([good_analysis]), sleep=sleep)
    ok = await orch.repair("ParserAgent", JSON_ERROR)
    orch.generator = ScriptedGenerator(["garbage"])
    failed = await orch.repair("ParserAgent", JSON_ERROR)

    stats = orch.get_stats()
    assert stats.total_sessions == 2
    assert stats.successful == 1
    assert stats.failed == 1
    assert stats.success_rate == 0.5
    assert stats.average_attempts == 2.0
    assert stats.strategies_used["error_specific_fix"] == 2
    assert ok.metadata["session_id"] != failed.metadata["session_id"]
    assert ok.metadata["session_id"].startswith("repair_ParserAgent_")

    assert orch.clear_session(ok.metadata["session_id"]) is True
    assert orch.get_session(ok.metadata["session_id"]) is None
    assert orch.clear_session(ok.metadata["session_id"]) is False
    assert orch.get_stats().total_sessions == 1

    assert orch.clear_history() == 1
    assert orch.get_stats().total_sessions == 0


@pytest.mark.asyncio
async def test_longer_budget_tries_new_strategies_before_the_template(sleep):
    gen = ScriptedGenerator(["nothing useful"])
    orch = RepairOrchestrator(gen, RepairConfig(max_retries=5), sleep=sleep)

    outcome = await orch.repair("ParserAgent", JSON_ERROR)

    assert not outcome.success
    assert outcome.error == "Repair failed after 5 attempts"
    assert outcome.data == fallback_templates.get(ExpectedOutput.ANALYSIS)
    session = orch.get_session(outcome.metadata["session_id"])
    strategies = [a.strategy.value for a in session.attempts]
    assert len(strategies) == 5
    assert strategies[:2] == ["error_specific_fix", "alternative_approach"]
    assert strategies[-1] == "fallback_template"
    assert strategies.count("fallback_template") == 1
    assert sleep.delays == [1.0, 2.0, 3.0, 4.0]


class YieldingSleep:
    """Records delays and hands control back to the event loop."""

    def __init__(self):
        self.delays = []

    async def __call__(self, seconds):
        self.delays.append(seconds)
        await asyncio.sleep(0)


@pytest.mark.asyncio
async def test_concurrent_sessions_stay_isolated():
    sleep = YieldingSleep()
    orch = RepairOrchestrator(ScriptedGenerator(["garbage"]), sleep=sleep)

    outcomes = await asyncio.gather(*[orch.repair("ParserAgent", JSON_ERROR) for _ in range(20)])

    ids = [o.metadata["session_id"] for o in outcomes]
    assert len(set(ids)) == 20
    for session_id in ids:
        session = orch.get_session(session_id)
        assert len(session.attempts) == 3
        assert [a.attempt_number for a in session.attempts] == [1, 2, 3]
        assert session.outcome == "exhausted"
    stats = orch.get_stats()
    assert stats.total_sessions == 20
    assert stats.failed == 20
    assert stats.in_progress == 0
    assert len(sleep.delays) == 40


def test_open_sessions_are_not_counted_as_failed():
    history = RepairHistory()
    history.open("ParserAgent", "Unexpected token")

    stats = history.stats()
    assert stats.total_sessions == 0
    assert stats.failed == 0
    assert stats.in_progress == 1
    assert stats.to_dict()["in_progress"] == 1


def test_invalid_repair_config_rejected():
    with pytest.raises(ConfigError):
        RepairOrchestrator(ScriptedGenerator(["x"]), RepairConfig(max_retries=0))
    with pytest.raises(ConfigError):
        RepairConfig(acceptance_threshold=1.5).validate()
