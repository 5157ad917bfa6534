import pytest

from legacy_modernizer.errors import GenerationError
from legacy_modernizer.repair import (
    INITIAL_STRATEGY,
    FailedResult,
    FailureKind,
    StrategyKind,
    classify_failure,
    select_strategy,
    temperature_for,
)
from legacy_modernizer.repair.templates import as_expected, expected_output_for
from legacy_modernizer.repair.taxonomy import ExpectedOutput
from legacy_modernizer.validation import ValidationResult


@pytest.mark.parametrize("failed, kind", [
    (FailedResult(error="Request timed out after 120s"), FailureKind.NETWORK_FAILURE),
    (FailedResult(error="ECONNRESET"), FailureKind.NETWORK_FAILURE),
    (FailedResult(error="429 Too Many Requests"), FailureKind.RATE_LIMIT),
    (FailedResult(error="Unexpected token in JSON at position 42"), FailureKind.FORMAT_ERROR),
    (FailedResult(error="Validation failed: bad shape"), FailureKind.VALIDATION_FAILURE),
    (FailedResult(error="Output truncated"), FailureKind.INCOMPLETE_OUTPUT),
    (FailedResult(errors=["Missing required field: dependencies"]), FailureKind.VALIDATION_FAILURE),
    (FailedResult(), FailureKind.UNKNOWN_FAILURE),
    (FailedResult(output={}), FailureKind.UNKNOWN_FAILURE),
    (FailedResult(output={"programInfo": "..."}), FailureKind.INCOMPLETE_OUTPUT),
    (FailedResult(output='{"a": 1}'), FailureKind.INCOMPLETE_OUTPUT),
    (FailedResult(output="PROCEDURE DIVISION analysis follows " * 5), FailureKind.PARSE_ERROR),
    (FailedResult(output={"summary": "x" * 200}), FailureKind.UNKNOWN_FAILURE),
    (FailedResult(error="something broke", kind="rate_limit"), FailureKind.RATE_LIMIT),
    (FailedResult(error="Unexpected token", kind="not_a_kind"), FailureKind.FORMAT_ERROR),
    (FailedResult(error="Unexpected token in JSON at position 429"), FailureKind.FORMAT_ERROR),
    (FailedResult(error="Unexpected token in JSON at position 1429"), FailureKind.FORMAT_ERROR),
    (FailedResult(error="Unexpected token in JSON at position 4290"), FailureKind.FORMAT_ERROR),
    (FailedResult(errors=["Missing required field: connectionPool"]), FailureKind.VALIDATION_FAILURE),
    (FailedResult(error="Validation failed", errors=["connection: expected object"]), FailureKind.VALIDATION_FAILURE),
    (FailedResult(error="rate_limit exceeded"), FailureKind.RATE_LIMIT),
])
def test_classify_failure(failed, kind):
    assert classify_failure(failed) == kind


def test_parser_json_error_starts_with_error_specific_fix():
    failed = FailedResult.from_value({"error": "Unexpected token in JSON at position 42"})
    kind = classify_failure(failed)
    assert kind == FailureKind.FORMAT_ERROR
    assert select_strategy(kind, 1) == StrategyKind.ERROR_SPECIFIC_FIX


def test_every_kind_has_an_initial_strategy():
    assert set(INITIAL_STRATEGY) == set(FailureKind)
    assert INITIAL_STRATEGY[FailureKind.INCOMPLETE_OUTPUT] == StrategyKind.PARTIAL_PROCESSING
    assert INITIAL_STRATEGY[FailureKind.RATE_LIMIT] == StrategyKind.SIMPLIFY_PROMPT


def test_escalation_schedule():
    for kind in FailureKind:
        first = select_strategy(kind, 1)
        assert select_strategy(kind, 2) == StrategyKind.ALTERNATIVE_APPROACH
        assert first != StrategyKind.ALTERNATIVE_APPROACH
        assert select_strategy(kind, 3) == StrategyKind.FALLBACK_TEMPLATE
        assert select_strategy(kind, 5) == StrategyKind.FALLBACK_TEMPLATE


def test_json_position_is_not_a_status_code():
    failed = FailedResult.from_value({"error": "Unexpected token in JSON at position 429"})
    kind = classify_failure(failed)
    assert kind == FailureKind.FORMAT_ERROR
    assert select_strategy(kind, 1) == StrategyKind.ERROR_SPECIFIC_FIX


def test_validator_field_names_do_not_look_like_transport_errors():
    failed = FailedResult(error="Validation failed", errors=["Missing required field: connectionPool"])
    assert classify_failure(failed) == FailureKind.VALIDATION_FAILURE
    assert select_strategy(classify_failure(failed), 1) != StrategyKind.SIMPLIFY_PROMPT


def test_longer_budgets_cycle_through_untried_strategies():
    kind = FailureKind.FORMAT_ERROR
    schedule = [select_strategy(kind, n, 5) for n in range(1, 6)]
    assert schedule == [
        StrategyKind.ERROR_SPECIFIC_FIX,
        StrategyKind.ALTERNATIVE_APPROACH,
        StrategyKind.PARTIAL_PROCESSING,
        StrategyKind.SIMPLIFY_PROMPT,
        StrategyKind.FALLBACK_TEMPLATE,
    ]
    assert schedule.count(StrategyKind.FALLBACK_TEMPLATE) == 1


def test_budget_of_two_ends_on_the_template():
    assert select_strategy(FailureKind.UNKNOWN_FAILURE, 1, 2) == StrategyKind.GENERIC_FIX
    assert select_strategy(FailureKind.UNKNOWN_FAILURE, 2, 2) == StrategyKind.FALLBACK_TEMPLATE


def test_temperature_strictly_decreasing():
    temps = [temperature_for(n) for n in range(1, 6)]
    assert temps[0] == pytest.approx(0.42)
    assert all(a > b for a, b in zip(temps, temps[1:]))


def test_failed_result_from_values():
    e = FailedResult.from_value(GenerationError("overloaded", kind="rate_limit"))
    assert e.kind == "rate_limit"

    e = FailedResult.from_value(ValueError("bad input"))
    assert e.error == "ValueError: bad input"

    v = ValidationResult(kind="json", errors=["JSON parse error: x"])
    assert FailedResult.from_value(v).errors == ["JSON parse error: x"]

    d = FailedResult.from_value({"errors": "one problem", "data": {"a": 1}})
    assert d.errors == ["one problem"]
    assert d.output == {"a": 1}
    assert d.message == "one problem"

    raw = FailedResult.from_value("raw model text")
    assert raw.output == "raw model text"
    assert raw.message == "Validation failed"


def test_expected_output_mapping():
    assert expected_output_for("ParserAgent") == ExpectedOutput.ANALYSIS
    assert expected_output_for("SomeOtherAgent") == ExpectedOutput.UNKNOWN
    assert as_expected("ModernizerAgent") == ExpectedOutput.MODERNIZATION
    assert as_expected({"type": "explanation"}) == ExpectedOutput.EXPLANATION
    assert as_expected("nonsense") == ExpectedOutput.UNKNOWN
    assert as_expected(None) == ExpectedOutput.UNKNOWN
