"""
Canned fallback artifacts.

One registry, keyed by declared output type, shared by the orchestrator and
the per-artifact processor. Every template passes the required-field check
for its type so downstream consumers can always render something.
"""
from __future__ import annotations
from typing import Any, Callable, Dict
import copy

from legacy_modernizer.repair.taxonomy import ExpectedOutput

RAW_RESPONSE_LIMIT = 500

AGENT_OUTPUTS: Dict[str, ExpectedOutput] = {
    "ParserAgent": ExpectedOutput.ANALYSIS,
    "ModernizerAgent": ExpectedOutput.MODERNIZATION,
    "ValidatorAgent": ExpectedOutput.VALIDATION,
    "ExplainerAgent": ExpectedOutput.EXPLANATION,
}


def expected_output_for(agent_name: str) -> ExpectedOutput:
    return AGENT_OUTPUTS.get(agent_name, ExpectedOutput.UNKNOWN)


def as_expected(value: Any) -> ExpectedOutput:
    """Coerce an agent name, type name or ExpectedOutput to ExpectedOutput."""
    if isinstance(value, ExpectedOutput):
        return value
    if isinstance(value, dict):
        value = value.get("type", "unknown")
    if isinstance(value, str) and value in AGENT_OUTPUTS:
        return AGENT_OUTPUTS[value]
    try:
        return ExpectedOutput(value)
    except ValueError:
        return ExpectedOutput.UNKNOWN


def _analysis() -> Dict[str, Any]:
    return {
        "programInfo": {
            "name": "unknown_program",
            "type": "program",
            "language": "COBOL",
            "lineCount": 0,
        },
        "dependencies": [],
        "dataStructures": [],
        "businessLogic": [{
            "section": "main",
            "purpose": "Analysis could not be completed",
            "complexity": "unknown",
            "modernizationOpportunity": "Manual review required",
        }],
        "ioOperations": [],
        "qualityMetrics": {
            "complexity": "unknown",
            "maintainability": "unknown",
            "testability": "unknown",
            "modernizationPriority": "low",
        },
    }


def _modernization() -> Dict[str, Any]:
    return {
        "modernization": {
            "targetLanguage": "Java",
            "targetFramework": "Spring Boot",
            "architecture": "monolith",
            "databaseStrategy": "PostgreSQL",
        },
        "convertedCode": {
            "mainClass": "// Modernization could not be completed automatically\n// Manual conversion required",
            "dataModels": [],
            "businessLogic": [],
            "apiEndpoints": [],
            "tests": [],
        },
        "migrationPlan": {
            "phases": [{
                "phase": 1,
                "description": "Manual conversion required",
                "tasks": ["Review original code", "Plan modernization approach"],
                "estimatedEffort": "manual assessment needed",
                "risks": ["Incomplete automated analysis"],
                "dependencies": [],
            }],
        },
        "sql": "CREATE TABLE modern_table (id INT PRIMARY KEY, data VARCHAR(255));",
        "modernizationMetrics": {
            "codeReduction": "unknown",
            "performanceImprovement": "unknown",
            "maintainabilityGain": "medium",
            "testability": "medium",
            "cloudReadiness": "low",
        },
    }


def _validation() -> Dict[str, Any]:
    return {
        "validation": {
            "overallScore": 50,
            "status": "warning",
            "businessLogicEquivalence": "unknown",
            "codeQuality": "needs_review",
        },
        "issues": [{
            "type": "warning",
            "severity": "medium",
            "category": "validation",
            "description": "Automated validation could not be completed",
            "location": "general",
            "suggestion": "Manual review required",
        }],
        "qualityMetrics": {
            "complexity": "unknown",
            "maintainability": "unknown",
            "testability": "unknown",
            "security": "needs_review",
            "performance": "unknown",
            "documentation": "insufficient",
        },
        "recommendations": [{
            "priority": "high",
            "category": "process",
            "description": "Perform manual code review",
            "implementation": "Assign experienced developer for review",
        }],
    }


def _explanation() -> Dict[str, Any]:
    return {
        "explanation": {
            "type": "summary",
            "title": "Processing Summary",
            "overview": "Automated processing was partially completed. Manual review is recommended.",
            "targetAudience": "developers",
        },
        "sections": [{
            "title": "Processing Status",
            "content": "The automated processing encountered issues and could not be completed fully. "
                       "A fallback response has been generated.",
            "type": "text",
            "importance": "high",
        }],
        "insights": [{
            "category": "process",
            "insight": "Automated processing requires improvement",
            "impact": "medium",
            "recommendation": "Review and enhance processing pipeline",
        }],
        "actionItems": [{
            "priority": "high",
            "category": "process",
            "action": "Review processing failure and implement improvements",
        }],
    }


def _unknown() -> Dict[str, Any]:
    return {"status": "fallback", "message": "Fallback output generated due to repair failure"}


class FallbackTemplates:
    """Registry of template builders; each call returns a fresh copy."""

    def __init__(self):
        self._builders: Dict[ExpectedOutput, Callable[[], Dict[str, Any]]] = {
            ExpectedOutput.ANALYSIS: _analysis,
            ExpectedOutput.MODERNIZATION: _modernization,
            ExpectedOutput.VALIDATION: _validation,
            ExpectedOutput.EXPLANATION: _explanation,
            ExpectedOutput.UNKNOWN: _unknown,
        }

    def register(self, expected: ExpectedOutput, builder: Callable[[], Dict[str, Any]]) -> None:
        self._builders[expected] = builder

    def get(self, expected: Any) -> Dict[str, Any]:
        builder = self._builders.get(as_expected(expected), _unknown)
        return copy.deepcopy(builder())

    def with_raw_response(self, expected: Any, text: str) -> Dict[str, Any]:
        """Template carrying the unparseable generator text for inspection."""
        template = self.get(expected)
        template["raw_response"] = text[:RAW_RESPONSE_LIMIT]
        return template


fallback_templates = FallbackTemplates()
