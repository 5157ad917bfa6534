"""
Offline generators.

MockGenerator returns canned artifacts for a declared output type, so the
pipeline can run without an API key. ScriptedGenerator replays a fixed
sequence of responses and failures and records every call.
"""
from __future__ import annotations
from dataclasses import dataclass
from typing import Any, List, Sequence, Union
import json
import logging

from legacy_modernizer.llm.client import TextGenerator
from legacy_modernizer.repair.taxonomy import ExpectedOutput
from legacy_modernizer.repair.templates import as_expected, fallback_templates

logger = logging.getLogger(__name__)

MALFORMED_RESPONSE = '{"programInfo": {"name": "TRUNCATED", "dependencies": ['


@dataclass
class GenerateCall:
    prompt: str
    system_prompt: str
    temperature: float
    max_tokens: int


class MockGenerator(TextGenerator):
    """
    Deterministic canned responses.

    The first `fail_first` calls return truncated JSON so the repair path
    can be exercised offline.
    """

    def __init__(self, expected: Any = ExpectedOutput.UNKNOWN, fail_first: int = 0):
        self.expected = as_expected(expected)
        self.fail_first = fail_first
        self.calls: List[GenerateCall] = []

    def canned(self) -> dict:
        data = fallback_templates.get(self.expected)
        data["generated_by"] = "mock"
        return data

    async def generate(self, prompt, *, system_prompt="", temperature=0.7, max_tokens=4000):
        self.calls.append(GenerateCall(prompt, system_prompt, temperature, max_tokens))
        if len(self.calls) <= self.fail_first:
            logger.debug(f"Mock call {len(self.calls)}: returning malformed output")
            return MALFORMED_RESPONSE
        return "```json\n" + json.dumps(self.canned(), indent=2) + "\n```"


Scripted = Union[str, BaseException]


class ScriptedGenerator(TextGenerator):
    """Replays responses in order; exceptions in the script are raised. The last entry repeats."""

    def __init__(self, script: Sequence[Scripted]):
        if not script:
            raise ValueError("script must not be empty")
        self.script = list(script)
        self.calls: List[GenerateCall] = []

    @property
    def temperatures(self) -> List[float]:
        return [c.temperature for c in self.calls]

    def _next(self) -> Scripted:
        index = min(len(self.calls) - 1, len(self.script) - 1)
        return self.script[index]

    async def generate(self, prompt, *, system_prompt="", temperature=0.7, max_tokens=4000):
        self.calls.append(GenerateCall(prompt, system_prompt, temperature, max_tokens))
        item = self._next()
        if isinstance(item, BaseException):
            raise item
        return item
