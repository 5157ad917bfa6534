from legacy_modernizer.llm.client import ClaudeGenerator, LLMConfig, TextGenerator
from legacy_modernizer.llm.mock import MockGenerator, ScriptedGenerator

__all__ = ["ClaudeGenerator", "LLMConfig", "TextGenerator", "MockGenerator", "ScriptedGenerator"]
