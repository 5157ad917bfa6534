"""
Configuration loading.

Settings come from an optional YAML file with `chunking`, `repair` and
`llm` sections, then environment overrides. Configs are read once at start
and are immutable afterwards.
"""
from __future__ import annotations
from dataclasses import dataclass, field, fields, replace
from typing import Any, Dict, Mapping, Optional
import logging
import os

import yaml

from legacy_modernizer.chunking import ChunkOptions
from legacy_modernizer.errors import ConfigError
from legacy_modernizer.llm.client import LLMConfig
from legacy_modernizer.repair.orchestrator import RepairConfig

logger = logging.getLogger(__name__)

ENV_MAX_RETRIES = "MAX_RETRY_ATTEMPTS"
ENV_API_KEY = "ANTHROPIC_API_KEY"
ENV_MODEL = "LEGACY_MODERNIZER_MODEL"


@dataclass(frozen=True)
class AppConfig:
    chunking: ChunkOptions = field(default_factory=ChunkOptions)
    repair: RepairConfig = field(default_factory=RepairConfig)
    llm: LLMConfig = field(default_factory=LLMConfig)


def _section(raw: Dict[str, Any], name: str, cls):
    values = raw.get(name) or {}
    if not isinstance(values, dict):
        raise ConfigError(f"Config section '{name}' must be a mapping")
    known = {f.name for f in fields(cls)}
    unknown = set(values) - known
    if unknown:
        raise ConfigError(f"Unknown keys in '{name}': {', '.join(sorted(unknown))}")
    return cls(**values)


def load_config_file(path: str) -> Dict[str, Any]:
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except OSError as e:
        raise ConfigError(f"Cannot read config file {path}: {e}") from e
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError(f"Config file {path} must contain a mapping")
    return data


def load_config(path: Optional[str] = None, env: Optional[Mapping[str, str]] = None) -> AppConfig:
    """
    Build the application config.

    Args:
        path: Optional YAML file
        env: Environment mapping; defaults to os.environ

    Raises:
        ConfigError: unreadable file, unknown keys, or invalid values
    """
    env = os.environ if env is None else env
    raw = load_config_file(path) if path else {}

    chunking = _section(raw, "chunking", ChunkOptions)
    repair = _section(raw, "repair", RepairConfig)
    llm = _section(raw, "llm", LLMConfig)

    if env.get(ENV_MAX_RETRIES):
        try:
            repair = replace(repair, max_retries=int(env[ENV_MAX_RETRIES]))
        except ValueError:
            raise ConfigError(f"{ENV_MAX_RETRIES} must be an integer, got {env[ENV_MAX_RETRIES]!r}")
    if env.get(ENV_API_KEY):
        llm = replace(llm, api_key=env[ENV_API_KEY])
    if env.get(ENV_MODEL):
        llm = replace(llm, model=env[ENV_MODEL])

    chunking.validate()
    repair.validate()

    logger.info(
        f"Config loaded{f' from {path}' if path else ''}: "
        f"max_retries={repair.max_retries}, max_lines={chunking.max_lines_per_chunk}, model={llm.model}"
    )
    return AppConfig(chunking=chunking, repair=repair, llm=llm)
