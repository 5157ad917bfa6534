"""
Repair session history.

Sessions live in an append-only arena: a list of slots plus an id-to-slot
index. Clearing a session empties its slot; slots are never reused, so
indexes held by other sessions stay valid.
"""
from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional
import itertools
import logging
import time

from legacy_modernizer.repair.taxonomy import FailureKind, StrategyKind

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RepairAttempt:
    """One strategy execution within a session."""
    attempt_number: int
    timestamp: float
    strategy: StrategyKind
    failure_kind: FailureKind
    success: bool
    confidence: float
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "attempt": self.attempt_number,
            "timestamp": self.timestamp,
            "strategy": self.strategy.value,
            "failure_kind": self.failure_kind.value,
            "success": self.success,
            "confidence": self.confidence,
            "error": self.error,
        }


@dataclass
class RepairSession:
    id: str
    agent_name: str
    start_time: float
    original_error: str
    attempts: List[RepairAttempt] = field(default_factory=list)
    crashed: bool = False
    closed: bool = False

    @property
    def succeeded(self) -> bool:
        return bool(self.attempts) and self.attempts[-1].success

    @property
    def outcome(self) -> str:
        if self.crashed:
            return "crashed"
        if self.succeeded:
            return "repaired"
        if self.closed:
            return "exhausted"
        return "open"

    def record(self, attempt: RepairAttempt) -> None:
        self.attempts.append(attempt)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "agent_name": self.agent_name,
            "start_time": self.start_time,
            "original_error": self.original_error,
            "outcome": self.outcome,
            "attempts": [a.to_dict() for a in self.attempts],
        }


@dataclass
class RepairStats:
    total_sessions: int = 0
    successful: int = 0
    failed: int = 0
    average_attempts: float = 0.0
    success_rate: float = 0.0
    strategies_used: Dict[str, int] = field(default_factory=dict)
    in_progress: int = 0   # open sessions, excluded from the totals above

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_sessions": self.total_sessions,
            "successful": self.successful,
            "failed": self.failed,
            "average_attempts": self.average_attempts,
            "success_rate": self.success_rate,
            "strategies_used": dict(self.strategies_used),
            "in_progress": self.in_progress,
        }


class RepairHistory:
    """Arena of repair sessions addressed by generated id."""

    def __init__(self):
        self._slots: List[Optional[RepairSession]] = []
        self._index: Dict[str, int] = {}
        self._counter = itertools.count(1)

    def _new_id(self, agent_name: str) -> str:
        return f"repair_{agent_name}_{int(time.time() * 1000)}_{next(self._counter)}"

    def open(self, agent_name: str, original_error: str) -> RepairSession:
        session = RepairSession(
            id=self._new_id(agent_name),
            agent_name=agent_name,
            start_time=time.time(),
            original_error=original_error,
        )
        self._index[session.id] = len(self._slots)
        self._slots.append(session)
        return session

    def get(self, session_id: str) -> Optional[RepairSession]:
        slot = self._index.get(session_id)
        return None if slot is None else self._slots[slot]

    def sessions(self) -> List[RepairSession]:
        return [s for s in self._slots if s is not None]

    def __len__(self) -> int:
        return len(self._index)

    def clear_session(self, session_id: str) -> bool:
        slot = self._index.pop(session_id, None)
        if slot is None:
            return False
        self._slots[slot] = None
        return True

    def clear(self) -> int:
        count = len(self._index)
        self._slots.clear()
        self._index.clear()
        logger.info(f"Repair history cleared ({count} sessions)")
        return count

    def stats(self) -> RepairStats:
        """Fold over stored attempts; nothing is re-executed."""
        stats = RepairStats()
        total_attempts = 0
        for session in self.sessions():
            if session.outcome == "open":
                stats.in_progress += 1
                continue
            stats.total_sessions += 1
            total_attempts += len(session.attempts)
            if session.succeeded:
                stats.successful += 1
            else:
                stats.failed += 1
            for attempt in session.attempts:
                key = attempt.strategy.value
                stats.strategies_used[key] = stats.strategies_used.get(key, 0) + 1

        if stats.total_sessions:
            stats.average_attempts = total_attempts / stats.total_sessions
            stats.success_rate = stats.successful / stats.total_sessions
        return stats
