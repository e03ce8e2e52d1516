"""
Session adjustments and their cooldown state machines.

Each adjustment kind cycles independently through:

    IDLE -> TRIGGERED -> COOLDOWN -> IDLE

- IDLE: the kind may fire
- TRIGGERED: emitted, waiting for the session controller to apply it
- COOLDOWN: applied, waiting out the cooldown window

A kind that is not IDLE is suppressed even if its condition holds again,
which keeps noisy sensor streams from producing adjustment storms. Both
TRIGGERED and COOLDOWN expire at ``issued_at + cooldown``.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Any
from uuid import uuid4


class AdjustmentKind(str, Enum):
    """Directive types, evaluated in this order."""

    STRESS_BREAK = "stress_break"
    REDUCE_COGNITIVE_LOAD = "reduce_cognitive_load"
    ENGAGEMENT_BOOST = "engagement_boost"


class CooldownPhase(str, Enum):
    IDLE = "idle"
    TRIGGERED = "triggered"
    COOLDOWN = "cooldown"


@dataclass(frozen=True)
class Adjustment:
    """A directive from the feedback loop to the session controller."""

    kind: AdjustmentKind
    session_id: str
    issued_at: datetime
    cooldown_until: datetime
    parameters: dict[str, Any] = field(default_factory=dict)
    adjustment_id: str = field(default_factory=lambda: str(uuid4()))

    def to_dict(self) -> dict[str, Any]:
        return {
            "adjustment_id": self.adjustment_id,
            "kind": self.kind.value,
            "session_id": self.session_id,
            "issued_at": self.issued_at.isoformat(),
            "cooldown_until": self.cooldown_until.isoformat(),
            "parameters": dict(self.parameters),
        }


@dataclass
class _KindState:
    phase: CooldownPhase = CooldownPhase.IDLE
    until: datetime | None = None


class CooldownTracker:
    """Per-session cooldown state for every adjustment kind."""

    def __init__(self, cooldown: timedelta):
        self.cooldown = cooldown
        self._states = {kind: _KindState() for kind in AdjustmentKind}

    def phase(self, kind: AdjustmentKind, now: datetime) -> CooldownPhase:
        state = self._states[kind]
        if state.phase is not CooldownPhase.IDLE and state.until is not None and now >= state.until:
            state.phase = CooldownPhase.IDLE
            state.until = None
        return state.phase

    def can_fire(self, kind: AdjustmentKind, now: datetime) -> bool:
        return self.phase(kind, now) is CooldownPhase.IDLE

    def trigger(self, kind: AdjustmentKind, now: datetime) -> datetime:
        """Move an IDLE kind to TRIGGERED; returns when it becomes IDLE again."""
        state = self._states[kind]
        state.phase = CooldownPhase.TRIGGERED
        state.until = now + self.cooldown
        return state.until

    def acknowledge(self, kind: AdjustmentKind) -> None:
        """The controller applied the adjustment: TRIGGERED -> COOLDOWN."""
        state = self._states[kind]
        if state.phase is CooldownPhase.TRIGGERED:
            state.phase = CooldownPhase.COOLDOWN

    def reset(self) -> None:
        """Drop all pending cooldowns (session ended)."""
        for state in self._states.values():
            state.phase = CooldownPhase.IDLE
            state.until = None
