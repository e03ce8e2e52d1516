"""
Brain State Assessment.

Turns raw physiological/contextual signals into a normalized BrainState:
- stress: autonomic arousal (HRV, skin conductance, temperature)
- cognitive_load: working-memory pressure (accuracy, arousal, cadence)
- engagement: attention on task (cadence, accuracy)
- fatigue: depletion (slow cadence, falling accuracy, low HRV)

Every sub-signal is optional. A missing or malformed signal is replaced by
the neutral value 0.5 so an assessment never fails for lack of sensors.

Bucket thresholds (shared with planner and feedback loop):
- stress:          low < 0.4 <= normal <= 0.7 < high
- cognitive_load:  low <= 0.3 < medium <= 0.6 < high
- engagement:      low < 0.4 <= normal
"""
from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

from src.adaptive.tables import Level

NEUTRAL = 0.5

SIGNAL_FIELDS = (
    "hrv_ms",
    "skin_conductance_us",
    "temperature_c",
    "interaction_cadence",
    "recent_accuracy",
)
SCORE_FIELDS = ("stress", "cognitive_load", "engagement", "fatigue")

# Normalization anchors
HRV_CALM_MS = 100.0  # At or above: no stress contribution
HRV_RANGE_MS = 80.0  # 20ms HRV = full stress contribution
GSR_BASELINE_US = 2.0
GSR_RANGE_US = 18.0
BODY_TEMP_C = 36.8
TEMP_RANGE_C = 1.5
CADENCE_FULL = 20.0  # interactions/minute for full engagement

# Weights per score; each row sums to 1 so all-neutral inputs give 0.5
WEIGHTS = {
    "stress": {"hrv": 0.45, "gsr": 0.35, "temp": 0.20},
    "cognitive_load": {"inaccuracy": 0.50, "gsr": 0.30, "slowness": 0.20},
    "engagement": {"cadence": 0.60, "accuracy": 0.40},
    "fatigue": {"slowness": 0.40, "inaccuracy": 0.30, "hrv": 0.30},
}


def clamp(value: float, low: float = 0.0, high: float = 1.0) -> float:
    return max(low, min(high, value))


def _finite_or_none(value: Any) -> float | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if math.isnan(number) or math.isinf(number):
        return None
    return number


class BiometricSample(BaseModel):
    """
    One reading from the learner's sensors and interaction telemetry.

    Field names from older clients (``hrv``, ``gsr``, ``temperature``) are
    accepted as aliases. Unknown fields are ignored.
    """

    model_config = ConfigDict(extra="ignore", populate_by_name=True, frozen=True)

    hrv_ms: float | None = Field(None, validation_alias=AliasChoices("hrv_ms", "hrv"))
    skin_conductance_us: float | None = Field(
        None, validation_alias=AliasChoices("skin_conductance_us", "gsr", "skin_conductance")
    )
    temperature_c: float | None = Field(
        None, validation_alias=AliasChoices("temperature_c", "temperature")
    )
    interaction_cadence: float | None = None
    recent_accuracy: float | None = None

    # Pre-computed scores from devices that report them directly
    stress: float | None = None
    cognitive_load: float | None = None
    engagement: float | None = None
    fatigue: float | None = None

    captured_at: datetime | None = None

    @field_validator(*SIGNAL_FIELDS, *SCORE_FIELDS, mode="before")
    @classmethod
    def _malformed_is_missing(cls, value: Any) -> float | None:
        return _finite_or_none(value)

    @field_validator("captured_at")
    @classmethod
    def _assume_utc(cls, value: datetime | None) -> datetime | None:
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value

    @classmethod
    def parse(cls, raw: Any) -> BiometricSample:
        """
        Build a sample from a mapping (or pass one through).

        Raises:
            pydantic.ValidationError: if ``raw`` is not a mapping or has a bad timestamp
        """
        if isinstance(raw, cls):
            return raw
        if raw is None:
            return cls()
        return cls.model_validate(raw)


@dataclass(frozen=True)
class BrainState:
    """Normalized snapshot; every score is within [0, 1]."""

    stress: float = NEUTRAL
    cognitive_load: float = NEUTRAL
    engagement: float = NEUTRAL
    fatigue: float = NEUTRAL

    @property
    def stress_level(self) -> Level:
        return classify_stress(self.stress)

    @property
    def cognitive_load_level(self) -> Level:
        return classify_cognitive_load(self.cognitive_load)

    @property
    def engagement_level(self) -> Level:
        return classify_engagement(self.engagement)

    def to_dict(self) -> dict[str, float]:
        return {
            "stress": self.stress,
            "cognitive_load": self.cognitive_load,
            "engagement": self.engagement,
            "fatigue": self.fatigue,
        }


def classify_stress(score: float) -> Level:
    if score < 0.4:
        return Level.LOW
    if score <= 0.7:
        return Level.MEDIUM
    return Level.HIGH


def classify_cognitive_load(score: float) -> Level:
    if score <= 0.3:
        return Level.LOW
    if score <= 0.6:
        return Level.MEDIUM
    return Level.HIGH


def classify_engagement(score: float) -> Level:
    """Engagement only distinguishes low from everything else."""
    return Level.LOW if score < 0.4 else Level.MEDIUM


def missing_signals(sample: BiometricSample) -> list[str]:
    """Raw signals that were absent or malformed (reported as data quality)."""
    return [name for name in SIGNAL_FIELDS if getattr(sample, name) is None]


class BrainStateAssessor:
    """
    Pure mapping from a BiometricSample to a BrainState.

    Raw signals are first normalized to [0, 1] components, then combined
    with the fixed WEIGHTS. A pre-computed score on the sample wins over the
    derived one.
    """

    def __init__(self, weights: dict[str, dict[str, float]] | None = None):
        self.weights = weights or WEIGHTS

    def components(self, sample: BiometricSample) -> dict[str, float]:
        """Normalized inputs; NEUTRAL where the signal is missing."""
        hrv = sample.hrv_ms
        gsr = sample.skin_conductance_us
        temp = sample.temperature_c
        cadence = sample.interaction_cadence
        accuracy = sample.recent_accuracy

        cadence_norm = NEUTRAL if cadence is None else clamp(cadence / CADENCE_FULL)
        accuracy_norm = NEUTRAL if accuracy is None else clamp(accuracy)

        return {
            "hrv": NEUTRAL if hrv is None else clamp((HRV_CALM_MS - hrv) / HRV_RANGE_MS),
            "gsr": NEUTRAL if gsr is None else clamp((gsr - GSR_BASELINE_US) / GSR_RANGE_US),
            "temp": NEUTRAL if temp is None else clamp(abs(temp - BODY_TEMP_C) / TEMP_RANGE_C),
            "cadence": cadence_norm,
            "slowness": 1.0 - cadence_norm,
            "accuracy": accuracy_norm,
            "inaccuracy": 1.0 - accuracy_norm,
        }

    def assess(self, sample: BiometricSample | dict | None) -> BrainState:
        """Compute a BrainState; never raises for missing signals."""
        if not isinstance(sample, BiometricSample):
            sample = BiometricSample.parse(sample)
        parts = self.components(sample)

        scores = {}
        for score_name, weights in self.weights.items():
            override = getattr(sample, score_name)
            if override is not None:
                value = override
            else:
                value = sum(parts[key] * weight for key, weight in weights.items())
            # Rounding keeps 0.5 * weights summing to 1 exactly at 0.5
            scores[score_name] = round(clamp(value), 4)

        return BrainState(**scores)
