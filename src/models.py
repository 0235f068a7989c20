"""Plain result records produced by the analysis core.

Every analytic record is derived on demand and never edited by users, so
the dataclasses here carry no behaviour beyond light validation and a few
convenience accessors.  Events are owned by the Event Store; the core only
reads them.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Literal, Optional, Tuple

from errors import InputValidationError

ConfidenceLevel = Literal["high", "medium", "low"]
DoseConfidence = Literal["high", "medium", "low", "insufficient"]
Strength = Literal["weak", "moderate", "strong"]
Trend = Literal["improving", "stable", "declining"]


def utcnow() -> datetime:
    """Naive UTC timestamp; all event timestamps share this convention."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


# ─── Inputs ───────────────────────────────────────────────────


@dataclass(frozen=True)
class Event:
    """A timestamped log entry from the Event Store.

    ``attributes`` is kind-specific: ``item_ids`` lists referenced
    foods/triggers/medications/symptoms, ``severity`` holds symptom and
    flare intensity, ``portions`` maps food id -> portion size,
    ``meal_id`` groups foods eaten together and ``taken`` flags whether a
    medication dose was taken.
    """

    timestamp: datetime
    attributes: Dict[str, Any] = field(default_factory=dict)

    @property
    def item_ids(self) -> Tuple[str, ...]:
        return tuple(self.attributes.get("item_ids") or ())

    @property
    def severity(self) -> Optional[float]:
        value = self.attributes.get("severity")
        return None if value is None else float(value)

    def references(self, item_id: str) -> bool:
        return item_id in self.item_ids

    @property
    def taken(self) -> bool:
        """Medication doses count only when explicitly flagged as taken."""
        return bool(self.attributes.get("taken"))


@dataclass(frozen=True)
class TimeWindow:
    """Named offset range after a cause event, bounds inclusive."""

    label: str
    offset_start: timedelta
    offset_end: timedelta

    def __post_init__(self):
        if self.offset_start > self.offset_end:
            raise InputValidationError(
                f"Window {self.label!r}: offset_start {self.offset_start} exceeds offset_end {self.offset_end}"
            )

    @property
    def span(self) -> timedelta:
        return self.offset_end - self.offset_start

    def contains(self, delta: timedelta) -> bool:
        return self.offset_start <= delta <= self.offset_end


@dataclass(frozen=True)
class DateRange:
    start: datetime
    end: datetime

    def __post_init__(self):
        if self.start > self.end:
            raise InputValidationError(f"Range start {self.start} is after range end {self.end}")

    @classmethod
    def last_days(cls, days: int, now: Optional[datetime] = None) -> "DateRange":
        end = now or utcnow()
        return cls(end - timedelta(days=days), end)

    @property
    def duration(self) -> timedelta:
        return self.end - self.start

    def contains(self, ts: datetime) -> bool:
        return self.start <= ts <= self.end


# ─── Window correlation ───────────────────────────────────────


@dataclass(frozen=True)
class WindowScore:
    window: str
    chi_square_score: float
    sample_size: int
    p_value: float


@dataclass
class CorrelationResult:
    cause_id: str
    effect_id: str
    window_scores: List[WindowScore]
    best_window: Optional[WindowScore]
    sample_size: int
    computed_at: datetime
    consistency: Optional[float] = None
    confidence: Optional[ConfidenceLevel] = None
    dose_response: Optional["DoseResponseResult"] = None

    @property
    def is_significant(self) -> bool:
        return self.best_window is not None and self.best_window.p_value < 0.05 and self.best_window.chi_square_score > 0


# ─── Rank correlation ─────────────────────────────────────────


@dataclass(frozen=True)
class RankCorrelation:
    rho: float
    strength: Strength
    sample_size: int
    p_value: float
    is_significant: bool


@dataclass
class PairCorrelation:
    """Population-level Spearman result for one (item, item, lag, range)."""

    user_id: str
    correlation_type: str
    item1: str
    item2: str
    coefficient: float
    strength: Strength
    p_value: float
    sample_size: int
    lag_hours: int
    confidence: ConfidenceLevel
    time_range: str
    calculated_at: datetime


# ─── Dose response ────────────────────────────────────────────


@dataclass
class DoseResponseResult:
    slope: float
    intercept: float
    r_squared: float
    confidence: DoseConfidence
    sample_size: int
    pairs: List[Tuple[float, float]]
    message: str = ""


# ─── Combinations ─────────────────────────────────────────────


@dataclass(frozen=True)
class Meal:
    """Causes logged together; only meals with >=2 causes yield pairs."""

    meal_id: str
    timestamp: datetime
    cause_ids: Tuple[str, ...]


@dataclass
class FoodCombination:
    cause_ids: Tuple[str, str]
    effect_id: str
    combination_rate: float
    individual_max: float
    synergistic: bool
    p_value: float
    chi_square_score: float
    confidence: ConfidenceLevel
    sample_size: int
    computed_at: datetime

    @property
    def key(self) -> str:
        return "+".join(self.cause_ids)

    @property
    def synergy_margin(self) -> float:
        return self.combination_rate - self.individual_max


# ─── Treatment effectiveness ─────────────────────────────────


@dataclass(frozen=True)
class TreatmentCycle:
    treatment_date: datetime
    baseline_severity: float
    outcome_severity: float
    effectiveness: float


@dataclass
class TreatmentEffectiveness:
    treatment_id: str
    treatment_type: str
    score: float
    trend: Trend
    sample_size: int
    confidence: ConfidenceLevel
    cycles: List[TreatmentCycle]
    calculated_at: datetime


@dataclass
class TreatmentAlert:
    alert_id: str
    treatment_id: str
    alert_type: Literal["effectiveness_drop", "low_effectiveness", "unused_effective_treatment"]
    severity: Literal["warning", "info"]
    message: str
    action_suggestion: str
    created_at: datetime
    dismissed: bool = False
