"""
Correlation Orchestrator
========================
Hydrates a user's events from the Event Store and drives the analysis
engines over them.

  Window layer:       chi-square per time window, best window, consistency,
                      three-factor confidence, dose-response attachment.
  Combination layer:  individual cause rates feed synergistic pair detection.
  Rank layer:         daily series × lag offsets → Spearman sweep in
                      cooperative batches.
  Treatment layer:    before/after effectiveness cycles and advisory alerts.

All engines are pure; this module owns the only I/O (Event Store reads and
optional cache write-through).
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from analytics.combinations import detect_combinations, meals_from_events
from analytics.confidence import determine_confidence, meets_significance_criteria, rank_confidence
from analytics.daily_logs import daily_log_cause_id, daily_log_events
from analytics.daily_series import RankPair, generate_rank_pairs
from analytics.dose_response import compute_dose_response
from analytics.rank_correlation import spearman_correlation
from analytics.treatment import analyze_treatment
from analytics.treatment_alerts import UNUSED_DAYS, generate_treatment_alerts
from analytics.window_correlation import (
    DEFAULT_WINDOWS,
    compute_consistency,
    compute_window_scores,
    get_window,
    select_best_window,
)
from constants import (
    COMBINATION_WINDOW_HOURS,
    DOSE_RESPONSE_WINDOW_HOURS,
    FLARE_EFFECT_ID,
    KIND_DAILY_LOG,
    KIND_FLARE,
    KIND_FOOD,
    KIND_MEDICATION,
    KIND_SYMPTOM,
    KIND_TRIGGER,
    RANK_LAG_HOURS,
    RANK_TIME_RANGES,
    SIGNIFICANCE_LEVEL,
)
from errors import InputValidationError
from event_store import EventStore
from models import (
    CorrelationResult,
    DateRange,
    DoseResponseResult,
    Event,
    PairCorrelation,
    TimeWindow,
    TreatmentAlert,
    TreatmentEffectiveness,
    utcnow,
)
from pipeline.result_cache import ResultCache

log = logging.getLogger("correlation_engine")

DEFAULT_BATCH_SIZE = 100

RANK_KINDS = (KIND_FOOD, KIND_TRIGGER, KIND_MEDICATION, KIND_SYMPTOM, KIND_FLARE)
TREATMENT_KINDS = {"medication": KIND_MEDICATION, "intervention": KIND_TRIGGER}


class CorrelationEngine:
    """Entry point for every per-user analysis."""

    def __init__(
        self,
        store: EventStore,
        cache: Optional[ResultCache] = None,
        windows: Sequence[TimeWindow] = DEFAULT_WINDOWS,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.store = store
        self.cache = cache
        self.windows = list(windows)
        self.clock = clock

    # ─── Hydration ───────────────────────────────────────────

    async def _cause_events(self, user_id: str, cause_id: Optional[str], date_range: DateRange,
                            cause_kind: str = KIND_FOOD) -> List[Event]:
        events = await self.store.get_events(user_id, cause_kind, cause_id, date_range.start, date_range.end)
        if cause_kind == KIND_MEDICATION:
            events = [e for e in events if e.taken]
        return events

    async def _effect_events(self, user_id: str, effect_id: str, start: datetime, end: datetime,
                             effect_kind: str = KIND_SYMPTOM) -> List[Event]:
        id_filter = None if effect_kind == KIND_FLARE or effect_id == FLARE_EFFECT_ID else effect_id
        return await self.store.get_events(user_id, effect_kind, id_filter, start, end)

    # ─── Window layer ────────────────────────────────────────

    def correlate_events(
        self,
        cause_id: str,
        effect_id: str,
        cause_events: Sequence[Event],
        effect_events: Sequence[Event],
        date_range: DateRange,
    ) -> CorrelationResult:
        """Window scores, best window, consistency and confidence for hydrated events."""
        causes = [e for e in cause_events if date_range.contains(e.timestamp)]
        scores = compute_window_scores(causes, effect_events, self.windows, date_range.start, date_range.end)
        best = select_best_window(scores)

        result = CorrelationResult(
            cause_id=cause_id,
            effect_id=effect_id,
            window_scores=scores,
            best_window=best,
            sample_size=len(causes),
            computed_at=self.clock(),
        )
        if best is not None:
            window = get_window(best.window, self.windows)
            result.consistency = compute_consistency(causes, effect_events, window)
            result.confidence = determine_confidence(result.sample_size, result.consistency, best.p_value)
        return result

    def _dose_response(self, cause_id: str, cause_events: Sequence[Event],
                       effect_events: Sequence[Event]) -> Optional[DoseResponseResult]:
        """Portion vs worst severity in the 24h after each portioned cause event."""
        effects = [e for e in effect_events if e.severity is not None]
        window = timedelta(hours=DOSE_RESPONSE_WINDOW_HOURS)
        portions: List[str] = []
        severities: List[float] = []
        for event in cause_events:
            portion = (event.attributes.get("portions") or {}).get(cause_id)
            if not portion:
                continue
            after = [e.severity for e in effects if event.timestamp <= e.timestamp <= event.timestamp + window]
            if after:
                portions.append(portion)
                severities.append(max(after))
        if not portions:
            return None
        return compute_dose_response(portions, severities)

    async def compute_correlation(
        self,
        user_id: str,
        cause_id: str,
        effect_id: str,
        date_range: DateRange,
        cause_kind: str = KIND_FOOD,
        effect_kind: str = KIND_SYMPTOM,
    ) -> CorrelationResult:
        """Correlate one cause with one effect; dose-response attached when portions exist."""
        causes = await self._cause_events(user_id, cause_id, date_range, cause_kind)
        effects = await self._effect_events(
            user_id, effect_id, date_range.start, date_range.end, effect_kind)

        result = self.correlate_events(cause_id, effect_id, causes, effects, date_range)
        try:
            result.dose_response = self._dose_response(cause_id, causes, effects)
        except InputValidationError as e:
            log.warning("Dose-response skipped for %s -> %s: %s", cause_id, effect_id, e)
        return result

    async def get_or_compute_correlation(
        self,
        user_id: str,
        cause_id: str,
        effect_id: str,
        date_range: DateRange,
        cause_kind: str = KIND_FOOD,
        effect_kind: str = KIND_SYMPTOM,
    ) -> CorrelationResult:
        """Cached variant of compute_correlation; kinds and range bounds are part of the key."""
        if self.cache is None:
            return await self.compute_correlation(
                user_id, cause_id, effect_id, date_range, cause_kind, effect_kind)

        key = ResultCache.make_key(
            user_id, cause_id, effect_id, cause_kind, effect_kind,
            date_range.start.isoformat(), date_range.end.isoformat())
        cached = await self.cache.get(key)
        if cached is not None:
            return cached
        result = await self.compute_correlation(
            user_id, cause_id, effect_id, date_range, cause_kind, effect_kind)
        await self.cache.set(key, result)
        return result

    async def compute_multiple_pairs(
        self,
        user_id: str,
        pairs: Sequence[Tuple[str, str]],
        date_range: DateRange,
        cause_kind: str = KIND_FOOD,
        effect_kind: str = KIND_SYMPTOM,
    ) -> List[CorrelationResult]:
        results: List[CorrelationResult] = []
        for cause_id, effect_id in pairs:
            try:
                results.append(await self.compute_correlation(
                    user_id, cause_id, effect_id, date_range, cause_kind, effect_kind))
            except Exception as e:
                log.warning("Correlation %s -> %s failed for user %s: %s", cause_id, effect_id, user_id, e)
        return results

    async def compute_daily_log_correlation(
        self,
        user_id: str,
        metric: str,
        threshold: float,
        effect_id: str,
        date_range: DateRange,
        op: str = "<",
        direction: str = "forward",
        effect_kind: str = KIND_SYMPTOM,
    ) -> CorrelationResult:
        """Correlate a thresholded sleep/mood metric with an effect."""
        logs = await self.store.get_events(user_id, KIND_DAILY_LOG, None, date_range.start, date_range.end)
        causes = daily_log_events(logs, metric, threshold, op, direction)
        effects = await self._effect_events(
            user_id, effect_id, date_range.start, date_range.end, effect_kind)
        return self.correlate_events(
            daily_log_cause_id(metric, op, threshold), effect_id, causes, effects, date_range)

    # ─── Combination layer ───────────────────────────────────

    async def compute_with_combinations(
        self,
        user_id: str,
        effect_id: str,
        date_range: DateRange,
        effect_kind: str = KIND_SYMPTOM,
        min_sample_size: int = 3,
    ) -> Dict[str, Any]:
        """Significant individual correlations plus synergistic cause pairs.

        Individual rates handed to the combination detector are the
        fraction of each cause's events followed by the effect within the
        same 24h window the detector uses for pairs.
        """
        foods = await self._cause_events(user_id, None, date_range, KIND_FOOD)
        effects = await self._effect_events(
            user_id, effect_id, date_range.start, date_range.end, effect_kind)

        cause_ids = sorted({item for e in foods for item in e.item_ids})
        combination_window = TimeWindow("combination", timedelta(0), timedelta(hours=COMBINATION_WINDOW_HOURS))

        correlations: List[CorrelationResult] = []
        individual_rates: Dict[str, float] = {}
        for cause_id in cause_ids:
            cause_events = [e for e in foods if e.references(cause_id)]
            result = self.correlate_events(cause_id, effect_id, cause_events, effects, date_range)
            individual_rates[cause_id] = compute_consistency(cause_events, effects, combination_window)
            if result.best_window is not None and result.best_window.p_value < SIGNIFICANCE_LEVEL \
                    and result.best_window.chi_square_score > 0:
                correlations.append(result)

        combinations = detect_combinations(
            meals_from_events(foods),
            effects,
            effect_id,
            individual_rates,
            date_range.start,
            date_range.end,
            min_sample_size=min_sample_size,
        )
        log.info(
            "Combinations for %s (user %s): %d causes, %d significant, %d pairs",
            effect_id, user_id, len(cause_ids), len(correlations), len(combinations),
        )
        return {
            "correlations": correlations,
            "combinations": combinations,
            "metadata": {
                "total_causes": len(cause_ids),
                "total_pairs": len(combinations),
                "combinations_detected": sum(1 for c in combinations if c.synergistic),
                "computed_at": self.clock(),
            },
        }

    # ─── Rank layer ──────────────────────────────────────────

    async def load_rank_events(self, user_id: str, date_range: DateRange) -> Dict[str, List[Event]]:
        # Effects may land up to the largest lag after the range end
        end = date_range.end + timedelta(hours=max(RANK_LAG_HOURS))
        return {
            kind: await self.store.get_events(user_id, kind, None, date_range.start, end)
            for kind in RANK_KINDS
        }

    def _rank_result(self, user_id: str, pair: RankPair, time_range: str,
                     calculated_at: datetime) -> Optional[PairCorrelation]:
        rank = spearman_correlation(pair.values1, pair.values2)
        if rank is None:
            return None
        return PairCorrelation(
            user_id=user_id,
            correlation_type=pair.correlation_type,
            item1=pair.item1,
            item2=pair.item2,
            coefficient=rank.rho,
            strength=rank.strength,
            p_value=rank.p_value,
            sample_size=rank.sample_size,
            lag_hours=pair.lag_hours,
            confidence=rank_confidence(rank.sample_size, rank.p_value),
            time_range=time_range,
            calculated_at=calculated_at,
        )

    async def find_significant_correlations(
        self,
        user_id: str,
        time_range: str = "30d",
        lag_hours: Sequence[int] = RANK_LAG_HOURS,
        batch_size: int = DEFAULT_BATCH_SIZE,
        should_stop: Optional[Callable[[], bool]] = None,
    ) -> List[PairCorrelation]:
        """Spearman sweep over every item pair and lag, strongest |rho| first.

        Pairs are processed in batches; control is yielded to the event loop
        between batches and ``should_stop`` is consulted only there.
        """
        if time_range not in RANK_TIME_RANGES:
            raise InputValidationError(f"Unknown time range {time_range!r}")
        now = self.clock()
        date_range = DateRange.last_days(RANK_TIME_RANGES[time_range], now)
        events = await self.load_rank_events(user_id, date_range)

        pairs: List[RankPair] = []
        for lag in lag_hours:
            pairs.extend(generate_rank_pairs(events, lag, date_range.start, date_range.end))

        results: List[PairCorrelation] = []
        for offset in range(0, len(pairs), batch_size):
            if should_stop is not None and should_stop():
                log.info("Rank sweep for user %s stopped after %d/%d pairs", user_id, offset, len(pairs))
                break
            for pair in pairs[offset:offset + batch_size]:
                found = self._rank_result(user_id, pair, time_range, now)
                if found and meets_significance_criteria(found.coefficient, found.sample_size, found.p_value):
                    results.append(found)
            await asyncio.sleep(0)

        results.sort(key=lambda r: abs(r.coefficient), reverse=True)
        return results

    # ─── Treatment layer ─────────────────────────────────────

    async def _treatment_times(self, user_id: str, treatment_id: Optional[str], kind: str,
                               start: datetime, end: datetime) -> List[Event]:
        events = await self.store.get_events(user_id, kind, treatment_id, start, end)
        if kind == KIND_MEDICATION:
            events = [e for e in events if e.taken]
        return events

    async def compute_treatment_effectiveness(
        self,
        user_id: str,
        treatment_id: str,
        date_range: DateRange,
        treatment_type: str = "medication",
    ) -> Optional[TreatmentEffectiveness]:
        """Effectiveness across treatment cycles in range; None below three cycles."""
        kind = TREATMENT_KINDS[treatment_type]
        taken = await self._treatment_times(user_id, treatment_id, kind, date_range.start, date_range.end)
        if not taken:
            return None
        symptoms = await self.store.get_events(
            user_id, KIND_SYMPTOM, None,
            date_range.start - timedelta(days=7), date_range.end + timedelta(days=30),
        )
        return analyze_treatment(
            treatment_id, [e.timestamp for e in taken], symptoms, treatment_type, self.clock())

    async def compute_all_treatment_effectiveness(
        self,
        user_id: str,
        date_range: DateRange,
        treatment_type: str = "medication",
    ) -> List[TreatmentEffectiveness]:
        kind = TREATMENT_KINDS[treatment_type]
        taken = await self._treatment_times(user_id, None, kind, date_range.start, date_range.end)
        treatment_ids = sorted({item for e in taken for item in e.item_ids})
        results = []
        for treatment_id in treatment_ids:
            found = await self.compute_treatment_effectiveness(user_id, treatment_id, date_range, treatment_type)
            if found is not None:
                results.append(found)
        results.sort(key=lambda r: r.score, reverse=True)
        return results

    async def evaluate_treatment(
        self,
        user_id: str,
        treatment_id: str,
        date_range: DateRange,
        previous_score: Optional[float] = None,
        treatment_type: str = "medication",
    ) -> Tuple[Optional[TreatmentEffectiveness], List[TreatmentAlert]]:
        """Effectiveness plus the advisory alerts it triggers."""
        effectiveness = await self.compute_treatment_effectiveness(
            user_id, treatment_id, date_range, treatment_type)
        if effectiveness is None:
            return None, []

        now = self.clock()
        recent = await self._treatment_times(
            user_id, treatment_id, TREATMENT_KINDS[treatment_type], now - timedelta(days=UNUSED_DAYS), now)
        last_taken = max((e.timestamp for e in recent), default=None)
        alerts = generate_treatment_alerts(effectiveness, previous_score, last_taken, now)
        return effectiveness, alerts
