"""Advisory alert rules over treatment effectiveness scores.

Each rule is stateless: it looks at the scores (and last-use timestamp)
handed to it and returns an alert or None.  Persisting and dismissing
alerts is left to the application layer.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timedelta
from typing import List, Optional

from models import TreatmentAlert, TreatmentEffectiveness, utcnow

DROP_THRESHOLD_PCT = 20.0
LOW_EFFECTIVENESS_THRESHOLD = 30.0
HIGH_EFFECTIVENESS_THRESHOLD = 70.0
UNUSED_DAYS = 60


def _alert(treatment_id: str, alert_type: str, severity: str, message: str,
           action_suggestion: str, now: Optional[datetime]) -> TreatmentAlert:
    return TreatmentAlert(
        alert_id=uuid.uuid4().hex,
        treatment_id=treatment_id,
        alert_type=alert_type,
        severity=severity,
        message=message,
        action_suggestion=action_suggestion,
        created_at=now or utcnow(),
    )


def check_effectiveness_drop(treatment_id: str, current_score: float, previous_score: float,
                             now: Optional[datetime] = None) -> Optional[TreatmentAlert]:
    """Warn when the score fell by more than 20% relative to the previous one."""
    if previous_score <= 0:
        return None
    drop_pct = (previous_score - current_score) / previous_score * 100.0
    if drop_pct <= DROP_THRESHOLD_PCT:
        return None
    return _alert(
        treatment_id, "effectiveness_drop", "warning",
        f"Treatment effectiveness has dropped by {round(drop_pct)}% over the last 30 days",
        "Review recent changes with your healthcare provider. Factors like dosage, timing, "
        "or lifestyle changes may affect effectiveness.",
        now,
    )


def check_low_effectiveness(treatment_id: str, score: float,
                            now: Optional[datetime] = None) -> Optional[TreatmentAlert]:
    if score >= LOW_EFFECTIVENESS_THRESHOLD:
        return None
    return _alert(
        treatment_id, "low_effectiveness", "warning",
        f"Treatment shows low effectiveness ({round(score)}%)",
        "Consider discussing alternative treatment options with your healthcare provider.",
        now,
    )


def check_unused_effective_treatment(treatment_id: str, score: float, last_taken_at: Optional[datetime],
                                     now: Optional[datetime] = None) -> Optional[TreatmentAlert]:
    """Nudge when a highly effective treatment has not been taken for 60 days."""
    if score <= HIGH_EFFECTIVENESS_THRESHOLD:
        return None
    now = now or utcnow()
    if last_taken_at is not None and last_taken_at >= now - timedelta(days=UNUSED_DAYS):
        return None
    return _alert(
        treatment_id, "unused_effective_treatment", "info",
        f"This highly effective treatment ({round(score)}%) hasn't been used in {UNUSED_DAYS}+ days",
        "Consider whether this treatment should be resumed (consult your healthcare provider first).",
        now,
    )


def generate_treatment_alerts(
    effectiveness: TreatmentEffectiveness,
    previous_score: Optional[float] = None,
    last_taken_at: Optional[datetime] = None,
    now: Optional[datetime] = None,
) -> List[TreatmentAlert]:
    checks = [
        check_low_effectiveness(effectiveness.treatment_id, effectiveness.score, now),
        check_unused_effective_treatment(effectiveness.treatment_id, effectiveness.score, last_taken_at, now),
    ]
    if previous_score is not None:
        checks.insert(0, check_effectiveness_drop(
            effectiveness.treatment_id, effectiveness.score, previous_score, now))
    return [alert for alert in checks if alert is not None]
