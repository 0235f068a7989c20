"""Turn daily wellbeing logs into synthetic cause events.

A daily log records sleep and mood once per day.  To correlate it with
symptoms the metric is thresholded ("slept < 6h") and each qualifying day
becomes a cause event at a fixed time of day: 08:00 when the log is
expected to precede the effect, 22:00 when looking backwards from the
effect to the evening's mood.
"""

from __future__ import annotations

import operator
from datetime import datetime, time
from typing import List, Sequence

from errors import InputValidationError
from models import Event

DAILY_LOG_METRICS = ("sleepHours", "sleepQuality", "mood", "stressLevel")

OPERATORS = {
    "<": operator.lt,
    "<=": operator.le,
    ">": operator.gt,
    ">=": operator.ge,
    "==": operator.eq,
}

FORWARD_EVENT_TIME = time(8, 0)
REVERSE_EVENT_TIME = time(22, 0)


def daily_log_cause_id(metric: str, op: str, threshold: float) -> str:
    return f"{metric}{op}{threshold:g}"


def daily_log_events(
    logs: Sequence[Event],
    metric: str,
    threshold: float,
    op: str = "<",
    direction: str = "forward",
) -> List[Event]:
    """Cause events for each logged day whose ``metric`` passes ``op threshold``."""
    if metric not in DAILY_LOG_METRICS:
        raise InputValidationError(f"Unknown daily log metric: {metric!r}")
    if op not in OPERATORS:
        raise InputValidationError(f"Unknown comparison operator: {op!r}")
    if direction not in ("forward", "reverse"):
        raise InputValidationError(f"direction must be 'forward' or 'reverse' (got {direction!r})")

    compare = OPERATORS[op]
    at = FORWARD_EVENT_TIME if direction == "forward" else REVERSE_EVENT_TIME
    cause_id = daily_log_cause_id(metric, op, threshold)

    events: List[Event] = []
    for entry in logs:
        value = entry.attributes.get(metric)
        if value is None or not compare(float(value), threshold):
            continue
        events.append(Event(
            timestamp=datetime.combine(entry.timestamp.date(), at),
            attributes={"item_ids": [cause_id], metric: value},
        ))
    return sorted(events, key=lambda e: e.timestamp)
