"""Helpers for building concise insight text for UI consumption."""

from __future__ import annotations

from typing import Optional, Sequence

from catalog import ItemCatalog
from models import PairCorrelation

NOT_ENOUGH_DATA = (
    "- Not enough data yet: keep logging foods, triggers and symptoms.\n"
    "- Patterns usually appear after about two weeks of regular entries."
)

LAG_TEXT = {0: "the same day", 6: "about 6 hours later", 12: "about 12 hours later",
            24: "the next day", 48: "two days later"}


def _lag_text(lag_hours: int) -> str:
    return LAG_TEXT.get(lag_hours, f"{lag_hours} hours later")


def _clip(s: str, limit: int = 200) -> str:
    s = s.replace("\n", " ").strip()
    if len(s) <= limit:
        return s
    return s[: limit - 3].rstrip() + "..."


def describe_pair(result: PairCorrelation, catalog: Optional[ItemCatalog] = None) -> str:
    catalog = catalog or ItemCatalog()
    direction = "higher" if result.coefficient > 0 else "lower"
    return (
        f"{catalog.name(result.item1)} is linked to {direction} {catalog.name(result.item2)} "
        f"{_lag_text(result.lag_hours)} (rho {result.coefficient:+.2f}, "
        f"{result.confidence} confidence, {result.sample_size} days, {result.time_range})"
    )


def build_correlation_summary(results: Sequence[PairCorrelation],
                              catalog: Optional[ItemCatalog] = None,
                              max_bullets: int = 3) -> str:
    """Up to three bullets for the strongest findings, one per item pair."""
    if not results:
        return NOT_ENOUGH_DATA

    seen = set()
    bullets = []
    for result in sorted(results, key=lambda r: abs(r.coefficient), reverse=True):
        pair = (result.item1, result.item2)
        if pair in seen:
            continue
        seen.add(pair)
        bullets.append("- " + _clip(describe_pair(result, catalog)))
        if len(bullets) >= max_bullets:
            break
    return "\n".join(bullets)
