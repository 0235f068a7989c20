"""Debounced per-user batch recomputation with explicit health signaling."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Set

import config
from catalog import ItemCatalog
from correlation_engine import CorrelationEngine
from models import PairCorrelation, utcnow
from pipeline.result_cache import ResultCache
from pipeline.summary_builder import build_correlation_summary

log = logging.getLogger("pipeline.recompute")

RANK_TAG = "rank"


class RecomputeScheduler:
    """Owns the per-user debounce timers and background rank sweeps.

    One scheduler per application: timers, in-flight flags and last-run
    stamps are keyed by user id so users never interfere with each other
    and ``shutdown`` tears everything down.
    """

    def __init__(
        self,
        engine: CorrelationEngine,
        cache: ResultCache,
        debounce: Optional[timedelta] = None,
        fresh_for: Optional[timedelta] = None,
        retention: Optional[timedelta] = None,
        time_ranges: Optional[Sequence[str]] = None,
        lag_hours: Optional[Sequence[int]] = None,
        batch_size: Optional[int] = None,
        catalog: Optional[ItemCatalog] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.engine = engine
        self.cache = cache
        self.debounce = debounce if debounce is not None else timedelta(seconds=config.RECOMPUTE_DEBOUNCE_SECONDS)
        self.fresh_for = fresh_for if fresh_for is not None else timedelta(minutes=config.RECOMPUTE_FRESH_MINUTES)
        self.retention = retention if retention is not None else timedelta(days=config.RESULT_RETENTION_DAYS)
        self.time_ranges = list(time_ranges or config.RANK_TIME_RANGES)
        self.lag_hours = list(lag_hours if lag_hours is not None else config.RANK_LAG_HOURS)
        self.batch_size = batch_size or config.RECOMPUTE_BATCH_SIZE
        self.catalog = catalog or ItemCatalog()
        self.clock = clock

        self._timers: Dict[str, asyncio.Task] = {}
        self._calculating: Set[str] = set()
        self._cancel_requested: Set[str] = set()
        self._running: Dict[str, asyncio.Task] = {}
        self._last_calculated: Dict[str, datetime] = {}
        self._last_status: Dict[str, Dict[str, Any]] = {}

    # ─── Triggers ────────────────────────────────────────────

    def schedule(self, user_id: str) -> asyncio.Task:
        """(Re)start the user's debounce timer; a pending timer is replaced."""
        pending = self._timers.pop(user_id, None)
        if pending is not None and not pending.done():
            pending.cancel()
        task = asyncio.get_running_loop().create_task(self._debounced(user_id))
        task.add_done_callback(self._log_task_result)
        self._timers[user_id] = task
        return task

    @staticmethod
    def _log_task_result(task: asyncio.Task) -> None:
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            log.error("Scheduled recompute failed: %s", exc, exc_info=exc)

    async def _debounced(self, user_id: str) -> Dict[str, Any]:
        await asyncio.sleep(self.debounce.total_seconds())
        # Past the delay the timer is no longer replaceable; cancellation
        # from here on goes through the batch-boundary flag.
        if self._timers.get(user_id) is asyncio.current_task():
            del self._timers[user_id]
        return await self.recalculate(user_id)

    async def on_data_logged(self, user_id: str, cause_ids: Iterable[str] = (),
                             effect_ids: Iterable[str] = ()) -> asyncio.Task:
        """Invalidate cached results touching the new event, then debounce a recompute."""
        removed = 0
        for cause_id in cause_ids:
            removed += await self.cache.invalidate_by_cause(user_id, cause_id)
        for effect_id in effect_ids:
            removed += await self.cache.invalidate_by_effect(user_id, effect_id)
        if removed:
            log.debug("New data for user %s invalidated %d cached results", user_id, removed)
        return self.schedule(user_id)

    async def force_recalculation(self, user_id: str) -> Dict[str, Any]:
        self.cancel_pending(user_id)
        return await self.recalculate(user_id, force=True)

    # ─── Cancellation / teardown ─────────────────────────────

    def cancel_pending(self, user_id: str) -> bool:
        pending = self._timers.pop(user_id, None)
        if pending is None or pending.done():
            return False
        pending.cancel()
        return True

    def cancel(self, user_id: str) -> None:
        """Drop a pending timer and stop a running sweep at its next batch boundary."""
        self.cancel_pending(user_id)
        if user_id in self._calculating:
            self._cancel_requested.add(user_id)

    async def clear_user_data(self, user_id: str) -> int:
        self.cancel(user_id)
        self._last_calculated.pop(user_id, None)
        self._last_status.pop(user_id, None)
        return await self.cache.invalidate_user(user_id)

    async def shutdown(self) -> None:
        """Cancel pending timers, stop running sweeps and wait for all of them to finish."""
        timers = list(self._timers.values())
        for user_id in list(self._timers):
            self.cancel_pending(user_id)
        self._cancel_requested.update(self._calculating)
        current = asyncio.current_task()
        waiting = [t for t in timers + list(self._running.values()) if t is not current]
        if waiting:
            await asyncio.gather(*waiting, return_exceptions=True)

    # ─── State ───────────────────────────────────────────────

    def is_calculating(self, user_id: str) -> bool:
        return user_id in self._calculating

    def get_last_calculated(self, user_id: str) -> Optional[datetime]:
        return self._last_calculated.get(user_id)

    def get_last_status(self, user_id: str) -> Optional[Dict[str, Any]]:
        return self._last_status.get(user_id)

    async def get_cached_correlations(self, user_id: str, time_range: Optional[str] = None) -> List[PairCorrelation]:
        results = await self.cache.values(user_id, tag=RANK_TAG)
        if time_range is not None:
            results = [r for r in results if r.time_range == time_range]
        return sorted(results, key=lambda r: abs(r.coefficient), reverse=True)

    # ─── Recompute ───────────────────────────────────────────

    @staticmethod
    def _overall_status(status: Dict[str, Any]) -> str:
        if status.get("cancelled"):
            return "cancelled"
        ranges = status.get("ranges", {})
        failed = [tr for tr, info in ranges.items() if not info.get("ok")]
        if ranges and len(failed) == len(ranges):
            return "failed"
        if failed:
            return "degraded"
        return "success"

    async def _is_fresh(self, user_id: str, now: datetime) -> bool:
        latest = await self.cache.latest_computed_at(user_id, tag=RANK_TAG)
        return latest is not None and now - latest < self.fresh_for

    async def recalculate(self, user_id: str, force: bool = False) -> Dict[str, Any]:
        """Sweep every time range × lag for ``user_id`` and store significant pairs."""
        now = self.clock()
        status: Dict[str, Any] = {
            "user_id": user_id,
            "run_started_at": now.isoformat(),
            "analysis_status": "unknown",
            "degraded_reasons": [],
            "ranges": {},
            "stored": 0,
            "swept": 0,
            "cancelled": False,
        }

        if self.is_calculating(user_id):
            log.info("Recompute for user %s already running; skipping", user_id)
            status["analysis_status"] = "skipped"
            status["degraded_reasons"] = ["already_running"]
            return status
        if not force and await self._is_fresh(user_id, now):
            log.info("Results for user %s are fresher than %s; skipping", user_id, self.fresh_for)
            status["analysis_status"] = "skipped"
            status["degraded_reasons"] = ["fresh_cache"]
            return status

        self._calculating.add(user_id)
        self._cancel_requested.discard(user_id)
        self._running[user_id] = asyncio.current_task()
        all_results: List[PairCorrelation] = []
        try:
            status["swept"] = await self.cache.delete_older_than(user_id, now - self.retention)
            log.info("Recompute for user %s started (%d stale results removed)", user_id, status["swept"])

            for time_range in self.time_ranges:
                if user_id in self._cancel_requested:
                    status["cancelled"] = True
                    break
                try:
                    results = await self.engine.find_significant_correlations(
                        user_id,
                        time_range,
                        lag_hours=self.lag_hours,
                        batch_size=self.batch_size,
                        should_stop=lambda: user_id in self._cancel_requested,
                    )
                except Exception as e:
                    log.warning("Rank sweep %s failed for user %s: %s", time_range, user_id, e)
                    status["ranges"][time_range] = {"ok": False, "error": str(e)}
                    status["degraded_reasons"].append(f"{time_range}_failed")
                    continue

                for result in results:
                    key = ResultCache.make_key(
                        user_id, result.item1, result.item2, RANK_TAG, time_range, f"lag={result.lag_hours}h")
                    await self.cache.set(key, result)
                status["ranges"][time_range] = {"ok": True, "significant": len(results)}
                status["stored"] += len(results)
                all_results.extend(results)

            if user_id in self._cancel_requested:
                status["cancelled"] = True
        finally:
            self._calculating.discard(user_id)
            self._running.pop(user_id, None)
            self._cancel_requested.discard(user_id)

        status["analysis_status"] = self._overall_status(status)
        status["summary"] = build_correlation_summary(all_results, self.catalog)
        status["run_finished_at"] = self.clock().isoformat()
        if status["analysis_status"] in ("success", "degraded"):
            self._last_calculated[user_id] = now
        self._last_status[user_id] = status
        log.info(
            "Recompute for user %s finished (status=%s, stored=%d)",
            user_id, status["analysis_status"], status["stored"],
        )
        return status
