"""Automation scheduler: runs recurring generation once a day per firm."""

import asyncio
from datetime import date, datetime, timedelta
from typing import Dict, List, Optional
from zoneinfo import ZoneInfo
import logging

from obligation_scheduler.config import Settings, _now_utc, get_settings
from obligation_scheduler.errors import ComputationError, SchedulerFault
from obligation_scheduler.models.automation import (
    AutomationSettings,
    AutomationStats,
    GenerationResult,
    ScheduleSummary,
    parse_run_time,
)
from obligation_scheduler.services.occurrence_calculator import is_exhausted, next_occurrence

logger = logging.getLogger(__name__)


class AutomationScheduler:
    """
    Drives GenerationService from a periodic timer.

    A firm is due once its local time reaches ``auto_run_time`` and its
    persisted ``last_run_date`` is not today. The run is claimed in the store
    before it starts, so restarts and parallel schedulers do not run a firm
    twice on the same day.
    """

    def __init__(self, generation, automation, patterns, templates, settings: Optional[Settings] = None):
        self.generation = generation
        self.automation = automation
        self.patterns = patterns
        self.templates = templates
        self.settings = settings or get_settings()
        self.check_interval = self.settings.scheduler_tick_seconds
        self._running = False
        self._task: Optional[asyncio.Task] = None
        # one lock per firm seen, kept for the life of the process
        self._firm_locks: Dict[str, asyncio.Lock] = {}

    async def start(self) -> None:
        """Start the scheduler loop."""

        if self._running:
            logger.warning("Automation scheduler already running")
            return

        self._running = True
        self._task = asyncio.create_task(self._scheduler_loop())
        logger.info(f"Automation scheduler started (checking every {self.check_interval} seconds)")

    async def stop(self) -> None:
        """Stop the scheduler loop and wait for it to finish."""

        if not self._running:
            return

        self._running = False

        if self._task and not self._task.done():
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        self._task = None

        logger.info("Automation scheduler stopped")

    def is_running(self) -> bool:
        return self._running

    async def _scheduler_loop(self) -> None:
        while self._running:
            try:
                await self.tick()
                await asyncio.sleep(self.check_interval)
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error(f"Automation scheduler tick failed: {e}")
                await asyncio.sleep(self.settings.scheduler_retry_seconds)

    def _local_now(self, now: datetime) -> datetime:
        return now.astimezone(ZoneInfo(self.settings.scheduler_timezone))

    def _lock_for(self, firm_id: str) -> asyncio.Lock:
        lock = self._firm_locks.get(firm_id)
        if lock is None:
            lock = self._firm_locks[firm_id] = asyncio.Lock()
        return lock

    @staticmethod
    def is_due(firm_settings: AutomationSettings, local_now: datetime) -> bool:
        if not firm_settings.enabled or firm_settings.ran_on(local_now.date()):
            return False
        return (local_now.hour, local_now.minute) >= parse_run_time(firm_settings.auto_run_time)

    async def tick(self, now: Optional[datetime] = None) -> List[GenerationResult]:
        """
        One scheduler pass over all enabled firms. Due firms run concurrently.
        Returns the results of the runs that happened.
        """
        now = now or _now_utc()
        local_now = self._local_now(now)
        try:
            firms = await self.automation.list_enabled()
        except Exception as exc:
            raise SchedulerFault(f"could not load automation settings: {exc}") from exc

        due = [f.firm_id for f in firms if self.is_due(f, local_now)]
        if not due:
            return []

        outcomes = await asyncio.gather(
            *(self._run_scheduled(firm_id, local_now.date(), now) for firm_id in due),
            return_exceptions=True,
        )
        results = []
        for firm_id, outcome in zip(due, outcomes):
            if isinstance(outcome, BaseException):
                logger.error(f"Scheduled run bookkeeping failed for firm {firm_id}: {outcome}")
            elif outcome is not None:
                results.append(outcome)
        return results

    async def _run_scheduled(self, firm_id: str, day: date, now: datetime) -> Optional[GenerationResult]:
        lock = self._lock_for(firm_id)
        if lock.locked():
            return None
        async with lock:
            lease_until = now + timedelta(seconds=self.settings.run_lease_seconds)
            if not await self.automation.claim_daily_run(firm_id, day.isoformat(), now, lease_until):
                return None
            try:
                result = await self.generation.generate(firm_id, now=now)
            except Exception as exc:
                logger.exception(f"Scheduled generation failed for firm {firm_id}, will retry next tick")
                await self.automation.release_claim(firm_id, str(exc) or type(exc).__name__)
                return None
            await self.automation.complete_daily_run(firm_id, day.isoformat(), now, result)
            if result.failed_count:
                logger.warning(f"Scheduled run for firm {firm_id} had {result.failed_count} failed templates")
            return result

    async def run_generation_now(self, firm_id: str, now: Optional[datetime] = None) -> GenerationResult:
        """Forced run: ignores the time of day, still idempotent, waits for a running batch."""
        now = now or _now_utc()
        async with self._lock_for(firm_id):
            result = await self.generation.generate(firm_id, now=now)
        try:
            await self.automation.record_manual_run(firm_id, now, result)
        except Exception as exc:
            logger.warning(f"Could not record manual run for firm {firm_id}: {exc}")
        return result

    async def get_automation_settings(self, firm_id: str) -> AutomationSettings:
        return await self.automation.get(firm_id)

    async def toggle_automation(
        self, firm_id: str, enabled: bool, auto_run_time: Optional[str] = None
    ) -> AutomationSettings:
        if auto_run_time is not None:
            parse_run_time(auto_run_time)
        updated = await self.automation.upsert(firm_id, enabled, auto_run_time)
        logger.info(
            f"Automation {'enabled' if enabled else 'disabled'} for firm {firm_id} at {updated.auto_run_time}"
        )
        return updated

    def _next_run(self, pattern, today: date) -> Optional[date]:
        try:
            due = next_occurrence(pattern, today, max_scan_years=self.settings.custom_scan_years)
        except ComputationError:
            return None
        if is_exhausted(pattern, due):
            return None
        return due

    async def due_this_week(self, firm_id: str, now: Optional[datetime] = None, days: Optional[int] = None) -> int:
        """Active patterns whose next occurrence falls within ``days`` (default 7)."""
        now = now or _now_utc()
        days = self.settings.due_soon_days if days is None else days
        today = self._local_now(now).date()
        horizon = today + timedelta(days=days)
        count = 0
        for pattern in await self.patterns.list_active(firm_id):
            due = self._next_run(pattern, today)
            if due is not None and due <= horizon:
                count += 1
        return count

    async def get_automation_stats(self, firm_id: str, now: Optional[datetime] = None) -> AutomationStats:
        active_patterns = {p.id for p in await self.patterns.list_active(firm_id)}
        schedules = await self.templates.list_recurring(firm_id)
        return AutomationStats(
            total_schedules=len(schedules),
            active_schedules=sum(1 for t in schedules if t.is_active and t.pattern_id in active_patterns),
            due_this_week=await self.due_this_week(firm_id, now=now),
        )

    async def list_schedules(self, firm_id: str, now: Optional[datetime] = None) -> List[ScheduleSummary]:
        now = now or _now_utc()
        today = self._local_now(now).date()
        patterns = {p.id: p for p in await self.patterns.list_patterns(firm_id, is_active=None)}
        summaries = []
        for template in await self.templates.list_recurring(firm_id):
            pattern = patterns.get(template.pattern_id)
            summaries.append(ScheduleSummary(
                template_id=template.id,
                title=template.title,
                category=template.category,
                client_id=template.client_id,
                assigned_to=template.assigned_to,
                pattern_id=template.pattern_id,
                pattern_name=pattern.name if pattern else None,
                frequency_description=pattern.frequency_description if pattern else None,
                next_run=self._next_run(pattern, today) if pattern and pattern.is_active else None,
                last_run=template.last_generated_at,
                is_active=template.is_active,
            ))
        return summaries
