"""
Generation Service
Turns active templates bound to active patterns into dated obligation instances.

Idempotency comes from the store, not from memory: before creating anything
the service asks the instance store whether the template already has an
instance on that calendar day, and the store's unique (template_id, due_day)
index settles concurrent writers.
"""
import asyncio
from datetime import date, datetime
from typing import Dict, List, Optional, Tuple
from zoneinfo import ZoneInfo
import logging

from obligation_scheduler.config import Settings, _now_utc, get_settings
from obligation_scheduler.errors import ComputationError, GenerationFailure
from obligation_scheduler.models.automation import GenerationResult, TemplateFailure
from obligation_scheduler.models.obligation_instance import ObligationInstance, day_bucket
from obligation_scheduler.models.obligation_template import ObligationTemplate
from obligation_scheduler.models.recurrence_pattern import EndAfterOccurrences, RecurrencePattern
from obligation_scheduler.services.occurrence_calculator import is_exhausted, next_occurrence

logger = logging.getLogger(__name__)

CREATED = "created"
SKIPPED = "skipped"
FAILED = "failed"


def local_today(now: datetime, tz_name: str) -> date:
    """Calendar day of ``now`` in the scheduler timezone."""
    return now.astimezone(ZoneInfo(tz_name)).date()


class GenerationService:
    """
    Service for generating recurring obligation instances.
    Store arguments are the pattern, template and instance services (or
    anything with the same coroutine methods).
    """

    def __init__(self, patterns, templates, instances, settings: Optional[Settings] = None):
        self.patterns = patterns
        self.templates = templates
        self.instances = instances
        self.settings = settings or get_settings()

    async def generate(self, firm_id: str, now: Optional[datetime] = None) -> GenerationResult:
        """
        Create the next instance for every eligible template of the firm.

        Per-template problems are recorded in the result and never abort the
        batch. Only a failure to list patterns/templates propagates.
        """
        now = now or _now_utc()
        today = local_today(now, self.settings.scheduler_timezone)
        result = GenerationResult(firm_id=firm_id)

        patterns = await self.patterns.list_active(firm_id)
        if not patterns:
            logger.info(f"No active recurrence patterns for firm {firm_id}")
            return result
        patterns_by_id = {p.id: p for p in patterns}
        templates = await self.templates.list_active(firm_id, list(patterns_by_id))

        semaphore = asyncio.Semaphore(max(1, self.settings.generation_concurrency))
        outcomes = await asyncio.gather(*(
            self._guarded(semaphore, firm_id, template, patterns_by_id.get(template.pattern_id), today, now)
            for template in templates
        ))

        for status, value in outcomes:
            if status == CREATED:
                result.generated_count += 1
                result.instance_ids.append(value)
            elif status == FAILED:
                result.failed_count += 1
                result.failures.append(value)
            else:
                result.skipped_count += 1

        logger.info(
            f"Generation for firm {firm_id}: {result.generated_count} created, "
            f"{result.skipped_count} skipped, {result.failed_count} failed"
        )
        return result

    async def _guarded(
        self,
        semaphore: asyncio.Semaphore,
        firm_id: str,
        template: ObligationTemplate,
        pattern: Optional[RecurrencePattern],
        today: date,
        now: datetime,
    ) -> Tuple[str, object]:
        async with semaphore:
            try:
                return await self._process_template(firm_id, template, pattern, today, now)
            except GenerationFailure as exc:
                logger.warning(f"Generation failed for firm {firm_id}: {exc}")
                return FAILED, TemplateFailure(template_id=exc.template_id, error=exc.message)
            except Exception as exc:
                logger.exception(f"Generation failed for template {template.id} of firm {firm_id}")
                return FAILED, TemplateFailure(template_id=template.id, error=str(exc) or type(exc).__name__)

    async def _process_template(
        self,
        firm_id: str,
        template: ObligationTemplate,
        pattern: Optional[RecurrencePattern],
        today: date,
        now: datetime,
    ) -> Tuple[str, object]:
        if pattern is None:
            return SKIPPED, "no active pattern"

        try:
            due = next_occurrence(pattern, today, max_scan_years=self.settings.custom_scan_years)
        except ComputationError as exc:
            raise GenerationFailure(template.id, str(exc)) from exc

        if is_exhausted(pattern, due):
            return SKIPPED, "pattern exhausted"

        due_day = day_bucket(due)
        if await self.instances.exists(firm_id, template.id, due_day):
            return SKIPPED, "already generated"

        limit = pattern.end_condition.occurrences if isinstance(pattern.end_condition, EndAfterOccurrences) else None
        if limit is not None and not await self.patterns.reserve_occurrence(pattern.id, limit):
            return SKIPPED, "pattern exhausted"

        try:
            instance_id = await self.instances.create(ObligationInstance.from_template(template, due))
        except Exception:
            if limit is not None:
                await self.patterns.release_occurrence(pattern.id)
            raise

        if instance_id is None:
            # another run created it between the check and the insert
            if limit is not None:
                await self.patterns.release_occurrence(pattern.id)
            return SKIPPED, "already generated"

        await self.templates.update_last_generated(template.id, now)
        logger.info(f"Generated instance {instance_id} from template {template.id} due {due_day}")
        return CREATED, instance_id
