"""
Recurrence Pattern Service
Firm-scoped storage for recurrence patterns, preset seeding and previews.
"""
from datetime import date, datetime
from typing import Any, Dict, List, Optional, Union
import logging

from bson import ObjectId
from pydantic import ValidationError

from obligation_scheduler.config import _now_utc, get_settings
from obligation_scheduler.db import PATTERNS, get_collection
from obligation_scheduler.errors import NotFoundError, PatternValidationError
from obligation_scheduler.models.recurrence_pattern import (
    EndByDate,
    RecurrencePattern,
    RecurrencePatternCreate,
    RecurrencePatternUpdate,
)
from obligation_scheduler.services.generation_service import local_today
from obligation_scheduler.services.occurrence_calculator import upcoming_occurrences

logger = logging.getLogger(__name__)

# Canonical compliance cadences offered to every firm.
PRESET_PATTERNS: List[Dict[str, Any]] = [
    {
        "name": "Monthly GST Filing",
        "description": "Monthly GST return filing on 20th of every month",
        "config": {"type": "monthly", "frequency": 1, "day_of_month": 20},
    },
    {
        "name": "Quarterly GST Filing",
        "description": "Quarterly GST return filing on 18th of first month of quarter",
        "config": {"type": "quarterly", "frequency": 1, "month_of_quarter": 1, "day_of_month": 18},
    },
    {
        "name": "Annual ITR Filing",
        "description": "Annual Income Tax Return filing by July 31st",
        "config": {"type": "yearly", "frequency": 1, "months": [7], "day_of_month": 31},
    },
    {
        "name": "Annual ROC Filing",
        "description": "Annual ROC filing by September 30th",
        "config": {"type": "yearly", "frequency": 1, "months": [9], "day_of_month": 30},
    },
]


def _validation_error(exc: ValidationError) -> PatternValidationError:
    return PatternValidationError(
        "Invalid recurrence pattern",
        exc.errors(include_url=False, include_context=False, include_input=False),
    )


class RecurrencePatternService:
    """Service for managing recurrence patterns."""

    def __init__(self, collection=None):
        self.collection = collection if collection is not None else get_collection(PATTERNS)

    async def create_pattern(
        self,
        firm_id: str,
        created_by: Optional[str],
        payload: Union[RecurrencePatternCreate, Dict[str, Any]],
    ) -> RecurrencePattern:
        """Validate and insert a pattern. Invalid payloads never reach the store."""
        try:
            if not isinstance(payload, RecurrencePatternCreate):
                payload = RecurrencePatternCreate.model_validate(payload)
        except ValidationError as exc:
            raise _validation_error(exc) from exc

        now = _now_utc()
        doc = payload.model_dump(mode="json")
        doc.update({
            "_id": str(ObjectId()),
            "firm_id": firm_id,
            "type": payload.config.type,
            "occurrence_count": 0,
            "created_by": created_by,
            "created_at": now,
            "updated_at": now,
        })
        await self.collection.insert_one(doc)
        logger.info(f"Created recurrence pattern {doc['_id']} ({doc['name']}) for firm {firm_id}")
        return RecurrencePattern(**doc)

    async def get_pattern(self, firm_id: str, pattern_id: str) -> Optional[RecurrencePattern]:
        doc = await self.collection.find_one({"_id": pattern_id, "firm_id": firm_id})
        if doc:
            return RecurrencePattern(**doc)
        return None

    async def list_patterns(
        self,
        firm_id: str,
        pattern_type: Optional[str] = None,
        is_active: Optional[bool] = True,
    ) -> List[RecurrencePattern]:
        query: Dict[str, Any] = {"firm_id": firm_id}
        if is_active is not None:
            query["is_active"] = is_active
        if pattern_type:
            query["type"] = pattern_type
        cursor = self.collection.find(query).sort([("type", 1), ("name", 1)])
        patterns = []
        async for doc in cursor:
            patterns.append(RecurrencePattern(**doc))
        return patterns

    async def list_active(self, firm_id: str) -> List[RecurrencePattern]:
        return await self.list_patterns(firm_id, is_active=True)

    async def update_pattern(
        self,
        firm_id: str,
        pattern_id: str,
        payload: Union[RecurrencePatternUpdate, Dict[str, Any]],
    ) -> RecurrencePattern:
        """Apply a partial update; the merged pattern is validated as a whole."""
        try:
            if not isinstance(payload, RecurrencePatternUpdate):
                payload = RecurrencePatternUpdate.model_validate(payload)
        except ValidationError as exc:
            raise _validation_error(exc) from exc

        existing = await self.get_pattern(firm_id, pattern_id)
        if existing is None:
            raise NotFoundError("Recurrence pattern not found")

        changes = payload.model_dump(mode="json", exclude_unset=True)
        if not changes:
            return existing

        merged = existing.model_dump(
            mode="json",
            include={"name", "description", "config", "end_condition", "start_date", "is_active"},
        )
        merged.update(changes)
        try:
            validated = RecurrencePatternCreate.model_validate(merged)
        except ValidationError as exc:
            raise _validation_error(exc) from exc

        update_fields = validated.model_dump(mode="json")
        update_fields["type"] = validated.config.type
        update_fields["updated_at"] = _now_utc()
        await self.collection.update_one(
            {"_id": pattern_id, "firm_id": firm_id},
            {"$set": update_fields},
        )
        refreshed = await self.get_pattern(firm_id, pattern_id)
        if refreshed is None:
            raise NotFoundError("Recurrence pattern not found")
        return refreshed

    async def set_active(self, firm_id: str, pattern_id: str, is_active: bool) -> Optional[RecurrencePattern]:
        result = await self.collection.update_one(
            {"_id": pattern_id, "firm_id": firm_id},
            {"$set": {"is_active": is_active, "updated_at": _now_utc()}},
        )
        if result.matched_count == 0:
            return None
        return await self.get_pattern(firm_id, pattern_id)

    async def delete_pattern(self, firm_id: str, pattern_id: str) -> bool:
        result = await self.collection.delete_one({"_id": pattern_id, "firm_id": firm_id})
        return result.deleted_count > 0

    async def reserve_occurrence(self, pattern_id: str, limit: int) -> bool:
        """Atomically count one more occurrence unless ``limit`` is reached."""
        result = await self.collection.update_one(
            {"_id": pattern_id, "occurrence_count": {"$lt": limit}},
            {"$inc": {"occurrence_count": 1}},
        )
        return result.modified_count == 1

    async def release_occurrence(self, pattern_id: str) -> None:
        await self.collection.update_one(
            {"_id": pattern_id, "occurrence_count": {"$gt": 0}},
            {"$inc": {"occurrence_count": -1}},
        )

    async def seed_preset_patterns(self, firm_id: str, created_by: Optional[str]) -> List[RecurrencePattern]:
        """Insert the preset cadences the firm does not have yet (matched by name)."""
        created = []
        for preset in PRESET_PATTERNS:
            existing = await self.collection.find_one({"firm_id": firm_id, "name": preset["name"]})
            if existing:
                continue
            created.append(await self.create_pattern(firm_id, created_by, preset))
        logger.info(f"Seeded {len(created)} preset patterns for firm {firm_id}")
        return created

    async def preview_occurrences(
        self,
        firm_id: str,
        pattern_id: str,
        from_date: Optional[Union[date, datetime]] = None,
        count: int = 5,
    ) -> Dict[str, Any]:
        """
        Upcoming dates for UI preview.
        Dates past a ``by_date`` end are dropped. Raises ComputationError for
        custom patterns that never match.
        """
        pattern = await self.get_pattern(firm_id, pattern_id)
        if pattern is None:
            raise NotFoundError("Recurrence pattern not found")

        settings = get_settings()
        count = max(1, min(count, settings.preview_max_count))
        start = from_date or local_today(_now_utc(), settings.scheduler_timezone)
        occurrences = upcoming_occurrences(
            pattern, start, count, max_scan_years=settings.custom_scan_years
        )
        if isinstance(pattern.end_condition, EndByDate):
            occurrences = [d for d in occurrences if d <= pattern.end_condition.end_date]

        return {
            "pattern": pattern.name,
            "description": pattern.frequency_description,
            "occurrences": occurrences,
        }
