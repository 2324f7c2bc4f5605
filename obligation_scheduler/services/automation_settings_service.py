"""
Automation Settings Service
Per-firm automation switch, run time and the persisted "last run" marker.
"""
from datetime import datetime
from typing import List, Optional

from obligation_scheduler.config import _now_utc, get_settings
from obligation_scheduler.db import AUTOMATION_SETTINGS, get_collection
from obligation_scheduler.models.automation import AutomationSettings, GenerationResult


class AutomationSettingsService:
    def __init__(self, collection=None):
        self.collection = collection if collection is not None else get_collection(AUTOMATION_SETTINGS)

    async def get(self, firm_id: str) -> AutomationSettings:
        """Stored settings, or the disabled defaults for a firm that never saved any."""
        doc = await self.collection.find_one({"firm_id": firm_id})
        if doc:
            doc.pop("_id", None)
            return AutomationSettings(**doc)
        return AutomationSettings(firm_id=firm_id, auto_run_time=get_settings().default_auto_run_time)

    async def upsert(self, firm_id: str, enabled: bool, auto_run_time: Optional[str] = None) -> AutomationSettings:
        update = {"enabled": enabled, "updated_at": _now_utc()}
        if auto_run_time is not None:
            update["auto_run_time"] = auto_run_time
        operations = {"$set": update}
        if auto_run_time is None:
            operations["$setOnInsert"] = {"auto_run_time": get_settings().default_auto_run_time}
        await self.collection.update_one({"firm_id": firm_id}, operations, upsert=True)
        return await self.get(firm_id)

    async def list_enabled(self) -> List[AutomationSettings]:
        cursor = self.collection.find({"enabled": True}, projection={"_id": 0})
        return [AutomationSettings(**doc) async for doc in cursor]

    async def claim_daily_run(self, firm_id: str, day: str, now: datetime, lease_until: datetime) -> bool:
        """
        Take the firm's run for ``day``. Fails when the day is already done or
        another scheduler holds an unexpired lease.
        """
        doc = await self.collection.find_one_and_update(
            {
                "firm_id": firm_id,
                "enabled": True,
                "last_run_date": {"$ne": day},
                "$or": [{"run_lease_until": None}, {"run_lease_until": {"$lt": now}}],
            },
            {"$set": {"run_lease_until": lease_until}},
        )
        return doc is not None

    async def complete_daily_run(self, firm_id: str, day: str, now: datetime, result: GenerationResult) -> None:
        await self.collection.update_one(
            {"firm_id": firm_id},
            {"$set": {
                "last_run_date": day,
                "last_run_at": now,
                "last_run_generated": result.generated_count,
                "last_run_failed": result.failed_count,
                "last_error": None,
                "run_lease_until": None,
            }},
        )

    async def release_claim(self, firm_id: str, error: str) -> None:
        """Give the day back after a failed run so the next tick retries."""
        await self.collection.update_one(
            {"firm_id": firm_id},
            {"$set": {"run_lease_until": None, "last_error": error}},
        )

    async def record_manual_run(self, firm_id: str, now: datetime, result: GenerationResult) -> None:
        await self.collection.update_one(
            {"firm_id": firm_id},
            {
                "$set": {
                    "last_manual_run_at": now,
                    "last_run_at": now,
                    "last_run_generated": result.generated_count,
                    "last_run_failed": result.failed_count,
                },
                "$setOnInsert": {
                    "enabled": False,
                    "auto_run_time": get_settings().default_auto_run_time,
                },
            },
            upsert=True,
        )
