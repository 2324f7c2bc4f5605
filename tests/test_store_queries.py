"""
Query shapes the services send to MongoDB, checked with AsyncMock collections.
"""
from datetime import timedelta
from unittest.mock import AsyncMock, MagicMock

from pymongo.errors import DuplicateKeyError

from fakes import FIRM_ID, utc
from obligation_scheduler import db
from obligation_scheduler.models.obligation_instance import ObligationInstance
from obligation_scheduler.services.automation_settings_service import AutomationSettingsService
from obligation_scheduler.services.obligation_instance_service import ObligationInstanceService
from obligation_scheduler.services.obligation_template_service import ObligationTemplateService
from obligation_scheduler.services.recurrence_pattern_service import RecurrencePatternService


def mock_collection():
    collection = MagicMock()
    collection.find_one = AsyncMock(return_value=None)
    collection.insert_one = AsyncMock()
    collection.update_one = AsyncMock()
    collection.find_one_and_update = AsyncMock(return_value=None)
    collection.create_index = AsyncMock()
    return collection


class TestInstanceQueries:
    async def test_exists_uses_day_bucket(self):
        collection = mock_collection()
        service = ObligationInstanceService(collection)

        assert not await service.exists(FIRM_ID, "t-1", "2025-01-20")
        collection.find_one.assert_awaited_once_with(
            {"firm_id": FIRM_ID, "template_id": "t-1", "due_day": "2025-01-20"},
            projection={"_id": 1},
        )

    async def test_duplicate_insert_returns_none(self):
        collection = mock_collection()
        collection.insert_one.side_effect = DuplicateKeyError("E11000 duplicate key")
        service = ObligationInstanceService(collection)
        instance = ObligationInstance(
            firm_id=FIRM_ID,
            template_id="t-1",
            title="GST return",
            due_date=utc(2025, 1, 20),
            due_day="2025-01-20",
        )

        assert await service.create(instance) is None


class TestTemplateQueries:
    async def test_list_active_skips_query_without_patterns(self):
        collection = mock_collection()
        service = ObligationTemplateService(collection)

        assert await service.list_active(FIRM_ID, []) == []
        collection.find.assert_not_called()


class TestPatternQueries:
    async def test_reserve_is_conditional_increment(self):
        collection = mock_collection()
        collection.update_one.return_value = MagicMock(modified_count=0)
        service = RecurrencePatternService(collection)

        assert not await service.reserve_occurrence("p-1", 3)
        collection.update_one.assert_awaited_once_with(
            {"_id": "p-1", "occurrence_count": {"$lt": 3}},
            {"$inc": {"occurrence_count": 1}},
        )


class TestAutomationQueries:
    async def test_claim_filters_on_marker_and_lease(self):
        collection = mock_collection()
        service = AutomationSettingsService(collection)
        now = utc(2025, 1, 10, 9)
        lease_until = now + timedelta(minutes=15)

        assert not await service.claim_daily_run(FIRM_ID, "2025-01-10", now, lease_until)
        query, update = collection.find_one_and_update.await_args.args
        assert query["last_run_date"] == {"$ne": "2025-01-10"}
        assert query["enabled"] is True
        assert {"run_lease_until": {"$lt": now}} in query["$or"]
        assert update == {"$set": {"run_lease_until": lease_until}}

    async def test_upsert_without_time_keeps_stored_time(self):
        collection = mock_collection()
        service = AutomationSettingsService(collection)

        await service.upsert(FIRM_ID, True)

        query, operations = collection.update_one.await_args.args
        assert query == {"firm_id": FIRM_ID}
        assert "auto_run_time" not in operations["$set"]
        assert operations["$setOnInsert"] == {"auto_run_time": "09:00"}
        assert collection.update_one.await_args.kwargs == {"upsert": True}


class TestIndexes:
    async def test_unique_instance_index(self, monkeypatch):
        collections = {}

        def fake_get_collection(name):
            return collections.setdefault(name, mock_collection())

        monkeypatch.setattr(db, "get_collection", fake_get_collection)
        await db.create_indexes()

        instances = collections[db.INSTANCES]
        keys, options = instances.create_index.await_args_list[0].args, instances.create_index.await_args_list[0].kwargs
        assert keys == ([("template_id", 1), ("due_day", 1)],)
        assert options["unique"] is True
        assert options["name"] == "template_due_day_unique"

        automation = collections[db.AUTOMATION_SETTINGS]
        automation.create_index.assert_any_await("firm_id", unique=True)
