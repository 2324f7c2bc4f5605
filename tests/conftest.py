"""
Pytest configuration and fixtures for test suite.
Services run against in-memory collections; no MongoDB needed.
"""
import os

os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key")
os.environ["SCHEDULER_TIMEZONE"] = "UTC"
os.environ["SCHEDULER_ENABLED"] = "false"

import pytest

from fakes import FakeCollection
from obligation_scheduler.config import get_settings
from obligation_scheduler.services.automation_scheduler import AutomationScheduler
from obligation_scheduler.services.automation_settings_service import AutomationSettingsService
from obligation_scheduler.services.generation_service import GenerationService
from obligation_scheduler.services.obligation_instance_service import ObligationInstanceService
from obligation_scheduler.services.obligation_template_service import ObligationTemplateService
from obligation_scheduler.services.recurrence_pattern_service import RecurrencePatternService

@pytest.fixture
def settings():
    return get_settings()


@pytest.fixture
def pattern_service():
    return RecurrencePatternService(FakeCollection())


@pytest.fixture
def template_service():
    return ObligationTemplateService(FakeCollection())


@pytest.fixture
def instance_collection():
    return FakeCollection(unique=[("template_id", "due_day")])


@pytest.fixture
def instance_service(instance_collection):
    return ObligationInstanceService(instance_collection)


@pytest.fixture
def automation_settings_service():
    return AutomationSettingsService(FakeCollection(unique=[("firm_id",)]))


@pytest.fixture
def generation_service(pattern_service, template_service, instance_service, settings):
    return GenerationService(pattern_service, template_service, instance_service, settings=settings)


@pytest.fixture
def scheduler(generation_service, automation_settings_service, pattern_service, template_service, settings):
    return AutomationScheduler(
        generation_service,
        automation_settings_service,
        pattern_service,
        template_service,
        settings=settings,
    )


@pytest.fixture
def monthly_payload():
    return {
        "name": "Monthly GST Filing",
        "config": {"type": "monthly", "frequency": 1, "day_of_month": 20},
        "start_date": "2025-01-01",
    }
