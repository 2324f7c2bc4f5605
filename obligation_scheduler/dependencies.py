"""Service providers for routes and app startup. Overridable through ``app.dependency_overrides``."""
from functools import lru_cache

from obligation_scheduler.services.automation_scheduler import AutomationScheduler
from obligation_scheduler.services.automation_settings_service import AutomationSettingsService
from obligation_scheduler.services.generation_service import GenerationService
from obligation_scheduler.services.obligation_instance_service import ObligationInstanceService
from obligation_scheduler.services.obligation_template_service import ObligationTemplateService
from obligation_scheduler.services.recurrence_pattern_service import RecurrencePatternService


@lru_cache(maxsize=1)
def get_pattern_service() -> RecurrencePatternService:
    return RecurrencePatternService()


@lru_cache(maxsize=1)
def get_template_service() -> ObligationTemplateService:
    return ObligationTemplateService()


@lru_cache(maxsize=1)
def get_instance_service() -> ObligationInstanceService:
    return ObligationInstanceService()


@lru_cache(maxsize=1)
def get_automation_settings_service() -> AutomationSettingsService:
    return AutomationSettingsService()


@lru_cache(maxsize=1)
def get_generation_service() -> GenerationService:
    return GenerationService(get_pattern_service(), get_template_service(), get_instance_service())


@lru_cache(maxsize=1)
def get_automation_scheduler() -> AutomationScheduler:
    return AutomationScheduler(
        get_generation_service(),
        get_automation_settings_service(),
        get_pattern_service(),
        get_template_service(),
    )


def reset_providers() -> None:
    """Drop cached services, e.g. after the Mongo client was closed."""
    for provider in (
        get_pattern_service,
        get_template_service,
        get_instance_service,
        get_automation_settings_service,
        get_generation_service,
        get_automation_scheduler,
    ):
        provider.cache_clear()
