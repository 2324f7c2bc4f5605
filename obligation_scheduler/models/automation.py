"""Automation settings and run results."""
import re
from datetime import date, datetime
from typing import List, Optional
from pydantic import BaseModel, Field, field_validator

_HHMM = re.compile(r"^([01]\d|2[0-3]):([0-5]\d)$")


def parse_run_time(value: str) -> tuple:
    match = _HHMM.match(value)
    if not match:
        raise ValueError("auto_run_time must be HH:MM (24h)")
    return int(match.group(1)), int(match.group(2))


class AutomationSettingsUpdate(BaseModel):
    enabled: bool
    auto_run_time: Optional[str] = Field(None, description="Daily run time, HH:MM")

    @field_validator("auto_run_time")
    @classmethod
    def _valid_time(cls, v: Optional[str]) -> Optional[str]:
        if v is not None:
            parse_run_time(v)
        return v


class AutomationSettings(BaseModel):
    """Per-firm automation state. ``last_run_date`` is the persisted daily marker."""
    firm_id: str
    enabled: bool = False
    auto_run_time: str = "09:00"
    last_run_date: Optional[str] = None
    last_run_at: Optional[datetime] = None
    last_run_generated: int = 0
    last_run_failed: int = 0
    last_error: Optional[str] = None
    last_manual_run_at: Optional[datetime] = None
    run_lease_until: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        populate_by_name = True

    @field_validator("auto_run_time")
    @classmethod
    def _valid_time(cls, v: str) -> str:
        parse_run_time(v)
        return v

    def ran_on(self, day: date) -> bool:
        return self.last_run_date == day.isoformat()


class TemplateFailure(BaseModel):
    template_id: str
    error: str


class GenerationResult(BaseModel):
    firm_id: str
    generated_count: int = 0
    instance_ids: List[str] = Field(default_factory=list)
    skipped_count: int = 0
    failed_count: int = 0
    failures: List[TemplateFailure] = Field(default_factory=list)


class AutomationStats(BaseModel):
    total_schedules: int = 0
    active_schedules: int = 0
    due_this_week: int = 0


class ScheduleSummary(BaseModel):
    """One recurring template as shown on the automation screen."""
    template_id: str
    title: str
    category: str
    client_id: Optional[str] = None
    assigned_to: List[str] = Field(default_factory=list)
    pattern_id: str
    pattern_name: Optional[str] = None
    frequency_description: Optional[str] = None
    next_run: Optional[date] = None
    last_run: Optional[datetime] = None
    is_active: bool = True
