"""Obligation instance: one concrete, dated piece of work."""
from datetime import date, datetime, time, timezone
from typing import List, Literal, Optional
from pydantic import BaseModel, Field

from obligation_scheduler.models.obligation_template import Category, ObligationTemplate, Priority

Status = Literal["todo", "inprogress", "review", "completed", "cancelled"]

AUTOMATION_SOURCE = "recurring_automation"


def day_bucket(value: date) -> str:
    """Calendar-day key used by the (template_id, due_day) uniqueness rule."""
    if isinstance(value, datetime):
        value = value.date()
    return value.isoformat()


def due_datetime(value: date) -> datetime:
    return datetime.combine(value, time.min, tzinfo=timezone.utc)


class ObligationInstance(BaseModel):
    id: Optional[str] = Field(None, alias="_id")
    firm_id: str
    template_id: Optional[str] = None
    pattern_id: Optional[str] = None
    title: str
    description: Optional[str] = None
    category: Category = "other"
    priority: Priority = "medium"
    client_id: Optional[str] = None
    assigned_to: List[str] = Field(default_factory=list)
    due_date: datetime
    due_day: str
    status: Status = "todo"
    is_auto_generated: bool = False
    source: Optional[str] = None
    created_at: Optional[datetime] = None

    class Config:
        populate_by_name = True

    @classmethod
    def from_template(cls, template: ObligationTemplate, due: date) -> "ObligationInstance":
        return cls(
            firm_id=template.firm_id,
            template_id=template.id,
            pattern_id=template.pattern_id,
            title=template.title,
            description=template.description,
            category=template.category,
            priority=template.priority,
            client_id=template.client_id,
            assigned_to=list(template.assigned_to),
            due_date=due_datetime(due),
            due_day=day_bucket(due),
            is_auto_generated=True,
            source=AUTOMATION_SOURCE,
        )
