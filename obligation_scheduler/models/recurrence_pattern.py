"""Recurrence pattern models.

A pattern says *when* an obligation repeats. The cadence lives in exactly one
config block selected by ``type`` (monthly, yearly, quarterly or custom) and
an end condition says when the repetition stops.
"""
from datetime import date, datetime
from typing import Annotated, List, Literal, Optional, Union
from pydantic import BaseModel, Field, field_validator, model_validator

PatternType = Literal["monthly", "yearly", "quarterly", "custom"]

WEEK_NAMES = ["first", "second", "third", "fourth", "last"]
# 0 = Sunday
DAY_NAMES = ["Sunday", "Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday"]
MONTH_NAMES = ["Jan", "Feb", "Mar", "Apr", "May", "Jun", "Jul", "Aug", "Sep", "Oct", "Nov", "Dec"]

DayOfWeek = Annotated[int, Field(ge=0, le=6)]
DayOfMonth = Annotated[int, Field(ge=1, le=31)]
MonthOfYear = Annotated[int, Field(ge=1, le=12)]


def _unique_sorted(values: List[int]) -> List[int]:
    return sorted(set(values))


class DaySelection(BaseModel):
    """Which day inside a month: a fixed day, the nth weekday, or the last day."""
    day_of_month: Optional[DayOfMonth] = Field(None, description="Day of month, clamped on short months")
    week_of_month: Optional[int] = Field(None, ge=1, le=5, description="Week of month, 5 means last")
    day_of_week: Optional[DayOfWeek] = Field(None, description="Day of week, 0=Sunday")
    end_of_month: bool = Field(default=False, description="Last calendar day of the month")

    @model_validator(mode="after")
    def _exactly_one_day_selection(self):
        if (self.week_of_month is None) != (self.day_of_week is None):
            raise ValueError("week_of_month and day_of_week must be given together")
        chosen = sum([
            self.day_of_month is not None,
            self.week_of_month is not None,
            bool(self.end_of_month),
        ])
        if chosen != 1:
            raise ValueError(
                "exactly one of day_of_month, week_of_month/day_of_week or end_of_month is required"
            )
        return self

    def describe_day(self) -> str:
        if self.end_of_month:
            return "on the last day"
        if self.day_of_month is not None:
            return f"on day {self.day_of_month}"
        return f"on the {WEEK_NAMES[self.week_of_month - 1]} {DAY_NAMES[self.day_of_week]}"


class MonthlyConfig(DaySelection):
    type: Literal["monthly"] = "monthly"
    frequency: int = Field(default=1, ge=1, le=12, description="Every N months")


class YearlyConfig(DaySelection):
    type: Literal["yearly"] = "yearly"
    frequency: int = Field(default=1, ge=1, le=10, description="Every N years")
    months: List[MonthOfYear] = Field(..., min_length=1, description="Months of year (1-12)")

    @field_validator("months")
    @classmethod
    def _normalize_months(cls, v: List[int]) -> List[int]:
        return _unique_sorted(v)


class QuarterlyConfig(DaySelection):
    type: Literal["quarterly"] = "quarterly"
    frequency: int = Field(default=1, ge=1, le=4, description="Every N quarters")
    month_of_quarter: int = Field(default=1, ge=1, le=3, description="Month within the quarter")


class CustomConfig(BaseModel):
    type: Literal["custom"] = "custom"
    frequency: int = Field(default=1, ge=1, description="Every N units")
    unit: Literal["days", "weeks", "months", "years"] = "weeks"
    days_of_week: List[DayOfWeek] = Field(default_factory=list)
    days_of_month: List[DayOfMonth] = Field(default_factory=list)
    months_of_year: List[MonthOfYear] = Field(default_factory=list)

    @field_validator("days_of_week", "days_of_month", "months_of_year")
    @classmethod
    def _normalize_refinements(cls, v: List[int]) -> List[int]:
        return _unique_sorted(v)

    @property
    def has_refinements(self) -> bool:
        return bool(self.days_of_week or self.days_of_month or self.months_of_year)


PatternConfig = Annotated[
    Union[MonthlyConfig, YearlyConfig, QuarterlyConfig, CustomConfig],
    Field(discriminator="type"),
]


class NeverEnds(BaseModel):
    type: Literal["never"] = "never"


class EndAfterOccurrences(BaseModel):
    type: Literal["after_occurrences"] = "after_occurrences"
    occurrences: int = Field(..., ge=1)


class EndByDate(BaseModel):
    type: Literal["by_date"] = "by_date"
    end_date: date


EndCondition = Annotated[
    Union[NeverEnds, EndAfterOccurrences, EndByDate],
    Field(discriminator="type"),
]


class RecurrencePatternCreate(BaseModel):
    """Request body for a new pattern."""
    name: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = Field(None, max_length=1000)
    config: PatternConfig
    end_condition: EndCondition = Field(default_factory=NeverEnds)
    start_date: Optional[date] = Field(
        None, description="First day of the cadence; defaults to the creation date"
    )
    is_active: bool = True

    @field_validator("name")
    @classmethod
    def _strip_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("name must not be blank")
        return v


class RecurrencePatternUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = Field(None, max_length=1000)
    config: Optional[PatternConfig] = None
    end_condition: Optional[EndCondition] = None
    start_date: Optional[date] = None
    is_active: Optional[bool] = None


class RecurrencePattern(RecurrencePatternCreate):
    """Stored pattern, scoped to a firm."""
    id: str = Field(alias="_id")
    firm_id: str
    type: Optional[PatternType] = None
    occurrence_count: int = Field(default=0, ge=0)
    created_by: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        populate_by_name = True

    @model_validator(mode="after")
    def _type_matches_config(self):
        if self.type is None:
            self.type = self.config.type
        elif self.type != self.config.type:
            raise ValueError(f"type {self.type!r} does not match config type {self.config.type!r}")
        return self

    @property
    def anchor_date(self) -> Optional[date]:
        """
        Day the cycle grid counts from. Only ``start_date`` also bounds the
        results; ``created_at`` merely places the grid when frequency > 1.
        """
        if self.start_date is not None:
            return self.start_date
        if self.created_at is not None:
            return self.created_at.date()
        return None

    @property
    def frequency_description(self) -> str:
        cfg = self.config
        if isinstance(cfg, MonthlyConfig):
            return f"Every {cfg.frequency} month(s) {cfg.describe_day()}"
        if isinstance(cfg, YearlyConfig):
            months = ", ".join(MONTH_NAMES[m - 1] for m in cfg.months)
            return f"Every {cfg.frequency} year(s) in {months} {cfg.describe_day()}"
        if isinstance(cfg, QuarterlyConfig):
            return f"Every {cfg.frequency} quarter(s), month {cfg.month_of_quarter} {cfg.describe_day()}"
        return f"Every {cfg.frequency} {cfg.unit}"

    def public(self) -> dict:
        """API representation."""
        data = self.model_dump()
        data["frequency_description"] = self.frequency_description
        return data
