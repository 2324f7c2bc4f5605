"""
Occurrence Calculator
Computes the next date implied by a recurrence pattern.

Everything here is pure: no I/O, no clock reads, no caching. Month lengths and
"last weekday" positions are derived for the specific month on every call.

Monthly, quarterly and yearly patterns lay their slots on a grid of months
that passes through the pattern's origin (its start date or creation date, or
``from`` for a bare config) and repeats every ``frequency`` months / quarters /
years in both directions. The next occurrence is the earliest slot strictly
after ``from``, so a slot in the current period whose day has not passed yet
is still returned. Only an explicit start date rules out earlier slots.
"""
import calendar
from datetime import date, datetime, timedelta
from typing import List, Optional, Union

from dateutil.relativedelta import relativedelta

from obligation_scheduler.errors import ComputationError
from obligation_scheduler.models.recurrence_pattern import (
    CustomConfig,
    DaySelection,
    EndAfterOccurrences,
    EndByDate,
    MonthlyConfig,
    QuarterlyConfig,
    RecurrencePattern,
    YearlyConfig,
)

DEFAULT_SCAN_YEARS = 10

PatternLike = Union[RecurrencePattern, MonthlyConfig, YearlyConfig, QuarterlyConfig, CustomConfig]


def _as_date(value: Union[date, datetime]) -> date:
    if isinstance(value, datetime):
        return value.date()
    return value


def weekday_sunday_first(day: date) -> int:
    """Day of week with 0 = Sunday, 6 = Saturday."""
    return (day.weekday() + 1) % 7


def days_in_month(year: int, month: int) -> int:
    return calendar.monthrange(year, month)[1]


def nth_weekday(year: int, month: int, week_of_month: int, day_of_week: int) -> date:
    """The ``week_of_month``-th ``day_of_week`` of the month; 5 means the last one."""
    if week_of_month == 5:
        day = date(year, month, days_in_month(year, month))
        while weekday_sunday_first(day) != day_of_week:
            day -= timedelta(days=1)
        return day
    first = date(year, month, 1)
    offset = (day_of_week - weekday_sunday_first(first)) % 7
    return first + timedelta(days=offset + 7 * (week_of_month - 1))


def day_in_month(selection: DaySelection, year: int, month: int) -> date:
    last = days_in_month(year, month)
    if selection.end_of_month:
        return date(year, month, last)
    if selection.day_of_month is not None:
        # clamp, never roll into the next month
        return date(year, month, min(selection.day_of_month, last))
    return nth_weekday(year, month, selection.week_of_month, selection.day_of_week)


def _month_index(day: date) -> int:
    return day.year * 12 + day.month - 1


def _first_slot(base: int, target: int, step: int) -> int:
    """Smallest ``base + n * step`` (any integer n) that is >= ``target``."""
    return base + -(-(target - base) // step) * step


def _next_on_month_grid(
    selection: DaySelection,
    base_index: int,
    step: int,
    from_date: date,
    earliest: Optional[date],
) -> date:
    slot = _first_slot(base_index, _month_index(from_date), step)
    while True:
        year, month0 = divmod(slot, 12)
        candidate = day_in_month(selection, year, month0 + 1)
        if candidate > from_date and (earliest is None or candidate >= earliest):
            return candidate
        slot += step


def _next_monthly(cfg: MonthlyConfig, from_date: date, origin: Optional[date], earliest: Optional[date]) -> date:
    base = _month_index(origin or from_date)
    return _next_on_month_grid(cfg, base, cfg.frequency, from_date, earliest)


def _next_quarterly(cfg: QuarterlyConfig, from_date: date, origin: Optional[date], earliest: Optional[date]) -> date:
    start = origin or from_date
    quarter_start = _month_index(start) - (start.month - 1) % 3
    base = quarter_start + cfg.month_of_quarter - 1
    return _next_on_month_grid(cfg, base, 3 * cfg.frequency, from_date, earliest)


def _next_yearly(cfg: YearlyConfig, from_date: date, origin: Optional[date], earliest: Optional[date]) -> date:
    base_year = (origin or from_date).year
    year = _first_slot(base_year, from_date.year, cfg.frequency)
    while True:
        for month in cfg.months:
            candidate = day_in_month(cfg, year, month)
            if candidate > from_date and (earliest is None or candidate >= earliest):
                return candidate
        year += cfg.frequency


def _unit_delta(unit: str, amount: int) -> relativedelta:
    return relativedelta(**{unit: amount})


def _next_custom_plain(cfg: CustomConfig, from_date: date, origin: Optional[date], earliest: Optional[date]) -> date:
    if origin is None:
        return from_date + _unit_delta(cfg.unit, cfg.frequency)
    if cfg.unit in ("days", "weeks"):
        step = cfg.frequency * (7 if cfg.unit == "weeks" else 1)
        n = (from_date - origin).days // step + 1
        candidate = origin + timedelta(days=n * step)
        while earliest is not None and candidate < earliest:
            candidate += timedelta(days=step)
        return candidate
    # months / years: multiples are taken from the origin so day clamping never accumulates
    step_months = cfg.frequency * (12 if cfg.unit == "years" else 1)
    n = (_month_index(from_date) - _month_index(origin)) // step_months - 1
    candidate = origin + relativedelta(months=n * step_months)
    while candidate <= from_date or (earliest is not None and candidate < earliest):
        n += 1
        candidate = origin + relativedelta(months=n * step_months)
    return candidate


def _week_start(day: date) -> date:
    return day - timedelta(days=weekday_sunday_first(day))


def _in_active_period(cfg: CustomConfig, day: date, origin: date) -> bool:
    if cfg.frequency == 1:
        return True
    if cfg.unit == "days":
        distance = (day - origin).days
    elif cfg.unit == "weeks":
        distance = (_week_start(day) - _week_start(origin)).days // 7
    elif cfg.unit == "months":
        distance = _month_index(day) - _month_index(origin)
    else:
        distance = day.year - origin.year
    return distance % cfg.frequency == 0


def _matches_refinements(cfg: CustomConfig, day: date) -> bool:
    if cfg.days_of_week and weekday_sunday_first(day) not in cfg.days_of_week:
        return False
    if cfg.days_of_month and day.day not in cfg.days_of_month:
        return False
    if cfg.months_of_year and day.month not in cfg.months_of_year:
        return False
    return True


def _next_custom_refined(
    cfg: CustomConfig,
    from_date: date,
    origin: Optional[date],
    earliest: Optional[date],
    max_scan_years: int,
) -> date:
    origin = origin or from_date
    day = from_date + timedelta(days=1)
    if earliest is not None and day < earliest:
        day = earliest
    limit = day + relativedelta(years=max_scan_years)
    while day <= limit:
        if _matches_refinements(cfg, day) and _in_active_period(cfg, day, origin):
            return day
        day += timedelta(days=1)
    raise ComputationError(
        f"no date matches the custom pattern within {max_scan_years} years of {from_date.isoformat()}"
    )


def next_occurrence(
    pattern: PatternLike,
    from_date: Union[date, datetime],
    *,
    anchor: Optional[date] = None,
    max_scan_years: int = DEFAULT_SCAN_YEARS,
) -> date:
    """
    Next date strictly after ``from_date`` implied by the pattern.

    Accepts a stored pattern or a bare config block. A stored pattern's cycle
    runs through its ``anchor_date`` and never yields dates before its
    ``start_date``; ``anchor`` plays the start date's role for a bare config.
    End conditions are not applied here, see ``is_exhausted``.
    Raises ComputationError when a custom pattern has no qualifying day within
    ``max_scan_years``.
    """
    origin = earliest = anchor
    if isinstance(pattern, RecurrencePattern):
        cfg = pattern.config
        if anchor is None:
            origin = pattern.anchor_date
            earliest = pattern.start_date
    else:
        cfg = pattern
    from_date = _as_date(from_date)

    if isinstance(cfg, MonthlyConfig):
        return _next_monthly(cfg, from_date, origin, earliest)
    if isinstance(cfg, QuarterlyConfig):
        return _next_quarterly(cfg, from_date, origin, earliest)
    if isinstance(cfg, YearlyConfig):
        return _next_yearly(cfg, from_date, origin, earliest)
    if isinstance(cfg, CustomConfig):
        if cfg.has_refinements:
            return _next_custom_refined(cfg, from_date, origin, earliest, max_scan_years)
        return _next_custom_plain(cfg, from_date, origin, earliest)
    raise TypeError(f"unsupported pattern config: {type(cfg).__name__}")


def upcoming_occurrences(
    pattern: PatternLike,
    from_date: Union[date, datetime],
    count: int,
    *,
    max_scan_years: int = DEFAULT_SCAN_YEARS,
) -> List[date]:
    """``count`` consecutive occurrences, each searched from the previous one."""
    occurrences: List[date] = []
    current = _as_date(from_date)
    for _ in range(count):
        current = next_occurrence(pattern, current, max_scan_years=max_scan_years)
        occurrences.append(current)
    return occurrences


def is_exhausted(pattern: RecurrencePattern, next_date: date) -> bool:
    """True when the end condition rules out ``next_date``."""
    end = pattern.end_condition
    if isinstance(end, EndByDate):
        return next_date > end.end_date
    if isinstance(end, EndAfterOccurrences):
        return pattern.occurrence_count >= end.occurrences
    return False
