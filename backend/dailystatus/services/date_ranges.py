"""Calendar-day helpers and the date filters used by status listing and reports."""
import calendar
from datetime import date, datetime, time, timedelta

from ..core.errors import ValidationError


def day_start(value: date | datetime) -> datetime:
    """Start of the calendar day, as the naive datetime stored in `statuses.date`."""
    if isinstance(value, datetime):
        value = value.date()
    return datetime.combine(value, time.min)


def parse_day(value: str | None, field: str) -> date | None:
    if value is None or value == "":
        return None
    try:
        return date.fromisoformat(value[:10])
    except ValueError:
        raise ValidationError(f"Invalid {field}", {field: "Expected YYYY-MM-DD"})


def month_bounds(month: str) -> tuple[date, date]:
    """First and last day of a YYYY-MM month."""
    try:
        year_str, month_str = month.split("-")
        year, month_num = int(year_str), int(month_str)
        last = calendar.monthrange(year, month_num)[1]
    except (ValueError, calendar.IllegalMonthError):
        raise ValidationError("Invalid month", {"month": "Expected YYYY-MM"})
    return date(year, month_num, 1), date(year, month_num, last)


def resolve_report_range(
    start: date | None = None,
    end: date | None = None,
    month: str | None = None,
    today: date | None = None,
) -> tuple[date, date]:
    """
    Inclusive report range. Precedence: start+end, start only (through today),
    end only (from the first of that month), month, current month.
    """
    today = today or date.today()
    if start and end:
        first, last = start, end
    elif start:
        first, last = start, today
    elif end:
        first, last = end.replace(day=1), end
    elif month:
        first, last = month_bounds(month)
    else:
        first, last = month_bounds(today.strftime("%Y-%m"))
    if first > last:
        raise ValidationError("startDate must not be after endDate")
    return first, last


def resolve_status_window(
    on: date | None = None,
    start: date | None = None,
    end: date | None = None,
    month: str | None = None,
    today: date | None = None,
) -> tuple[date | None, date | None]:
    """
    Inclusive window for status listing; either bound may be open.
    Precedence: single date, start+end, start only (through today),
    end only (open start), month.
    """
    today = today or date.today()
    if on:
        return on, on
    if start and end:
        return start, end
    if start:
        return start, today
    if end:
        return None, end
    if month:
        return month_bounds(month)
    return None, None


def date_query(first: date | None, last: date | None) -> dict | None:
    """MongoDB condition for `date` within the inclusive day window."""
    condition = {}
    if first:
        condition["$gte"] = day_start(first)
    if last:
        condition["$lt"] = day_start(last + timedelta(days=1))
    return condition or None


def days_between(first: date, last: date) -> list[date]:
    return [first + timedelta(days=i) for i in range((last - first).days + 1)]
