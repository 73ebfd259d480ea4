"""
Natural language due dates.
Converts phrases like "tomorrow", "next Monday", "in 3 days" to YYYY-MM-DD.
"""
import re
from datetime import date, timedelta
from typing import Optional

WEEKDAYS = ["monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday"]
MONTHS = ["january", "february", "march", "april", "may", "june",
          "july", "august", "september", "october", "november", "december"]
MONTH_ABBR = [m[:3] for m in MONTHS]

_MONTH_DAY = re.compile(
    r"\b([a-z]+)\s+(\d{1,2})(?:st|nd|rd|th)?(?:,?\s*(\d{4}))?\b"
)
_DAY_MONTH = re.compile(
    r"\b(\d{1,2})(?:st|nd|rd|th)?\s+([a-z]+)(?:,?\s*(\d{4}))?\b"
)
_US_DATE = re.compile(r"^(\d{1,2})/(\d{1,2})(?:/(\d{4}))?$")


def _next_weekday(today: date, weekday: int) -> date:
    """Next occurrence of weekday strictly after today."""
    days_until = (weekday - today.weekday()) % 7 or 7
    return today + timedelta(days=days_until)


def _month_index(name: str) -> Optional[int]:
    if name in MONTHS:
        return MONTHS.index(name)
    if name in MONTH_ABBR:
        return MONTH_ABBR.index(name)
    return None


def _calendar(year: int, month_index: int, day: int, explicit_year: bool, today: date) -> Optional[date]:
    try:
        result = date(year, month_index + 1, day)
    except ValueError:
        return None
    # Past dates without an explicit year roll to next year
    if not explicit_year and result < today:
        try:
            result = result.replace(year=result.year + 1)
        except ValueError:
            return None
    return result


def parse_natural_date(text: str, today: Optional[date] = None) -> Optional[str]:
    """Return YYYY-MM-DD for a recognised phrase, else None."""
    today = today or date.today()
    lowered = text.lower().strip()

    if lowered == "today":
        return today.isoformat()
    if lowered == "tomorrow":
        return (today + timedelta(days=1)).isoformat()
    if lowered == "yesterday":
        return (today - timedelta(days=1)).isoformat()
    if lowered in ("day after tomorrow", "overmorrow"):
        return (today + timedelta(days=2)).isoformat()

    match = re.search(r"in (\d+) days?", lowered)
    if match:
        return (today + timedelta(days=int(match.group(1)))).isoformat()
    match = re.search(r"in (\d+) weeks?", lowered)
    if match:
        return (today + timedelta(weeks=int(match.group(1)))).isoformat()

    match = re.search(r"next (" + "|".join(WEEKDAYS) + r")", lowered)
    if match:
        return _next_weekday(today, WEEKDAYS.index(match.group(1))).isoformat()

    for index, name in enumerate(WEEKDAYS):
        if lowered in (name, f"this {name}"):
            # Today counts as "this <weekday>"
            return (today + timedelta(days=(index - today.weekday()) % 7)).isoformat()

    if lowered in ("end of week", "end of the week", "eow"):
        return _next_weekday(today, 4).isoformat()
    if lowered in ("end of month", "end of the month", "eom"):
        first_of_next = (today.replace(day=28) + timedelta(days=4)).replace(day=1)
        return (first_of_next - timedelta(days=1)).isoformat()
    if lowered in ("start of next week", "next week"):
        return _next_weekday(today, 0).isoformat()
    if lowered in ("weekend", "this weekend"):
        return _next_weekday(today, 5).isoformat()

    if re.fullmatch(r"\d{4}-\d{2}-\d{2}", lowered):
        try:
            return date.fromisoformat(lowered).isoformat()
        except ValueError:
            return None

    match = _US_DATE.match(lowered)
    if match:
        year = int(match.group(3)) if match.group(3) else today.year
        try:
            return date(year, int(match.group(1)), int(match.group(2))).isoformat()
        except ValueError:
            return None

    for pattern, month_group, day_group in ((_MONTH_DAY, 1, 2), (_DAY_MONTH, 2, 1)):
        for match in pattern.finditer(lowered):
            month_index = _month_index(match.group(month_group))
            if month_index is None:
                continue
            explicit_year = match.group(3) is not None
            year = int(match.group(3)) if explicit_year else today.year
            result = _calendar(year, month_index, int(match.group(day_group)), explicit_year, today)
            return result.isoformat() if result else None

    return None


def normalize_due_date(value: str, today: Optional[date] = None) -> Optional[str]:
    """A real YYYY-MM-DD date, or the parse of a natural phrase; None when neither."""
    if not value or not value.strip():
        return None
    return parse_natural_date(value, today)
