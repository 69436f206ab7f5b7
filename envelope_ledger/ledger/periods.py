"""Period helpers. A period is a month key in YYYY-MM format."""

from datetime import date, datetime, timedelta


def period_of(moment: date | datetime) -> str:
    """Period key a date or datetime falls in."""
    return moment.strftime("%Y-%m")


def parse_period(period: str) -> date:
    """
    First day of a period.

    Raises:
        ValueError: If the period isn't a valid YYYY-MM key.
    """
    return datetime.strptime(period, "%Y-%m").date()


def previous_period(period: str) -> str:
    """Period immediately before the given one."""
    first = parse_period(period)
    return period_of(first - timedelta(days=1))


def period_range(period: str) -> tuple[str, str, str]:
    """
    Calculate date range and label for a period.

    Returns:
        Tuple of (since_date, until_date, label) where:
        - since_date: First day of the period (YYYY-MM-DD)
        - until_date: First day of the next period (YYYY-MM-DD)
        - label: Human-readable month (e.g., "January 2025")
    """
    first = parse_period(period)
    next_first = (first.replace(day=28) + timedelta(days=4)).replace(day=1)
    return first.isoformat(), next_first.isoformat(), first.strftime("%B %Y")
