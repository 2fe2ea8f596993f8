"""Time-range resolution and aggregation bucket selection.

Pure functions: every computation takes ``now`` explicitly so tests can pin it.
"""

import calendar
import re
from datetime import datetime, timedelta, timezone

from dexa.exceptions import InvalidRequestError
from dexa.models import PredefinedPeriod, TimeFrame, TimeRange

# First year for which market data exists; lower bound of PredefinedPeriod.ALL
START_YEAR = 2022

_RFC3339_RE = re.compile(
    r"^\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}(\.\d+)?(Z|[+-]\d{2}:\d{2})$"
)

# (max window length, bucket width), checked in order
_BUCKET_WIDTHS: list[tuple[timedelta, timedelta]] = [
    (timedelta(hours=3), timedelta(minutes=1)),
    (timedelta(hours=24), timedelta(hours=1)),
    (timedelta(days=7), timedelta(hours=6)),
    (timedelta(days=30), timedelta(hours=12)),
    (timedelta(days=365), timedelta(days=1)),
]
_MAX_BUCKET_WIDTH = timedelta(days=15)


def parse_rfc3339(value: str) -> datetime:
    """Parse an RFC3339 timestamp into an aware datetime.

    Raises InvalidRequestError if the string is not RFC3339.
    """
    if not _RFC3339_RE.match(value):
        raise InvalidRequestError(f"{value!r} must be valid RFC3339 format")
    try:
        return datetime.fromisoformat(value)
    except ValueError:
        raise InvalidRequestError(f"{value!r} must be valid RFC3339 format") from None


def subtract_months(moment: datetime, months: int) -> datetime:
    """Calendar-month subtraction, clamping the day to the target month's length."""
    month_index = moment.year * 12 + (moment.month - 1) - months
    year, month = divmod(month_index, 12)
    month += 1
    day = min(moment.day, calendar.monthrange(year, month)[1])
    return moment.replace(year=year, month=month, day=day)


def validate_time_range(time_range: TimeRange) -> None:
    """Check that exactly one variant is set and that it is well formed."""
    predefined = time_range.predefined_period
    custom = time_range.custom_period

    if predefined is None and custom is None:
        raise InvalidRequestError(
            "both predefined period and custom period cant be null"
        )
    if predefined is not None and custom is not None:
        raise InvalidRequestError(
            "both predefined period and custom period provided, please provide only one"
        )

    if custom is not None:
        if not custom.start_date:
            raise InvalidRequestError("custom period start date is required")
        parse_rfc3339(custom.start_date)
        if custom.end_date:
            parse_rfc3339(custom.end_date)

    if predefined is not None:
        try:
            PredefinedPeriod(predefined)
        except ValueError:
            raise InvalidRequestError(
                f"predefined period must be between {PredefinedPeriod.LAST_HOUR} "
                f"and {PredefinedPeriod.ALL}, got {predefined}"
            ) from None


def resolve_time_range(
    time_range: TimeRange, now: datetime
) -> tuple[datetime, datetime]:
    """Convert a TimeRange into concrete (start, end) instants.

    Args:
        time_range: Caller-supplied window, exactly one variant set.
        now: Reference instant (timezone-aware).

    Returns:
        (start, end). For predefined periods end is always ``now``.

    Raises:
        InvalidRequestError: Both or neither variant set, or a bad date string.
    """
    validate_time_range(time_range)

    custom = time_range.custom_period
    if custom is not None:
        start = parse_rfc3339(custom.start_date)
        end = parse_rfc3339(custom.end_date) if custom.end_date else now
        return start, end

    period = PredefinedPeriod(time_range.predefined_period)
    if period is PredefinedPeriod.LAST_HOUR:
        start = now - timedelta(minutes=60)
    elif period is PredefinedPeriod.LAST_DAY:
        start = now - timedelta(days=1)
    elif period is PredefinedPeriod.LAST_MONTH:
        start = subtract_months(now, 1)
    elif period is PredefinedPeriod.LAST_THREE_MONTHS:
        start = subtract_months(now, 3)
    elif period is PredefinedPeriod.YEAR_TO_DATE:
        start = datetime(now.year, 1, 1, tzinfo=timezone.utc)
    else:
        start = datetime(START_YEAR, 1, 1, tzinfo=timezone.utc)

    return start, now


def select_bucket_width(start: datetime, end: datetime) -> timedelta:
    """Pick an aggregation bucket width that bounds the number of samples."""
    window = end - start
    for max_window, width in _BUCKET_WIDTHS:
        if window <= max_window:
            return width
    return _MAX_BUCKET_WIDTH


def resolve_bucket_width(
    start: datetime, end: datetime, time_frame: TimeFrame | None
) -> timedelta:
    """Explicit time frame width if given, otherwise chosen from the window."""
    if time_frame is not None:
        return TimeFrame(time_frame).width
    return select_bucket_width(start, end)


def ensure_window_exceeds_bucket(
    start: datetime, end: datetime, bucket_width: timedelta
) -> None:
    """Raise InvalidRequestError unless the window is longer than one bucket."""
    if end - start <= bucket_width:
        raise InvalidRequestError(
            f"time range ({end - start}) must be longer than the time frame ({bucket_width})"
        )
