"""
Validation of report windows and seller-supplied cost prices.
"""

import math
import re
from datetime import date, datetime, timedelta
from typing import Any, Dict, List, Mapping, Tuple, Union

from wb_finance_report.core.models import date_part
from wb_finance_report.utils.exceptions import ValidationError
from wb_finance_report.utils.logger import get_logger


logger = get_logger(__name__)

COST_PRICE_KEY = re.compile(r"^\d+-\S+$")

DateLike = Union[str, date, datetime]


def parse_report_date(value: DateLike, field: str = "date") -> date:
    """
    Parse a report window bound.

    Args:
        value: ``date``/``datetime`` or an ISO string (time part is ignored)
        field: Field name for the error message

    Returns:
        Parsed date

    Raises:
        ValidationError: If the value is not a valid date
    """
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value

    text = date_part(value)
    try:
        return date.fromisoformat(text)
    except ValueError:
        raise ValidationError(
            f"Invalid {field}: {value!r}",
            field=field,
            value=value,
            expected_type="YYYY-MM-DD"
        )


def window_days(start: DateLike, end: DateLike) -> int:
    """Whole days between two bounds, rounding partial days up."""
    if isinstance(start, datetime) and isinstance(end, datetime):
        return math.ceil((end - start).total_seconds() / 86400)
    return (parse_report_date(end, "end") - parse_report_date(start, "start")).days


def validate_report_window(start: DateLike, end: DateLike, max_days: int = 30) -> Tuple[date, date]:
    """
    Validate a realization report window.

    Raises:
        ValidationError: If start > end or the span exceeds ``max_days``
    """
    start_date = parse_report_date(start, "start")
    end_date = parse_report_date(end, "end")

    if start_date > end_date:
        raise ValidationError(
            "Report start date is after end date",
            field="start",
            value=f"{start_date.isoformat()} > {end_date.isoformat()}"
        )

    span = window_days(start, end)
    if span > max_days:
        raise ValidationError(
            f"Report window is {span} days, maximum is {max_days}",
            field="end",
            value=end_date.isoformat(),
            expected_type=f"<= {max_days} days after start"
        )

    return start_date, end_date


def clamp_window(start: DateLike, end: DateLike, max_days: int) -> Tuple[date, date]:
    """
    Shorten a window to ``max_days`` calendar days by moving its end.

    Storage and acceptance reports accept shorter windows than the
    realization report; those are clamped rather than rejected.
    """
    start_date = parse_report_date(start, "start")
    end_date = parse_report_date(end, "end")

    if (end_date - start_date).days > max_days:
        clamped = start_date + timedelta(days=max_days - 1)
        logger.warning(
            f"Window {start_date.isoformat()}..{end_date.isoformat()} exceeds {max_days} days, "
            f"clamped to {start_date.isoformat()}..{clamped.isoformat()}"
        )
        end_date = clamped

    return start_date, end_date


def split_window(start: DateLike, end: DateLike, max_days: int) -> List[Tuple[date, date]]:
    """
    Split a window into consecutive chunks no longer than ``max_days``.

    Chunks do not overlap; each one starts the day after the previous end.
    """
    start_date = parse_report_date(start, "start")
    end_date = parse_report_date(end, "end")
    step = timedelta(days=max(1, max_days))

    chunks: List[Tuple[date, date]] = []
    chunk_start = start_date
    while chunk_start <= end_date:
        chunk_end = min(chunk_start + step, end_date)
        chunks.append((chunk_start, chunk_end))
        chunk_start = chunk_end + timedelta(days=1)
    return chunks


def validate_cost_prices(mapping: Mapping[str, Any]) -> Dict[str, float]:
    """
    Keep cost prices with a "{nmId}-{barcode}" key and a numeric value.

    Values may be numbers or numeric strings (comma decimal separator is
    accepted). Invalid entries are dropped with a warning.
    """
    valid: Dict[str, float] = {}
    if not mapping:
        return valid
    if not isinstance(mapping, Mapping):
        raise ValidationError(
            "Cost prices must be an object keyed by nmId-barcode",
            field="cost_prices",
            value=type(mapping).__name__,
            expected_type="object"
        )

    dropped = 0
    for key, raw in mapping.items():
        key_text = str(key).strip()
        if not COST_PRICE_KEY.match(key_text):
            dropped += 1
            logger.warning(f"Cost price key {key!r} is not in nmId-barcode format, skipped")
            continue

        if isinstance(raw, str):
            raw = raw.strip().replace(" ", "").replace(",", ".")
        try:
            price = float(raw)
        except (TypeError, ValueError):
            dropped += 1
            logger.warning(f"Cost price for {key_text} is not a number: {raw!r}, skipped")
            continue

        if not math.isfinite(price) or price < 0:
            dropped += 1
            logger.warning(f"Cost price for {key_text} is out of range: {price}, skipped")
            continue

        valid[key_text] = price

    if dropped:
        logger.info(f"Cost prices: {len(valid)} accepted, {dropped} dropped")
    return valid
