"""
Buffer-day reconciliation.

Records are fetched for the report window padded by one day on each side.
Settlement documents can straddle midnight, so the padding days are used to
decide which boundary lines belong to the window, with the document number
as the only join key:

1. split into main (inside the window), prev buffer (start - 1), next buffer
   (end + 1); anything else is dropped;
2. main_docs = document numbers present in main;
3. next_docs = document numbers present in the next buffer; main lines of
   those documents spilled over from the next period and are removed;
4. remaining_main_docs = document numbers left in filtered main;
5. next buffer lines of a remaining main document are promoted;
6. prev buffer lines of a main document (pre-filter) are promoted.

Empty document numbers never match anything. Each stage is kept as an
immutable snapshot in ``ReconciliationResult``.
"""

from collections import Counter
from datetime import date, timedelta
from enum import Enum
from typing import Any, FrozenSet, Iterable, List, Sequence, Tuple, Union

from wb_finance_report.core.models import ReconciliationResult, date_part
from wb_finance_report.utils.logger import get_logger
from wb_finance_report.utils.exceptions import ValidationError


logger = get_logger(__name__)

DateLike = Union[str, date]


class PrevBufferPolicy(Enum):
    """Admission rule for lines of the day before the window."""
    MATCH_MAIN = "match_main"  # документ встречается в основном периоде
    REQUIRE_REPEATED = "require_repeated"  # плюс не менее двух строк в буферном дне

    @classmethod
    def from_value(cls, value: Union[str, "PrevBufferPolicy", None]) -> "PrevBufferPolicy":
        if isinstance(value, cls):
            return value
        if not value:
            return cls.MATCH_MAIN
        try:
            return cls(str(value).lower())
        except ValueError:
            raise ValidationError(
                f"Unknown previous buffer policy: {value}",
                field="prev_buffer_policy",
                value=value,
                expected_type="match_main | require_repeated"
            )


def _to_date(value: DateLike, field_name: str) -> date:
    if isinstance(value, date):
        return value
    text = date_part(value)
    try:
        return date.fromisoformat(text)
    except ValueError:
        raise ValidationError(
            f"Invalid date: {value!r}",
            field=field_name,
            value=value,
            expected_type="YYYY-MM-DD"
        )


def padded_window(window_start: DateLike, window_end: DateLike) -> Tuple[str, str]:
    """
    Return the fetch window: one buffer day before and after the report window.

    Args:
        window_start: First day of the report window
        window_end: Last day of the report window

    Returns:
        (start - 1 day, end + 1 day) as ISO strings
    """
    start = _to_date(window_start, "window_start")
    end = _to_date(window_end, "window_end")
    return (start - timedelta(days=1)).isoformat(), (end + timedelta(days=1)).isoformat()


def _document(record: Any) -> str:
    value = getattr(record, "document_number", "")
    if value is None:
        return ""
    return str(value).strip()


def _record_date(record: Any) -> str:
    return date_part(getattr(record, "date", ""))


def _documents(records: Iterable[Any]) -> FrozenSet[str]:
    return frozenset(doc for doc in (_document(r) for r in records) if doc)


def partition(records: Iterable[Any], window_start: DateLike,
              window_end: DateLike) -> Tuple[Tuple[Any, ...], Tuple[Any, ...], Tuple[Any, ...], int]:
    """
    Split records into (main, prev_buffer, next_buffer, dropped_count).

    ISO date strings compare lexicographically, so no parsing per record.
    """
    start = _to_date(window_start, "window_start")
    end = _to_date(window_end, "window_end")
    if start > end:
        raise ValidationError(
            "Window start is after window end",
            field="window_start",
            value=f"{start.isoformat()} > {end.isoformat()}"
        )

    start_str, end_str = start.isoformat(), end.isoformat()
    prev_str, next_str = padded_window(start, end)

    main, prev_buffer, next_buffer = [], [], []
    dropped = 0
    for record in records:
        record_date = _record_date(record)
        if start_str <= record_date <= end_str:
            main.append(record)
        elif record_date == prev_str:
            prev_buffer.append(record)
        elif record_date == next_str:
            next_buffer.append(record)
        else:
            dropped += 1

    return tuple(main), tuple(prev_buffer), tuple(next_buffer), dropped


def remove_spillover(main: Sequence[Any], next_docs: FrozenSet[str]) -> Tuple[Any, ...]:
    """Drop main lines whose (non-empty) document also appears in the next buffer day."""
    return tuple(r for r in main if not (_document(r) and _document(r) in next_docs))


def promote_next_buffer(next_buffer: Sequence[Any],
                        remaining_main_docs: FrozenSet[str]) -> Tuple[Any, ...]:
    return tuple(r for r in next_buffer if _document(r) and _document(r) in remaining_main_docs)


def promote_prev_buffer(prev_buffer: Sequence[Any], main_docs: FrozenSet[str],
                        policy: PrevBufferPolicy = PrevBufferPolicy.MATCH_MAIN) -> Tuple[Any, ...]:
    """
    Select previous-day lines that continue a document of the window.

    Args:
        prev_buffer: Lines dated window_start - 1
        main_docs: Documents of the unfiltered main set
        policy: MATCH_MAIN or REQUIRE_REPEATED (document must have >= 2
            lines in the buffer day)
    """
    line_counts = Counter(_document(r) for r in prev_buffer)

    def admitted(record: Any) -> bool:
        doc = _document(record)
        if not doc or doc not in main_docs:
            return False
        if policy is PrevBufferPolicy.REQUIRE_REPEATED:
            return line_counts[doc] >= 2
        return True

    return tuple(r for r in prev_buffer if admitted(r))


def reconcile_stages(records: Iterable[Any], window_start: DateLike, window_end: DateLike,
                     policy: Union[PrevBufferPolicy, str, None] = PrevBufferPolicy.MATCH_MAIN
                     ) -> ReconciliationResult:
    """
    Run buffer-day reconciliation and keep every intermediate stage.

    Args:
        records: Records fetched for the padded window; any objects with
            ``date`` and ``document_number`` attributes
        window_start: First day of the report window
        window_end: Last day of the report window
        policy: Previous buffer admission rule

    Returns:
        ReconciliationResult with all stage snapshots

    Raises:
        ValidationError: If a window bound is not a valid date or start > end
    """
    policy = PrevBufferPolicy.from_value(policy)

    main, prev_buffer, next_buffer, dropped = partition(records, window_start, window_end)

    main_docs = _documents(main)
    next_docs = _documents(next_buffer)
    filtered_main = remove_spillover(main, next_docs)
    remaining_main_docs = _documents(filtered_main)
    next_added = promote_next_buffer(next_buffer, remaining_main_docs)
    prev_added = promote_prev_buffer(prev_buffer, main_docs, policy)

    result = ReconciliationResult(
        main=main,
        prev_buffer=prev_buffer,
        next_buffer=next_buffer,
        main_docs=main_docs,
        next_docs=next_docs,
        filtered_main=filtered_main,
        remaining_main_docs=remaining_main_docs,
        next_added=next_added,
        prev_added=prev_added,
        dropped_outside=dropped,
    )

    logger.info(
        f"Buffer-day reconciliation ({policy.value}): main={len(main)}, "
        f"prev={len(prev_buffer)}, next={len(next_buffer)}, "
        f"excluded={result.excluded_from_main}, +next={len(next_added)}, "
        f"+prev={len(prev_added)}, outside={dropped}"
    )
    return result


def reconcile(records: Iterable[Any], window_start: DateLike, window_end: DateLike,
              policy: Union[PrevBufferPolicy, str, None] = PrevBufferPolicy.MATCH_MAIN) -> List[Any]:
    """
    Return the canonical in-window record set.

    Result order: filtered main, promoted next-buffer lines, promoted
    prev-buffer lines. Without buffer-day records the result equals the
    main set.
    """
    return reconcile_stages(records, window_start, window_end, policy).result
