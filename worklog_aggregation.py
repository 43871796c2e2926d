"""Merge parsed calendar events into per-worker work records."""

from __future__ import annotations

import locale
import logging
import math
from dataclasses import dataclass, field
from datetime import datetime

from title_grammar import DEFAULT_FALLBACK_WORKER, ParsedTitle, parse_title


logger = logging.getLogger(__name__)

# Calendar colorId for "Graphite"; events painted with it are not work.
DEFAULT_EXCLUDED_COLOR = "8"

RecordKey = tuple[str, str, str, str]


@dataclass
class WorkRecord:
    work_name: str
    client_name: str
    task: str
    worker: str
    duration_minutes: int = 0
    source_color: str = ""

    @property
    def key(self) -> RecordKey:
        return (self.work_name, self.client_name, self.task, self.worker)


@dataclass
class BatchResult:
    records: list[WorkRecord]
    event_count: int = 0
    rejected_titles: list[str] = field(default_factory=list)

    @property
    def total_minutes(self) -> int:
        return sum(record.duration_minutes for record in self.records)


def parse_event_datetime(value: str) -> datetime:
    # Google may return a trailing "Z", which datetime.fromisoformat does not parse directly.
    normalized = value.replace("Z", "+00:00")
    return datetime.fromisoformat(normalized)


def is_all_day_event(event: dict) -> bool:
    return "date" in event.get("start", {}) or "date" in event.get("end", {})


def event_minutes(start: datetime, end: datetime) -> int:
    """Whole minutes between two instants, ties rounded away from zero.

    Non-positive results are returned as-is; dropping them is up to the caller.
    """
    minutes = (end - start).total_seconds() / 60.0
    return int(math.copysign(math.floor(abs(minutes) + 0.5), minutes))


def accumulate(
    table: dict[RecordKey, WorkRecord],
    parsed: ParsedTitle,
    worker: str,
    minutes: int,
    color: str,
) -> WorkRecord:
    key = (parsed.work_name, parsed.client_name, parsed.task, worker)
    record = table.get(key)
    if record is None:
        record = WorkRecord(
            work_name=parsed.work_name,
            client_name=parsed.client_name,
            task=parsed.task,
            worker=worker,
            duration_minutes=minutes,
            source_color=color,
        )
        table[key] = record
    else:
        record.duration_minutes += minutes
    return record


def collect_work_records(
    events: list[dict],
    fallback_worker: str = DEFAULT_FALLBACK_WORKER,
    excluded_color: str | None = DEFAULT_EXCLUDED_COLOR,
) -> BatchResult:
    """Aggregate one batch of Calendar API events.

    An event naming several workers contributes its full duration to each of
    them, so the sum over all records can exceed the booked calendar time.
    """
    table: dict[RecordKey, WorkRecord] = {}
    result = BatchResult(records=[])

    for event in events:
        if event.get("status") == "cancelled":
            continue
        if is_all_day_event(event):
            continue
        color = event.get("colorId", "")
        if excluded_color and color == excluded_color:
            continue

        raw_title = event.get("summary", "")
        parsed = parse_title(raw_title, fallback_worker)
        if parsed is None:
            logger.warning("Skipping event with unrecognized title: %r", raw_title)
            result.rejected_titles.append(raw_title)
            continue

        start_raw = event.get("start", {}).get("dateTime")
        end_raw = event.get("end", {}).get("dateTime")
        if not start_raw or not end_raw:
            logger.warning("Skipping event without start or end time: %r", raw_title)
            continue
        try:
            minutes = event_minutes(
                parse_event_datetime(start_raw), parse_event_datetime(end_raw)
            )
        except ValueError:
            logger.warning("Skipping event with invalid time range: %r", raw_title)
            continue
        if minutes <= 0:
            continue

        result.event_count += 1
        for worker in parsed.workers:
            accumulate(table, parsed, worker, minutes, color)

    result.records = list(table.values())
    return result


def record_sort_key(record: WorkRecord) -> str:
    return "|".join(record.key)


def order_records(records: list[WorkRecord]) -> list[WorkRecord]:
    # Fields may contain "|", so the key tuple, not the joined string, breaks ties.
    return sorted(
        records,
        key=lambda record: (locale.strxfrm(record_sort_key(record)), record.key),
    )
