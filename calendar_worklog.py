#!/usr/bin/env python3
"""Build a per-worker worklog sheet from structured Google Calendar event titles."""

from __future__ import annotations

import argparse
import json
import locale
import logging
import sys
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from pathlib import Path
from zoneinfo import ZoneInfo

from title_grammar import DEFAULT_FALLBACK_WORKER
from worklog_aggregation import (
    DEFAULT_EXCLUDED_COLOR,
    BatchResult,
    WorkRecord,
    collect_work_records,
    order_records,
)
from worklog_sheet import (
    build_sheet_rows,
    format_minutes_hhmm,
    sheet_title_for_window,
    write_worklog_sheet,
)


CALENDAR_SCOPE = "https://www.googleapis.com/auth/calendar.readonly"
SHEETS_SCOPE = "https://www.googleapis.com/auth/spreadsheets"
SCOPES = [CALENDAR_SCOPE, SHEETS_SCOPE]
DEFAULT_TIMEZONE = "Asia/Tokyo"

logger = logging.getLogger(__name__)


class WorklogError(Exception):
    """User-facing execution error."""


@dataclass(frozen=True)
class ReportWindow:
    start: datetime
    end: datetime


@dataclass(frozen=True)
class WorklogOptions:
    fallback_worker: str = DEFAULT_FALLBACK_WORKER
    excluded_color: str | None = DEFAULT_EXCLUDED_COLOR
    worker_names: dict[str, str] = field(default_factory=dict)
    calendar_id: str = "primary"
    spreadsheet_id: str | None = None
    timezone: str = DEFAULT_TIMEZONE

    def __post_init__(self):
        if not isinstance(self.fallback_worker, str) or not self.fallback_worker.strip():
            raise WorklogError("fallback_worker must be a non-empty string.")
        if self.excluded_color is not None and not isinstance(self.excluded_color, str):
            raise WorklogError("excluded_color must be a string colorId.")
        if not isinstance(self.worker_names, dict) or not all(
            isinstance(key, str) and isinstance(value, str)
            for key, value in self.worker_names.items()
        ):
            raise WorklogError("worker_names must map worker codes to display names.")
        if not self.calendar_id:
            raise WorklogError("calendar_id must not be empty.")
        load_timezone(self.timezone)


def load_timezone(timezone_name: str) -> ZoneInfo:
    try:
        return ZoneInfo(timezone_name)
    except Exception as exc:  # pragma: no cover - platform tz db issue
        raise WorklogError(f"Invalid timezone: {timezone_name}") from exc


def load_options(path: str | None = None, **overrides) -> WorklogOptions:
    """Read options from a JSON file, then apply overrides that are not None."""
    data: dict = {}
    if path:
        try:
            with open(path, encoding="utf-8") as config_file:
                data = json.load(config_file)
        except FileNotFoundError as exc:
            raise WorklogError(f"Config file not found: {path}") from exc
        except json.JSONDecodeError as exc:
            raise WorklogError(f"Config file is not valid JSON: {exc}") from exc
        if not isinstance(data, dict):
            raise WorklogError("Config file must contain a JSON object.")

    known = set(WorklogOptions.__dataclass_fields__)
    unknown = sorted(set(data) - known)
    if unknown:
        raise WorklogError(f"Unknown config option(s): {', '.join(unknown)}")

    data.update({key: value for key, value in overrides.items() if value is not None})
    return WorklogOptions(**data)


def parse_month_window(month: str, timezone_name: str) -> ReportWindow:
    parts = month.split("-")
    if len(parts) != 2:
        raise WorklogError("--month must be in YYYY-MM format.")
    try:
        year = int(parts[0])
        month_value = int(parts[1])
    except ValueError as exc:
        raise WorklogError("--month must be in YYYY-MM format.") from exc
    if month_value < 1 or month_value > 12:
        raise WorklogError("--month must be in YYYY-MM format.")

    tz = load_timezone(timezone_name)
    start = datetime(year, month_value, 1, 0, 0, 0, tzinfo=tz)
    if month_value == 12:
        end = datetime(year + 1, 1, 1, 0, 0, 0, tzinfo=tz)
    else:
        end = datetime(year, month_value + 1, 1, 0, 0, 0, tzinfo=tz)
    return ReportWindow(start=start, end=end)


def parse_date_window(start_text: str, end_text: str, timezone_name: str) -> ReportWindow:
    """Turn an inclusive YYYY-MM-DD date range into a half-open window."""
    try:
        first_day = date.fromisoformat(start_text)
        last_day = date.fromisoformat(end_text)
    except ValueError as exc:
        raise WorklogError("--start and --end must be in YYYY-MM-DD format.") from exc
    if last_day < first_day:
        raise WorklogError("--end must not be before --start.")

    tz = load_timezone(timezone_name)
    start = datetime(first_day.year, first_day.month, first_day.day, tzinfo=tz)
    end_day = last_day + timedelta(days=1)
    end = datetime(end_day.year, end_day.month, end_day.day, tzinfo=tz)
    return ReportWindow(start=start, end=end)


def previous_month(now: datetime) -> str:
    first_of_month = now.date().replace(day=1)
    last_month = first_of_month - timedelta(days=1)
    return f"{last_month.year:04d}-{last_month.month:02d}"


def resolve_aggregation_window(
    month_window: ReportWindow,
    include_through_month_end: bool,
    now: datetime | None = None,
) -> ReportWindow:
    if include_through_month_end:
        return month_window

    current = now or datetime.now(month_window.start.tzinfo)
    current_in_tz = current.astimezone(month_window.start.tzinfo)
    capped_end = min(month_window.end, current_in_tz)
    return ReportWindow(start=month_window.start, end=capped_end)


def build_google_services():
    try:
        from google.auth.transport.requests import Request
        from google.oauth2.credentials import Credentials
        from google_auth_oauthlib.flow import InstalledAppFlow
        from googleapiclient.discovery import build
    except ImportError as exc:
        raise WorklogError("Missing dependencies. Run: pip install -e .") from exc

    creds = None
    base_dir = Path(__file__).resolve().parent
    token_path = base_dir / "token.json"
    credentials_path = base_dir / "credentials.json"

    try:
        creds = Credentials.from_authorized_user_file(str(token_path), SCOPES)
    except (FileNotFoundError, ValueError):
        creds = None

    if not creds or not creds.valid:
        if creds and creds.expired and creds.refresh_token:
            try:
                creds.refresh(Request())
            except Exception as exc:
                # Revoked refresh tokens cannot recover; mint a new one interactively.
                if "invalid_grant" in str(exc):
                    creds = None
                else:
                    raise WorklogError(f"Failed to refresh OAuth token: {exc}") from exc

        if not creds or not creds.valid:
            try:
                flow = InstalledAppFlow.from_client_secrets_file(str(credentials_path), SCOPES)
            except FileNotFoundError as exc:
                raise WorklogError(
                    "credentials.json not found. Download OAuth client credentials first."
                ) from exc
            creds = flow.run_local_server(port=0)

        with open(token_path, "w", encoding="utf-8") as token_file:
            token_file.write(creds.to_json())

    calendar = build("calendar", "v3", credentials=creds)
    sheets = build("sheets", "v4", credentials=creds)
    return calendar, sheets


def fetch_events_for_window(service, window: ReportWindow, calendar_id: str = "primary") -> list[dict]:
    if window.end <= window.start:
        return []

    events: list[dict] = []
    page_token = None

    while True:
        response = (
            service.events()
            .list(
                calendarId=calendar_id,
                timeMin=window.start.isoformat(),
                timeMax=window.end.isoformat(),
                singleEvents=True,
                showDeleted=False,
                pageToken=page_token,
                maxResults=2500,
            )
            .execute()
        )
        events.extend(response.get("items", []))
        page_token = response.get("nextPageToken")
        if not page_token:
            break
    return events


def run_batch(
    calendar_service,
    sheets_service,
    window: ReportWindow,
    options: WorklogOptions,
    dry_run: bool = False,
) -> tuple[str, BatchResult, list[WorkRecord]]:
    """Fetch, aggregate and (unless dry_run) write one window.

    Nothing is written until the whole window has been aggregated, and the
    output tab is replaced on every run.
    """
    events = fetch_events_for_window(calendar_service, window, options.calendar_id)
    logger.info("Fetched %d events", len(events))
    result = collect_work_records(
        events,
        fallback_worker=options.fallback_worker,
        excluded_color=options.excluded_color,
    )
    records = order_records(result.records)
    title = sheet_title_for_window(window.start, window.end)

    if not dry_run:
        if not options.spreadsheet_id:
            raise WorklogError("spreadsheet_id is required unless --dry-run is given.")
        write_worklog_sheet(
            sheets_service,
            options.spreadsheet_id,
            title,
            records,
            worker_names=options.worker_names,
        )
    return title, result, records


def parse_args(argv: list[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Aggregate structured Google Calendar titles into a worklog sheet."
    )
    parser.add_argument("--month", help="Target month in YYYY-MM (default: previous month)")
    parser.add_argument("--start", help="First date in YYYY-MM-DD (use with --end)")
    parser.add_argument("--end", help="Last date in YYYY-MM-DD, inclusive (use with --start)")
    parser.add_argument("--config", help="Path to a JSON options file")
    parser.add_argument(
        "--timezone",
        help=f"IANA timezone name (default: {DEFAULT_TIMEZONE})",
    )
    parser.add_argument("--calendar-id", help="Calendar to read (default: primary)")
    parser.add_argument("--spreadsheet-id", help="Spreadsheet that receives the worklog tab")
    parser.add_argument(
        "--include-through-month-end",
        action="store_true",
        help="Include events up to the end of the month (default caps at current time)",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Print the rows instead of writing them to Google Sheets",
    )
    parser.add_argument("--verbose", action="store_true", help="Show debug logging")
    return parser.parse_args(argv)


def resolve_window(
    args: argparse.Namespace, timezone_name: str, now: datetime | None = None
) -> ReportWindow:
    if args.start or args.end:
        if args.month:
            raise WorklogError("--month cannot be combined with --start/--end.")
        if not (args.start and args.end):
            raise WorklogError("--start and --end must be given together.")
        window = parse_date_window(args.start, args.end, timezone_name)
    else:
        current = now or datetime.now(load_timezone(timezone_name))
        month = args.month or previous_month(current)
        window = resolve_aggregation_window(
            month_window=parse_month_window(month, timezone_name),
            include_through_month_end=args.include_through_month_end,
            now=current,
        )

    if window.end <= window.start:
        raise WorklogError(
            f"Window starting {window.start.date().isoformat()} has not begun yet; "
            "use --include-through-month-end to report a future month."
        )
    return window


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv if argv is not None else sys.argv[1:])
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )
    try:
        locale.setlocale(locale.LC_COLLATE, "")
    except locale.Error:
        logger.debug("Falling back to the C collation order")

    try:
        options = load_options(
            args.config,
            timezone=args.timezone,
            calendar_id=args.calendar_id,
            spreadsheet_id=args.spreadsheet_id,
        )
        window = resolve_window(args, options.timezone)
        calendar_service, sheets_service = build_google_services()
        title, result, records = run_batch(
            calendar_service, sheets_service, window, options, dry_run=args.dry_run
        )
    except WorklogError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1
    except Exception as exc:
        print(f"Error: Google API request failed: {exc}", file=sys.stderr)
        return 1

    total_minutes = result.total_minutes
    print(f"Window: {window.start.strftime('%Y-%m-%d %H:%M')} -> {window.end.strftime('%Y-%m-%d %H:%M %Z')}")
    print(f"Sheet: {title}")
    print(f"Counted events: {result.event_count}")
    print(f"Rejected titles: {len(result.rejected_titles)}")
    print(f"Records: {len(records)}")
    print(f"Total: {format_minutes_hhmm(total_minutes)} ({total_minutes / 60:.2f}h)")
    if args.dry_run:
        for row in build_sheet_rows(records, options.worker_names):
            print("\t".join(str(cell) for cell in row))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
