"""Write aggregated work records and a pivot table to Google Sheets."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta

from summary_fields import (
    DEFAULT_REPORT,
    HEADER_LABELS,
    ReportDefinition,
    ResolvedReport,
    SummarizeKind,
    resolve_report,
)
from worklog_aggregation import WorkRecord


logger = logging.getLogger(__name__)

TOTAL_LABEL = "合計"

# Google Calendar event colorId -> display name.
EVENT_COLOR_NAMES = {
    "1": "Lavender",
    "2": "Sage",
    "3": "Grape",
    "4": "Flamingo",
    "5": "Banana",
    "6": "Tangerine",
    "7": "Peacock",
    "8": "Graphite",
    "9": "Blueberry",
    "10": "Basil",
    "11": "Tomato",
}

SUMMARIZE_FUNCTIONS = {
    SummarizeKind.SUM: "SUM",
    SummarizeKind.COUNT: "COUNTA",
    SummarizeKind.AVERAGE: "AVERAGE",
    SummarizeKind.MAX: "MAX",
    SummarizeKind.MIN: "MIN",
    SummarizeKind.MEDIAN: "MEDIAN",
    SummarizeKind.PRODUCT: "PRODUCT",
}

# Pivot table sits one empty column to the right of the data.
PIVOT_COLUMN_INDEX = len(HEADER_LABELS) + 1


def format_minutes_hhmm(total_minutes: int) -> str:
    hours, minutes = divmod(total_minutes, 60)
    return f"{hours:02d}:{minutes:02d}"


def sheet_title_for_window(start: datetime, end: datetime) -> str:
    """Name the output tab after the first and last calendar dates of [start, end)."""
    last_day = (end - timedelta(microseconds=1)).date()
    return f"{start.date().isoformat()}_{last_day.isoformat()}"


def build_sheet_rows(
    records: list[WorkRecord], worker_names: dict[str, str] | None = None
) -> list[list]:
    worker_names = worker_names or {}
    rows: list[list] = [list(HEADER_LABELS)]
    total_minutes = 0
    for record in records:
        total_minutes += record.duration_minutes
        rows.append(
            [
                record.work_name,
                record.client_name,
                record.task,
                worker_names.get(record.worker, record.worker),
                record.duration_minutes,
                record.duration_minutes / 60,
                EVENT_COLOR_NAMES.get(record.source_color, record.source_color),
            ]
        )
    rows.append(
        [TOTAL_LABEL, "", "", "", format_minutes_hhmm(total_minutes), total_minutes / 60, ""]
    )
    return rows


def build_pivot_table(resolved: ResolvedReport, source_sheet_id: int, row_count: int) -> dict:
    """Build a Sheets ``pivotTable`` over the first ``row_count`` rows.

    Fields that did not resolve to a column are left out of the pivot.
    """

    def group(name: str, column: int | None) -> dict | None:
        if column is None:
            logger.warning("Pivot field %r does not match any column; skipped", name)
            return None
        return {"sourceColumnOffset": column - 1, "showTotals": True, "sortOrder": "ASCENDING"}

    rows = [group(name, column) for name, column in resolved.rows]
    columns = [group(name, column) for name, column in resolved.columns]
    values = []
    for value in resolved.values:
        if value.column is None:
            logger.warning("Pivot value %r does not match any column; skipped", value.field)
            continue
        values.append(
            {
                "summarizeFunction": SUMMARIZE_FUNCTIONS[value.kind],
                "sourceColumnOffset": value.column - 1,
                "name": value.display_name,
            }
        )

    return {
        "source": {
            "sheetId": source_sheet_id,
            "startRowIndex": 0,
            "endRowIndex": row_count,
            "startColumnIndex": 0,
            "endColumnIndex": len(HEADER_LABELS),
        },
        "rows": [item for item in rows if item],
        "columns": [item for item in columns if item],
        "values": values,
        "valueLayout": "HORIZONTAL",
    }


def find_sheet_id(service, spreadsheet_id: str, title: str) -> int | None:
    response = (
        service.spreadsheets()
        .get(spreadsheetId=spreadsheet_id, fields="sheets.properties")
        .execute()
    )
    for sheet in response.get("sheets", []):
        properties = sheet.get("properties", {})
        if properties.get("title") == title:
            return properties.get("sheetId")
    return None


def replace_sheet(service, spreadsheet_id: str, title: str) -> int:
    """Delete any tab named ``title`` and add an empty one in its place."""
    requests = []
    existing_id = find_sheet_id(service, spreadsheet_id, title)
    if existing_id is not None:
        logger.info("Replacing existing sheet %r", title)
        requests.append({"deleteSheet": {"sheetId": existing_id}})
    requests.append(
        {
            "addSheet": {
                "properties": {"title": title, "gridProperties": {"frozenRowCount": 1}}
            }
        }
    )
    response = (
        service.spreadsheets()
        .batchUpdate(spreadsheetId=spreadsheet_id, body={"requests": requests})
        .execute()
    )
    return response["replies"][-1]["addSheet"]["properties"]["sheetId"]


def write_worklog_sheet(
    service,
    spreadsheet_id: str,
    title: str,
    records: list[WorkRecord],
    worker_names: dict[str, str] | None = None,
    report: ReportDefinition = DEFAULT_REPORT,
) -> int:
    """Write ordered records to the ``title`` tab and return its sheetId."""
    rows = build_sheet_rows(records, worker_names)
    sheet_id = replace_sheet(service, spreadsheet_id, title)

    (
        service.spreadsheets()
        .values()
        .update(
            spreadsheetId=spreadsheet_id,
            range=f"'{title}'!A1",
            valueInputOption="RAW",
            body={"values": rows},
        )
        .execute()
    )

    requests: list[dict] = [
        {
            "repeatCell": {
                "range": {"sheetId": sheet_id, "startRowIndex": 0, "endRowIndex": 1},
                "cell": {"userEnteredFormat": {"textFormat": {"bold": True}}},
                "fields": "userEnteredFormat.textFormat.bold",
            }
        }
    ]
    if records:
        # Header plus one row per record; the totals row stays out of the pivot.
        pivot = build_pivot_table(resolve_report(report), sheet_id, len(records) + 1)
        requests.append(
            {
                "updateCells": {
                    "rows": [{"values": [{"pivotTable": pivot}]}],
                    "start": {"sheetId": sheet_id, "rowIndex": 0, "columnIndex": PIVOT_COLUMN_INDEX},
                    "fields": "pivotTable",
                }
            }
        )
    (
        service.spreadsheets()
        .batchUpdate(spreadsheetId=spreadsheet_id, body={"requests": requests})
        .execute()
    )
    return sheet_id
