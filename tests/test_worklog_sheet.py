import unittest
from datetime import datetime
from unittest import mock
from zoneinfo import ZoneInfo

from summary_fields import ReportDefinition, ValueField, resolve_report
from worklog_aggregation import WorkRecord
from worklog_sheet import (
    PIVOT_COLUMN_INDEX,
    build_pivot_table,
    build_sheet_rows,
    format_minutes_hhmm,
    sheet_title_for_window,
    write_worklog_sheet,
)


def sample_records():
    return [
        WorkRecord("Alpha", "Acme", "Inspection", "J01", 30, "5"),
        WorkRecord("Alpha", "Acme", "Inspection", "M02", 45, ""),
        WorkRecord("Beta", "", "Cleanup", "Z99", 90, "42"),
    ]


class SheetRowsTests(unittest.TestCase):
    def test_format_minutes_hhmm(self):
        self.assertEqual(format_minutes_hhmm(165), "02:45")
        self.assertEqual(format_minutes_hhmm(0), "00:00")
        self.assertEqual(format_minutes_hhmm(6005), "100:05")

    def test_rows_have_header_records_and_totals(self):
        rows = build_sheet_rows(sample_records(), {"J01": "John", "M02": "Mary"})
        self.assertEqual(rows[0], ["作業名", "クライアント名", "タスク", "作業者", "時間(分)", "時間(h)", "色"])
        self.assertEqual(rows[1], ["Alpha", "Acme", "Inspection", "John", 30, 0.5, "Banana"])
        self.assertEqual(rows[2][3], "Mary")
        self.assertEqual(rows[2][6], "")
        self.assertEqual(rows[3][3], "Z99")
        self.assertEqual(rows[3][6], "42")
        self.assertEqual(rows[4], ["合計", "", "", "", "02:45", 2.75, ""])

    def test_empty_batch_still_has_header_and_totals(self):
        rows = build_sheet_rows([])
        self.assertEqual(len(rows), 2)
        self.assertEqual(rows[1][4], "00:00")

    def test_sheet_title_uses_last_included_date(self):
        tz = ZoneInfo("Asia/Tokyo")
        title = sheet_title_for_window(datetime(2026, 2, 1, tzinfo=tz), datetime(2026, 3, 1, tzinfo=tz))
        self.assertEqual(title, "2026-02-01_2026-02-28")


class PivotTableTests(unittest.TestCase):
    def test_offsets_and_summarize_functions(self):
        definition = ReportDefinition(
            rows=("作業名", "task"),
            columns=("作業者",),
            values=(ValueField("時間(分)", "count", "件数"), ValueField("時間(h)", "average")),
        )
        pivot = build_pivot_table(resolve_report(definition), source_sheet_id=7, row_count=4)
        self.assertEqual(pivot["source"]["sheetId"], 7)
        self.assertEqual(pivot["source"]["endRowIndex"], 4)
        self.assertEqual(pivot["source"]["endColumnIndex"], 7)
        self.assertEqual([row["sourceColumnOffset"] for row in pivot["rows"]], [0, 2])
        self.assertEqual(pivot["columns"][0]["sourceColumnOffset"], 3)
        self.assertEqual(
            pivot["values"],
            [
                {"summarizeFunction": "COUNTA", "sourceColumnOffset": 4, "name": "件数"},
                {"summarizeFunction": "AVERAGE", "sourceColumnOffset": 5, "name": "時間(h)"},
            ],
        )

    def test_unresolved_fields_are_skipped(self):
        definition = ReportDefinition(rows=("budget", "作業名"), values=(ValueField("cost"),))
        with self.assertLogs("worklog_sheet", level="WARNING") as logs:
            pivot = build_pivot_table(resolve_report(definition), source_sheet_id=1, row_count=2)
        self.assertEqual(len(pivot["rows"]), 1)
        self.assertEqual(pivot["values"], [])
        self.assertEqual(len(logs.output), 2)


class WriteWorklogSheetTests(unittest.TestCase):
    def make_service(self, existing_sheets):
        service = mock.MagicMock()
        spreadsheets = service.spreadsheets.return_value
        spreadsheets.get.return_value.execute.return_value = {"sheets": existing_sheets}
        spreadsheets.batchUpdate.return_value.execute.side_effect = [
            {"replies": [{}, {"addSheet": {"properties": {"sheetId": 55}}}]},
            {"replies": []},
        ]
        return service

    def batch_requests(self, service):
        calls = service.spreadsheets.return_value.batchUpdate.call_args_list
        return [call.kwargs["body"]["requests"] for call in calls]

    def test_replaces_existing_tab_and_writes_rows(self):
        title = "2026-02-01_2026-02-28"
        service = self.make_service(
            [
                {"properties": {"sheetId": 1, "title": "Sheet1"}},
                {"properties": {"sheetId": 12, "title": title}},
            ]
        )
        sheet_id = write_worklog_sheet(service, "sheet-123", title, sample_records())
        self.assertEqual(sheet_id, 55)

        replace, formatting = self.batch_requests(service)
        self.assertEqual(replace[0], {"deleteSheet": {"sheetId": 12}})
        self.assertEqual(replace[1]["addSheet"]["properties"]["title"], title)

        update = service.spreadsheets.return_value.values.return_value.update
        kwargs = update.call_args.kwargs
        self.assertEqual(kwargs["range"], f"'{title}'!A1")
        self.assertEqual(kwargs["valueInputOption"], "RAW")
        self.assertEqual(len(kwargs["body"]["values"]), 5)

        pivot_request = formatting[1]["updateCells"]
        self.assertEqual(pivot_request["start"]["columnIndex"], PIVOT_COLUMN_INDEX)
        pivot = pivot_request["rows"][0]["values"][0]["pivotTable"]
        self.assertEqual(pivot["source"]["sheetId"], 55)
        self.assertEqual(pivot["source"]["endRowIndex"], 4)

    def test_new_tab_without_records_has_no_pivot(self):
        service = self.make_service([])
        service.spreadsheets.return_value.batchUpdate.return_value.execute.side_effect = [
            {"replies": [{"addSheet": {"properties": {"sheetId": 9}}}]},
            {"replies": []},
        ]
        write_worklog_sheet(service, "sheet-123", "2026-02-01_2026-02-28", [])
        replace, formatting = self.batch_requests(service)
        self.assertEqual(len(replace), 1)
        self.assertIn("addSheet", replace[0])
        self.assertEqual(len(formatting), 1)
        self.assertIn("repeatCell", formatting[0])


if __name__ == "__main__":
    unittest.main()
