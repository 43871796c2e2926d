import unittest

from summary_fields import (
    DEFAULT_REPORT,
    HEADER_LABELS,
    ReportDefinition,
    SummarizeKind,
    ValueField,
    column_index,
    resolve_report,
    summarize_kind,
)


class ColumnIndexTests(unittest.TestCase):
    def test_header_labels_map_to_their_position(self):
        for position, label in enumerate(HEADER_LABELS, start=1):
            self.assertEqual(column_index(label), position)

    def test_aliases_match_labels(self):
        self.assertEqual(column_index("work_name"), column_index("作業名"))
        self.assertEqual(column_index("Worker"), column_index("作業者"))
        self.assertEqual(column_index(" duration_hours "), 6)

    def test_unknown_or_empty_names_return_none(self):
        self.assertIsNone(column_index(None))
        self.assertIsNone(column_index(""))
        self.assertIsNone(column_index("budget"))

    def test_non_string_names_return_none(self):
        self.assertIsNone(column_index(5))
        self.assertIsNone(column_index(["作業名"]))


class SummarizeKindTests(unittest.TestCase):
    def test_case_insensitive_lookup(self):
        self.assertEqual(summarize_kind("average"), SummarizeKind.AVERAGE)
        self.assertEqual(summarize_kind("AVERAGE"), SummarizeKind.AVERAGE)
        self.assertEqual(summarize_kind("  Median "), SummarizeKind.MEDIAN)

    def test_every_kind_is_reachable(self):
        for kind in SummarizeKind:
            self.assertEqual(summarize_kind(kind.value), kind)

    def test_unknown_operator_falls_back_to_sum_with_warning(self):
        with self.assertLogs("summary_fields", level="WARNING") as logs:
            self.assertEqual(summarize_kind("bogus"), SummarizeKind.SUM)
        self.assertIn("bogus", logs.output[0])

    def test_missing_operator_falls_back_to_sum(self):
        with self.assertLogs("summary_fields", level="WARNING"):
            self.assertEqual(summarize_kind(None), SummarizeKind.SUM)


class ReportDefinitionTests(unittest.TestCase):
    def test_value_field_defaults(self):
        value = ValueField("時間(分)")
        self.assertEqual(value.operator, "SUM")
        self.assertIsNone(value.display_name)

    def test_value_field_requires_field(self):
        with self.assertRaises(ValueError):
            ValueField(" ")

    def test_lists_are_stored_as_tuples(self):
        definition = ReportDefinition(rows=["作業名"], columns=["作業者"], values=[ValueField("時間(h)")])
        self.assertEqual(definition.rows, ("作業名",))
        self.assertIsInstance(definition.values, tuple)

    def test_resolve_default_report(self):
        resolved = resolve_report(DEFAULT_REPORT)
        self.assertEqual([column for _, column in resolved.rows], [1, 2, 3])
        self.assertEqual([column for _, column in resolved.columns], [4])
        self.assertEqual(resolved.values[0].column, 6)
        self.assertEqual(resolved.values[0].kind, SummarizeKind.SUM)
        self.assertEqual(resolved.values[0].display_name, "合計時間(h)")

    def test_resolve_keeps_unknown_fields_unresolved(self):
        definition = ReportDefinition(
            rows=("budget",),
            values=(ValueField("時間(分)", "count"),),
        )
        resolved = resolve_report(definition)
        self.assertEqual(resolved.rows, (("budget", None),))
        self.assertEqual(resolved.values[0].kind, SummarizeKind.COUNT)
        self.assertEqual(resolved.values[0].display_name, "時間(分)")


if __name__ == "__main__":
    unittest.main()
