"""Column and summarize-function lookups used when building the pivot table."""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass


logger = logging.getLogger(__name__)


class SummarizeKind(enum.Enum):
    SUM = "SUM"
    COUNT = "COUNT"
    AVERAGE = "AVERAGE"
    MAX = "MAX"
    MIN = "MIN"
    MEDIAN = "MEDIAN"
    PRODUCT = "PRODUCT"


# Header labels of the worklog sheet, in column order.
HEADER_LABELS = (
    "作業名",
    "クライアント名",
    "タスク",
    "作業者",
    "時間(分)",
    "時間(h)",
    "色",
)

COLUMN_ALIASES = {
    "work_name": 1,
    "client_name": 2,
    "task": 3,
    "worker": 4,
    "duration_minutes": 5,
    "duration_hours": 6,
    "color": 7,
}

FIELD_COLUMNS = {
    **{label: index for index, label in enumerate(HEADER_LABELS, start=1)},
    **COLUMN_ALIASES,
}

SUMMARIZE_KINDS = {
    "sum": SummarizeKind.SUM,
    "count": SummarizeKind.COUNT,
    "counta": SummarizeKind.COUNT,
    "average": SummarizeKind.AVERAGE,
    "avg": SummarizeKind.AVERAGE,
    "max": SummarizeKind.MAX,
    "min": SummarizeKind.MIN,
    "median": SummarizeKind.MEDIAN,
    "product": SummarizeKind.PRODUCT,
}


def column_index(field_name: object) -> int | None:
    """Return the 1-based column for a header label or alias, else None."""
    if not isinstance(field_name, str) or not field_name:
        return None
    name = field_name.strip()
    if name in FIELD_COLUMNS:
        return FIELD_COLUMNS[name]
    return COLUMN_ALIASES.get(name.lower())


def summarize_kind(operator_name: str | None) -> SummarizeKind:
    key = (operator_name or "").strip().lower()
    kind = SUMMARIZE_KINDS.get(key)
    if kind is None:
        logger.warning("Unknown summarize function %r, using SUM", operator_name)
        return SummarizeKind.SUM
    return kind


@dataclass(frozen=True)
class ValueField:
    field: str
    operator: str = "SUM"
    display_name: str | None = None

    def __post_init__(self):
        if not self.field or not self.field.strip():
            raise ValueError("ValueField.field must not be empty.")


@dataclass(frozen=True)
class ReportDefinition:
    rows: tuple[str, ...] = ()
    columns: tuple[str, ...] = ()
    values: tuple[ValueField, ...] = ()

    def __post_init__(self):
        # Lists are accepted; stored as tuples so the definition stays hashable.
        object.__setattr__(self, "rows", tuple(self.rows))
        object.__setattr__(self, "columns", tuple(self.columns))
        object.__setattr__(self, "values", tuple(self.values))


@dataclass(frozen=True)
class ResolvedValue:
    field: str
    column: int | None
    kind: SummarizeKind
    display_name: str


@dataclass(frozen=True)
class ResolvedReport:
    rows: tuple[tuple[str, int | None], ...]
    columns: tuple[tuple[str, int | None], ...]
    values: tuple[ResolvedValue, ...]


DEFAULT_REPORT = ReportDefinition(
    rows=("作業名", "クライアント名", "タスク"),
    columns=("作業者",),
    values=(ValueField("時間(h)", "SUM", "合計時間(h)"),),
)


def resolve_report(definition: ReportDefinition) -> ResolvedReport:
    return ResolvedReport(
        rows=tuple((name, column_index(name)) for name in definition.rows),
        columns=tuple((name, column_index(name)) for name in definition.columns),
        values=tuple(
            ResolvedValue(
                field=value.field,
                column=column_index(value.field),
                kind=summarize_kind(value.operator),
                display_name=value.display_name or value.field,
            )
            for value in definition.values
        ),
    )
