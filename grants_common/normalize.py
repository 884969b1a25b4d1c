from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Union

import pandas as pd
import polars as pl

from .errors import EmptySourceError
from .keys import synthesize_keys
from .schema import (
    FIELD_KINDS,
    GRANTS,
    PROGRESS_REPORTS,
    RAW_COLUMNS,
    RAW_SCHEMA,
    SITE_VISITS,
    TABLE_SCHEMAS,
    TableSchema,
)
from .validate import ValidationReport, validate_tables

logger = logging.getLogger(__name__)

RawRows = Union[pl.DataFrame, Sequence[Mapping[str, Any]]]

_ISO_DATETIME = re.compile(r"^(\d{4}-\d{2}-\d{2})[T ]")
_ORDINAL_COL = "_ordinal"


def _is_missing(value: Any) -> bool:
    """None, NaN and pandas' NaT / NA markers all count as an empty cell."""

    if value is None:
        return True
    if isinstance(value, (list, tuple, dict, set)):
        return False
    try:
        return bool(pd.isna(value))
    except (TypeError, ValueError):
        return False


def _parse_float(value: Any, field: str) -> Optional[float]:
    if isinstance(value, str):
        value = value.strip().replace(",", "").lstrip("$")
        if not value:
            return None
    try:
        return float(value)
    except (TypeError, ValueError):
        logger.warning("Discarding non-numeric %s value %r", field, value)
        return None


def _parse_int(value: Any, field: str) -> Optional[int]:
    number = _parse_float(value, field)
    return int(number) if number is not None else None


def _coerce_date(value: Any) -> str:
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    text = str(value).strip()
    match = _ISO_DATETIME.match(text)
    return match.group(1) if match else text


def _coerce_text(value: Any) -> str:
    if isinstance(value, bool):
        return "Yes" if value else "No"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, (datetime, date)):
        return _coerce_date(value)
    return str(value)


def coerce_value(field: str, value: Any) -> Any:
    """Coerce one raw cell to the type the fixed schema expects for ``field``."""

    if _is_missing(value):
        return None
    kind = FIELD_KINDS[field]
    if kind == "date":
        return _coerce_date(value)
    if kind == "float":
        return _parse_float(value, field)
    if kind == "int":
        return _parse_int(value, field)
    return _coerce_text(value)


def coerce_row(row: Mapping[str, Any]) -> Dict[str, Any]:
    """Project a raw mapping onto the 22 known fields; absent fields become null."""

    return {col: coerce_value(col, row.get(col)) for col in RAW_COLUMNS}


def build_raw_frame(rows: Iterable[Mapping[str, Any]]) -> pl.DataFrame:
    """Materialize raw rows into a frame with the fixed raw schema."""

    return pl.DataFrame([coerce_row(row) for row in rows], schema=RAW_SCHEMA)


def _ensure_frame(rows: RawRows) -> pl.DataFrame:
    if isinstance(rows, pl.DataFrame):
        if rows.columns == list(RAW_COLUMNS) and all(rows.schema[c] == RAW_SCHEMA[c] for c in RAW_COLUMNS):
            frame = rows
        else:
            frame = build_raw_frame(rows.to_dicts())
    else:
        frame = build_raw_frame(rows)
    if frame.height == 0:
        raise EmptySourceError()
    return frame


def _sort_columns(schema: TableSchema) -> List[str]:
    leading = ["Grant_ID"] + ([schema.date_column] if schema.date_column else [])
    return leading + [col for col in schema.columns if col not in leading]


def derive_grants(rows: RawRows) -> pl.DataFrame:
    """
    Project the grant attributes and drop exact duplicate rows.

    Rows that share a Grant_ID but disagree on any attribute stay separate; the
    validation pass reports them. Rows carrying nothing but a Grant_ID do not
    contribute a grant, so their children surface as orphans.
    """

    raw = _ensure_frame(rows)
    attributes = [col for col in GRANTS.columns if col != GRANTS.key]
    return (
        raw.select(list(GRANTS.columns))
        .filter(pl.any_horizontal(pl.col(attributes).is_not_null()))
        .unique(maintain_order=True)
        .sort(_sort_columns(GRANTS), nulls_last=True)
    )


def _derive_child(raw: pl.DataFrame, schema: TableSchema) -> pl.DataFrame:
    date_col = schema.date_column
    present = pl.col(date_col).is_not_null() & (pl.col(date_col).str.strip_chars() != "")
    table = (
        raw.filter(present)
        .select(list(schema.columns))
        .unique(maintain_order=True)
        .sort(_sort_columns(schema), nulls_last=True)
        .with_columns((pl.int_range(pl.len()) + 1).over("Grant_ID").alias(_ORDINAL_COL))
    )
    keys = synthesize_keys(schema.id_prefix, table["Grant_ID"].to_list(), table[_ORDINAL_COL].to_list())
    return table.with_columns(
        pl.Series(schema.key, [str(key) for key in keys], dtype=pl.Utf8)
    ).select(schema.output_columns)


def derive_progress_reports(rows: RawRows) -> pl.DataFrame:
    """Rows with a Report_Date, keyed RPT-<year>-<seq>-<n> in date order per grant."""

    return _derive_child(_ensure_frame(rows), PROGRESS_REPORTS)


def derive_site_visits(rows: RawRows) -> pl.DataFrame:
    """Rows with a Site_Visit_Date, keyed VST-<year>-<seq>-<n> in date order per grant."""

    return _derive_child(_ensure_frame(rows), SITE_VISITS)


def _per_grant(table: pl.DataFrame) -> Optional[float]:
    grants = table["Grant_ID"].n_unique() if table.height else 0
    return table.height / grants if grants else None


@dataclass
class NormalizationReport:
    raw_row_count: int
    raw_column_count: int
    unique_grant_ids: int
    table_row_counts: Dict[str, int]
    redundancy_pct: float
    empty_cell_pct: float
    reports_per_grant: Optional[float]
    visits_per_grant: Optional[float]
    validation: ValidationReport

    @property
    def has_warnings(self) -> bool:
        return not self.validation.ok

    def to_dict(self) -> Dict[str, Any]:
        return {
            "raw_row_count": self.raw_row_count,
            "raw_column_count": self.raw_column_count,
            "unique_grant_ids": self.unique_grant_ids,
            "table_row_counts": dict(self.table_row_counts),
            "redundancy_pct": self.redundancy_pct,
            "empty_cell_pct": self.empty_cell_pct,
            "reports_per_grant": self.reports_per_grant,
            "visits_per_grant": self.visits_per_grant,
            "validation": self.validation.to_dict(),
        }

    def summary_lines(self) -> List[str]:
        counts = self.table_row_counts
        lines = [
            f"Raw rows: {self.raw_row_count} ({self.unique_grant_ids} unique grants, "
            f"{self.empty_cell_pct:.1f}% empty cells)",
            f"Grants: {counts[GRANTS.name]}, Progress reports: {counts[PROGRESS_REPORTS.name]}, "
            f"Site visits: {counts[SITE_VISITS.name]}",
            f"Grant data redundancy removed: {self.redundancy_pct:.1f}%",
        ]
        if self.reports_per_grant is not None:
            lines.append(f"Reports per grant (average): {self.reports_per_grant:.1f}")
        if self.visits_per_grant is not None:
            lines.append(f"Visits per grant (average): {self.visits_per_grant:.1f}")
        for name, ku in self.validation.key_uniqueness.items():
            lines.append(f"{name}: {ku.distinct} unique {ku.key} values across {ku.rows} rows")
        for name, missing in self.validation.orphans.items():
            status = "all rows link to valid grants" if not missing else f"{len(missing)} orphaned Grant_ID(s)"
            lines.append(f"{name}: {status}")
        for name, columns in self.validation.completeness.items():
            schema = TABLE_SCHEMAS[name]
            pct = columns.get(schema.completeness_column)
            shown = "n/a" if pct is None else f"{pct:.0f}%"
            lines.append(f"{name} with {schema.completeness_column}: {shown}")
        return lines


@dataclass
class NormalizationResult:
    grants: pl.DataFrame
    progress_reports: pl.DataFrame
    site_visits: pl.DataFrame
    report: NormalizationReport

    def tables(self) -> Dict[str, pl.DataFrame]:
        return {
            GRANTS.name: self.grants,
            PROGRESS_REPORTS.name: self.progress_reports,
            SITE_VISITS.name: self.site_visits,
        }


def normalize_grants_data(rows: RawRows) -> NormalizationResult:
    """
    Normalize a flat grants export into Grants, Progress Reports and Site Visits.

    - Coerces rows to the fixed raw schema (missing fields -> null)
    - Derives the three tables and synthesizes child keys
    - Validates orphans, key uniqueness and completeness
    - Returns the tables with a structured report for logging or assertions
    """

    raw = _ensure_frame(rows)
    grants = derive_grants(raw)
    progress_reports = derive_progress_reports(raw)
    site_visits = derive_site_visits(raw)
    logger.info(
        "Derived %d grants, %d progress reports, %d site visits from %d raw rows",
        grants.height,
        progress_reports.height,
        site_visits.height,
        raw.height,
    )

    validation = validate_tables(grants, progress_reports, site_visits)

    null_cells = sum(raw.null_count().row(0))
    report = NormalizationReport(
        raw_row_count=raw.height,
        raw_column_count=raw.width,
        unique_grant_ids=raw["Grant_ID"].drop_nulls().n_unique(),
        table_row_counts={
            GRANTS.name: grants.height,
            PROGRESS_REPORTS.name: progress_reports.height,
            SITE_VISITS.name: site_visits.height,
        },
        redundancy_pct=(1 - grants.height / raw.height) * 100,
        empty_cell_pct=100.0 * null_cells / (raw.height * raw.width),
        reports_per_grant=_per_grant(progress_reports),
        visits_per_grant=_per_grant(site_visits),
        validation=validation,
    )
    return NormalizationResult(grants, progress_reports, site_visits, report)
