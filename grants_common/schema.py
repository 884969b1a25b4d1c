from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional, Sequence

import polars as pl


GRANT_COLS: Sequence[str] = (
    "Grant_ID",
    "Organization_Name",
    "Grant_Amount",
    "Grant_Start_Date",
    "Grant_End_Date",
    "Program_Officer",
    "Focus_Area",
    "Grant_Status",
)

REPORT_COLS: Sequence[str] = (
    "Grant_ID",
    "Report_Date",
    "Reporting_Period",
    "Report_Type",
    "Clients_Served",
    "Activities_Description",
    "Challenges_Faced",
    "Budget_Status",
)

VISIT_COLS: Sequence[str] = (
    "Grant_ID",
    "Site_Visit_Date",
    "Visit_Type",
    "Visitor_Name",
    "Visit_Purpose",
    "Observations",
    "Follow_Up_Required",
    "Follow_Up_Notes",
)

# Field kinds drive value coercion in build_raw_frame.
FIELD_KINDS: Mapping[str, str] = {
    "Grant_ID": "text",
    "Organization_Name": "text",
    "Grant_Amount": "float",
    "Grant_Start_Date": "date",
    "Grant_End_Date": "date",
    "Program_Officer": "text",
    "Focus_Area": "text",
    "Grant_Status": "text",
    "Report_Date": "date",
    "Reporting_Period": "text",
    "Report_Type": "text",
    "Clients_Served": "int",
    "Activities_Description": "text",
    "Challenges_Faced": "text",
    "Budget_Status": "text",
    "Site_Visit_Date": "date",
    "Visit_Type": "text",
    "Visitor_Name": "text",
    "Visit_Purpose": "text",
    "Observations": "text",
    "Follow_Up_Required": "text",
    "Follow_Up_Notes": "text",
}

_KIND_DTYPES = {
    "text": pl.Utf8,
    "date": pl.Utf8,
    "float": pl.Float64,
    "int": pl.Int64,
}


def _raw_columns() -> list[str]:
    ordered: list[str] = []
    for group in (GRANT_COLS, REPORT_COLS, VISIT_COLS):
        for col in group:
            if col not in ordered:
                ordered.append(col)
    return ordered


RAW_COLUMNS: Sequence[str] = tuple(_raw_columns())
RAW_SCHEMA: Dict[str, Any] = {col: _KIND_DTYPES[FIELD_KINDS[col]] for col in RAW_COLUMNS}


@dataclass(frozen=True)
class TableSchema:
    """Canonical definition of one normalized output table."""

    name: str
    columns: Sequence[str]  # projected raw columns, Grant_ID first
    key: str
    date_column: Optional[str] = None  # presence filter for child tables
    id_prefix: Optional[str] = None  # synthesized key prefix for child tables
    completeness_column: Optional[str] = None  # headline column for completeness warnings

    @property
    def synthesized(self) -> bool:
        return self.id_prefix is not None

    @property
    def output_columns(self) -> list[str]:
        if self.synthesized:
            return [self.key, *self.columns]
        return list(self.columns)


GRANTS = TableSchema(
    "grants",
    GRANT_COLS,
    key="Grant_ID",
    completeness_column="Organization_Name",
)

PROGRESS_REPORTS = TableSchema(
    "progress_reports",
    REPORT_COLS,
    key="Report_ID",
    date_column="Report_Date",
    id_prefix="RPT",
    completeness_column="Activities_Description",
)

SITE_VISITS = TableSchema(
    "site_visits",
    VISIT_COLS,
    key="Visit_ID",
    date_column="Site_Visit_Date",
    id_prefix="VST",
    completeness_column="Observations",
)

TABLE_SCHEMAS: Dict[str, TableSchema] = {
    schema.name: schema for schema in (GRANTS, PROGRESS_REPORTS, SITE_VISITS)
}
