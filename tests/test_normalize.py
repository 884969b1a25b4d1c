from datetime import date, datetime
from pathlib import Path

import pandas as pd
import polars as pl
import pytest

from generate_sample_data import write_sample_workbook
from grants_common import (
    EmptySourceError,
    MalformedKeyError,
    build_raw_frame,
    derive_grants,
    derive_progress_reports,
    derive_site_visits,
    normalize_grants_data,
)
from grants_common.schema import RAW_COLUMNS

GRANT_A = {
    "Grant_ID": "GR-2023-0001",
    "Organization_Name": "Housing Justice Project",
    "Grant_Amount": 100000,
    "Grant_Start_Date": "2023-03-01",
    "Grant_End_Date": "2024-09-01",
    "Program_Officer": "Sarah Johnson",
    "Focus_Area": "Housing Rights",
    "Grant_Status": "Active",
}

GRANT_B = {
    **GRANT_A,
    "Grant_ID": "GR-2023-0002",
    "Organization_Name": "Elder Law Center",
    "Grant_Amount": 50000,
}


def report_row(grant, report_date, **extra):
    return {
        **grant,
        "Report_Date": report_date,
        "Reporting_Period": "Q1 2023",
        "Report_Type": "Quarterly",
        "Clients_Served": 42,
        "Activities_Description": "Provided consultations.",
        "Challenges_Faced": "Limited staff.",
        "Budget_Status": "On Track",
        **extra,
    }


def visit_row(grant, visit_date, **extra):
    return {
        **grant,
        "Site_Visit_Date": visit_date,
        "Visit_Type": "Site Visit",
        "Visitor_Name": "Michael Chen",
        "Visit_Purpose": "Compliance check",
        "Observations": "Well run.",
        "Follow_Up_Required": "No",
        "Follow_Up_Notes": None,
        **extra,
    }


def test_build_raw_frame_fills_missing_fields_and_coerces_types():
    frame = build_raw_frame(
        [
            {
                "Grant_ID": "GR-2023-0001",
                "Grant_Amount": "75,000",
                "Report_Date": datetime(2023, 6, 30, 0, 0),
                "Clients_Served": 12.0,
                "Follow_Up_Required": True,
                "airtable_record_id": "rec123",
            }
        ]
    )

    assert frame.columns == list(RAW_COLUMNS)
    row = frame.row(0, named=True)
    assert row["Grant_Amount"] == 75000.0
    assert row["Report_Date"] == "2023-06-30"
    assert row["Clients_Served"] == 12
    assert row["Follow_Up_Required"] == "Yes"
    assert row["Organization_Name"] is None
    assert row["Site_Visit_Date"] is None


def test_build_raw_frame_normalizes_dates_from_any_source():
    frame = build_raw_frame(
        [
            {"Grant_ID": "GR-2023-0001", "Report_Date": date(2023, 1, 5)},
            {"Grant_ID": "GR-2023-0001", "Report_Date": "2023-02-05T00:00:00.000Z"},
            {"Grant_ID": "GR-2023-0001", "Report_Date": float("nan")},
        ]
    )
    assert frame["Report_Date"].to_list() == ["2023-01-05", "2023-02-05", None]


def test_build_raw_frame_treats_pandas_missing_markers_as_null():
    frame = build_raw_frame(
        [{"Grant_ID": "GR-2023-0001", "Report_Date": pd.NaT, "Visit_Type": pd.NA}]
    )
    assert frame.select("Report_Date", "Visit_Type").rows() == [(None, None)]


def test_rows_read_back_through_pandas_keep_report_and_visit_counts(tmp_path):
    path = Path(tmp_path) / "messy.xlsx"
    write_sample_workbook(path, seed=42, num_grants=5)
    messy = pd.read_excel(path, sheet_name="Messy Combined Data")

    result = normalize_grants_data(messy.to_dict("records"))

    assert result.grants.height == 5
    assert result.progress_reports.height == int(messy["Report_Date"].notna().sum())
    assert result.site_visits.height == int(messy["Site_Visit_Date"].notna().sum())
    assert "NaT" not in result.progress_reports["Report_Date"].to_list()


def test_scenario_one_report_and_one_visit_share_a_grant():
    rows = [report_row(GRANT_A, "2023-06-30"), visit_row(GRANT_A, "2023-08-15")]

    result = normalize_grants_data(rows)

    assert result.grants.height == 1
    assert result.progress_reports["Report_ID"].to_list() == ["RPT-2023-0001-0001"]
    assert result.site_visits["Visit_ID"].to_list() == ["VST-2023-0001-0001"]
    assert result.report.validation.orphans == {"progress_reports": set(), "site_visits": set()}


def test_scenario_grant_without_visits_yields_empty_visit_table():
    rows = [report_row(GRANT_B, "2023-06-30")]

    result = normalize_grants_data(rows)

    assert result.grants.height == 1
    assert result.progress_reports.height == 1
    assert result.site_visits.height == 0
    assert result.site_visits.columns[:2] == ["Visit_ID", "Grant_ID"]


def test_scenario_empty_input_raises():
    with pytest.raises(EmptySourceError):
        normalize_grants_data([])
    for derive in (derive_grants, derive_progress_reports, derive_site_visits):
        with pytest.raises(EmptySourceError):
            derive([])


def test_grants_dedup_by_full_row_keeps_conflicting_attributes():
    rows = [
        report_row(GRANT_A, "2023-06-30"),
        report_row(GRANT_A, "2023-09-30"),
        report_row({**GRANT_A, "Grant_Status": "Completed"}, "2023-12-31"),
        visit_row(GRANT_B, "2023-05-01"),
    ]

    grants = derive_grants(rows)

    assert grants["Grant_ID"].to_list() == ["GR-2023-0001", "GR-2023-0001", "GR-2023-0002"]
    assert sorted(grants.filter(pl.col("Grant_ID") == "GR-2023-0001")["Grant_Status"].to_list()) == [
        "Active",
        "Completed",
    ]


def test_report_ids_are_assigned_per_grant_in_date_order():
    rows = [
        report_row(GRANT_B, "2023-12-31"),
        report_row(GRANT_A, "2023-09-30"),
        report_row(GRANT_B, "2023-03-31"),
        report_row(GRANT_A, "2023-06-30"),
        report_row(GRANT_A, "2023-06-30"),  # exact duplicate
    ]

    reports = derive_progress_reports(rows)

    assert reports.select("Report_ID", "Grant_ID", "Report_Date").rows() == [
        ("RPT-2023-0001-0001", "GR-2023-0001", "2023-06-30"),
        ("RPT-2023-0001-0002", "GR-2023-0001", "2023-09-30"),
        ("RPT-2023-0002-0001", "GR-2023-0002", "2023-03-31"),
        ("RPT-2023-0002-0002", "GR-2023-0002", "2023-12-31"),
    ]
    assert reports.columns[:3] == ["Report_ID", "Grant_ID", "Report_Date"]


def test_blank_report_dates_are_not_reports():
    rows = [report_row(GRANT_A, "   "), report_row(GRANT_A, None), visit_row(GRANT_A, "2023-04-01")]

    assert derive_progress_reports(rows).height == 0
    assert derive_site_visits(rows).height == 1


def test_derivation_is_idempotent_and_order_independent():
    rows = [
        report_row(GRANT_A, "2023-06-30", Report_Type="Annual"),
        report_row(GRANT_A, "2023-06-30", Report_Type="Quarterly"),
        visit_row(GRANT_B, "2023-07-01"),
        visit_row(GRANT_A, "2023-02-01"),
    ]

    first = normalize_grants_data(rows)
    second = normalize_grants_data(list(reversed(rows)))

    for name, table in first.tables().items():
        assert table.equals(second.tables()[name])
    assert first.progress_reports["Report_ID"].n_unique() == 2


def test_cardinality_bounds_hold():
    rows = [
        report_row(GRANT_A, "2023-06-30"),
        report_row(GRANT_A, "2023-06-30"),
        visit_row(GRANT_A, "2023-08-01"),
        visit_row(GRANT_B, "2023-08-01"),
    ]

    result = normalize_grants_data(rows)

    assert result.grants.height <= len(rows)
    assert result.progress_reports.height <= 2
    assert result.progress_reports.height == 1
    assert result.site_visits.height == 2


def test_malformed_grant_id_on_child_row_fails_the_run():
    rows = [report_row({**GRANT_A, "Grant_ID": "2023-0001"}, "2023-06-30")]

    with pytest.raises(MalformedKeyError) as excinfo:
        normalize_grants_data(rows)
    assert excinfo.value.grant_id == "2023-0001"


def test_report_accepts_polars_frame_input():
    frame = build_raw_frame([report_row(GRANT_A, "2023-06-30")])
    partial = pl.DataFrame({"Grant_ID": ["GR-2023-0001"], "Report_Date": ["2023-06-30"]})

    assert derive_progress_reports(frame).height == 1
    assert derive_progress_reports(partial)["Report_ID"].to_list() == ["RPT-2023-0001-0001"]


def test_report_statistics():
    rows = [
        report_row(GRANT_A, "2023-06-30"),
        report_row(GRANT_A, "2023-09-30"),
        visit_row(GRANT_A, "2023-08-01"),
        visit_row(GRANT_B, "2023-08-01"),
    ]

    report = normalize_grants_data(rows).report

    assert report.raw_row_count == 4
    assert report.unique_grant_ids == 2
    assert report.table_row_counts == {"grants": 2, "progress_reports": 2, "site_visits": 2}
    assert report.redundancy_pct == pytest.approx(50.0)
    assert report.reports_per_grant == pytest.approx(2.0)
    assert report.visits_per_grant == pytest.approx(1.0)
    assert 0 < report.empty_cell_pct < 100
    payload = report.to_dict()
    assert payload["validation"]["orphans"] == {"progress_reports": [], "site_visits": []}
    assert any("redundancy" in line for line in report.summary_lines())
