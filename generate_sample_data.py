"""Generate a messy, denormalized grants export for demos and local runs.

Every progress report and site visit row repeats its grant's attributes, and
the fields of the other row type are left empty, which is exactly the shape
normalize_grants.py takes apart.
"""

from __future__ import annotations

import argparse
import random
from datetime import date, timedelta
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

import pandas as pd

from grants_common.schema import GRANT_COLS, RAW_COLUMNS, REPORT_COLS, VISIT_COLS
from grants_sync.excel_io import write_workbook

ORGANIZATIONS = [
    "Legal Aid Society of Metro City",
    "Community Justice Center",
    "Equal Rights Advocacy Group",
    "Family Law Services Coalition",
    "Housing Justice Project",
    "Immigration Legal Services",
    "Youth Justice Initiative",
    "Elder Law Center",
    "Disability Rights Foundation",
    "Consumer Protection Legal Aid",
    "Environmental Justice Alliance",
    "Workers' Rights Legal Clinic",
    "Domestic Violence Legal Support",
    "Veterans Legal Assistance",
    "Civil Liberties Defense Fund",
]
FOCUS_AREAS = [
    "Housing Rights",
    "Immigration Law",
    "Family Law",
    "Consumer Protection",
    "Employment Law",
    "Disability Rights",
    "Education Rights",
    "Healthcare Access",
]
PROGRAM_OFFICERS = ["Sarah Johnson", "Michael Chen", "Jennifer Martinez", "David Thompson", "Lisa Anderson"]
GRANT_STATUSES = ["Active", "Active", "Active", "Completed", "In Review"]
REPORT_TYPES = ["Quarterly", "Mid-Year", "Annual", "Final"]
VISIT_TYPES = ["Site Visit", "Virtual Check-in", "Program Review"]
VISIT_PURPOSES = [
    "Annual program review",
    "Mid-term evaluation",
    "Technical assistance visit",
    "Compliance check",
    "Partnership development",
]
ACTIVITIES = [
    "Provided legal consultations to {0} clients. Conducted {1} workshops on tenant rights. "
    "Successfully represented clients in {2} cases.",
    "Offered pro bono services to {0} low-income families. Held community outreach events reaching "
    "{1} individuals. Filed {2} legal motions.",
    "Assisted {0} clients with legal documentation. Provided {1} hours of free legal advice. "
    "Achieved positive outcomes in {2} cases.",
    "Served {0} individuals through direct legal services. Coordinated with {1} partner organizations. "
    "Successfully resolved {2} legal matters.",
]
CHALLENGES = [
    "Limited staff capacity during peak demand periods.",
    "Difficulty reaching rural communities. Translation services needed for non-English speakers.",
    "High client no-show rate for appointments. Funding constraints limiting service hours.",
    "Increased demand for services exceeding capacity. Staff turnover requiring additional training.",
]
OBSERVATIONS = [
    "Program demonstrates strong community engagement. Office facilities are well-maintained.",
    "Client satisfaction appears high based on testimonials. Need for expanded service hours noted.",
    "Impressive case outcomes. Staff could benefit from additional training.",
    "Well-organized case management system in place. Opportunities for increased community outreach.",
]
FOLLOW_UP_NOTES = [
    "Schedule follow-up training session",
    "Provide additional resources on best practices",
    "Connect with peer organization for collaboration",
    "Review budget allocation in next quarter",
]


def generate_grants(rng: random.Random, num_grants: int, year: int) -> List[Dict[str, Any]]:
    grants = []
    organizations = rng.sample(ORGANIZATIONS, k=min(num_grants, len(ORGANIZATIONS)))
    for i in range(1, num_grants + 1):
        start = date(year, rng.randint(1, 12), 1)
        grants.append(
            {
                "Grant_ID": f"GR-{year}-{i:04d}",
                "Organization_Name": organizations[(i - 1) % len(organizations)],
                "Grant_Amount": float(rng.choice([50000, 75000, 100000, 150000, 200000, 250000])),
                "Grant_Start_Date": start,
                "Grant_End_Date": start + timedelta(days=rng.randint(365, 730)),
                "Program_Officer": rng.choice(PROGRAM_OFFICERS),
                "Focus_Area": rng.choice(FOCUS_AREAS),
                "Grant_Status": rng.choice(GRANT_STATUSES),
            }
        )
    return grants


def _blank(columns: Sequence[str]) -> Dict[str, Any]:
    return {col: None for col in columns if col != "Grant_ID"}


def generate_messy_rows(seed: int = 42, num_grants: int = 15, year: int = 2023) -> List[Dict[str, Any]]:
    """Reports (2-4 per grant) and visits (1-2 per grant), grant data repeated on each row."""

    rng = random.Random(seed)
    rows: List[Dict[str, Any]] = []
    for grant in generate_grants(rng, num_grants, year):
        duration = (grant["Grant_End_Date"] - grant["Grant_Start_Date"]).days

        num_reports = rng.randint(2, 4)
        for j in range(1, num_reports + 1):
            report_date = grant["Grant_Start_Date"] + timedelta(days=duration * j // (num_reports + 1))
            clients = rng.randint(20, 200)
            rows.append(
                {
                    **grant,
                    "Report_Date": report_date,
                    "Reporting_Period": f"Q{(j - 1) % 4 + 1} {report_date.year}",
                    "Report_Type": rng.choice(REPORT_TYPES),
                    "Clients_Served": clients,
                    "Activities_Description": rng.choice(ACTIVITIES).format(
                        clients, rng.randint(2, 15), rng.randint(5, 50)
                    ),
                    "Challenges_Faced": rng.choice(CHALLENGES),
                    "Budget_Status": rng.choices(["On Track", "Under Budget", "Over Budget"], [0.6, 0.3, 0.1])[0],
                    **_blank(VISIT_COLS),
                }
            )

        for _ in range(rng.randint(1, 2)):
            follow_up = rng.random() < 0.3
            rows.append(
                {
                    **grant,
                    **_blank(REPORT_COLS),
                    "Site_Visit_Date": grant["Grant_Start_Date"] + timedelta(days=rng.randint(30, duration - 30)),
                    "Visit_Type": rng.choice(VISIT_TYPES),
                    "Visitor_Name": rng.choice(PROGRAM_OFFICERS),
                    "Visit_Purpose": rng.choice(VISIT_PURPOSES),
                    "Observations": rng.choice(OBSERVATIONS),
                    "Follow_Up_Required": "Yes" if follow_up else "No",
                    "Follow_Up_Notes": rng.choice(FOLLOW_UP_NOTES) if follow_up else None,
                }
            )

    rows.sort(key=lambda r: (r["Grant_ID"], r["Report_Date"] or r["Site_Visit_Date"]))
    return rows


def summary_statistics(messy: pd.DataFrame) -> pd.DataFrame:
    unique_grants = messy["Grant_ID"].nunique()
    reports = int(messy["Report_Date"].notna().sum())
    visits = int(messy["Site_Visit_Date"].notna().sum())
    redundancy = (1 - unique_grants / len(messy)) * 100
    empty = messy.isna().to_numpy().sum() / messy.size * 100
    return pd.DataFrame(
        {
            "Metric": [
                "Total Rows",
                "Total Columns",
                "Unique Grants",
                "Total Reports",
                "Total Visits",
                "Data Redundancy",
                "Empty Cells",
                "Average Reports per Grant",
                "Average Visits per Grant",
            ],
            "Value": [
                str(len(messy)),
                str(messy.shape[1]),
                str(unique_grants),
                str(reports),
                str(visits),
                f"{redundancy:.1f}%",
                f"{empty:.1f}%",
                f"{reports / unique_grants:.1f}",
                f"{visits / unique_grants:.1f}",
            ],
        }
    )


def write_sample_workbook(path: Path, seed: int = 42, num_grants: int = 15, year: int = 2023) -> pd.DataFrame:
    messy = pd.DataFrame(generate_messy_rows(seed, num_grants, year), columns=list(RAW_COLUMNS))
    write_workbook(
        path,
        {
            "Messy Combined Data": messy,
            "Summary Statistics": summary_statistics(messy),
        },
    )
    return messy


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Generate a messy combined grants export workbook.")
    parser.add_argument(
        "--output",
        type=Path,
        default=Path("data/input/MESSY_Grants_Data_Export.xlsx"),
        help="Workbook to write (default: data/input/MESSY_Grants_Data_Export.xlsx)",
    )
    parser.add_argument("--grants", type=int, default=15, help="Number of grants to generate.")
    parser.add_argument("--year", type=int, default=2023, help="Grant year used in Grant_IDs.")
    parser.add_argument("--seed", type=int, default=42, help="Random seed for reproducible output.")
    return parser.parse_args(argv)


def main(argv: Optional[Sequence[str]] = None) -> None:
    args = parse_args(argv)
    messy = write_sample_workbook(args.output, seed=args.seed, num_grants=args.grants, year=args.year)
    grant_cols = len(GRANT_COLS)
    print(
        f"[OK] Wrote {len(messy)} rows ({messy['Grant_ID'].nunique()} grants, "
        f"{grant_cols} grant columns repeated per row) to {args.output}"
    )


if __name__ == "__main__":
    main()
