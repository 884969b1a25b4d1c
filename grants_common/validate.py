"""
Referential and quality checks over the normalized tables.

Only a duplicated synthesized key is fatal; everything else lands in
``ValidationReport.warnings`` and the caller decides whether to write back.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Set

import polars as pl

from .errors import InternalInvariantViolation
from .schema import GRANTS, PROGRESS_REPORTS, SITE_VISITS, TableSchema

logger = logging.getLogger(__name__)

LOW_COMPLETENESS_PCT = 90.0


def check_orphans(children: pl.DataFrame, parents: pl.DataFrame, key: str = "Grant_ID") -> Set[str]:
    """Return child foreign-key values with no matching parent key."""

    if children.is_empty():
        return set()
    child_keys = set(children[key].drop_nulls().to_list())
    parent_keys = set(parents[key].drop_nulls().to_list()) if not parents.is_empty() else set()
    return child_keys - parent_keys


@dataclass(frozen=True)
class KeyUniqueness:
    table: str
    key: str
    distinct: int
    rows: int

    @property
    def unique(self) -> bool:
        return self.distinct == self.rows


def check_primary_key_uniqueness(table: pl.DataFrame, key_field: str, name: str = "") -> KeyUniqueness:
    """Compare the number of distinct key values with the row count."""

    distinct = table[key_field].n_unique() if table.height else 0
    return KeyUniqueness(table=name or key_field, key=key_field, distinct=distinct, rows=table.height)


def check_completeness(table: pl.DataFrame, field: str) -> Optional[float]:
    """Percentage of rows where ``field`` is non-null; None for an empty table."""

    if table.height == 0:
        return None
    return 100.0 * (table.height - table[field].null_count()) / table.height


@dataclass
class ValidationReport:
    orphans: Dict[str, Set[str]]
    key_uniqueness: Dict[str, KeyUniqueness]
    completeness: Dict[str, Dict[str, Optional[float]]]
    warnings: List[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.warnings

    def to_dict(self) -> Dict[str, Any]:
        return {
            "orphans": {name: sorted(keys) for name, keys in self.orphans.items()},
            "key_uniqueness": {
                name: {"key": ku.key, "distinct": ku.distinct, "rows": ku.rows, "unique": ku.unique}
                for name, ku in self.key_uniqueness.items()
            },
            "completeness": self.completeness,
            "warnings": list(self.warnings),
        }


def _completeness_by_column(table: pl.DataFrame, schema: TableSchema) -> Dict[str, Optional[float]]:
    return {col: check_completeness(table, col) for col in schema.output_columns if col in table.columns}


def validate_tables(
    grants: pl.DataFrame,
    progress_reports: pl.DataFrame,
    site_visits: pl.DataFrame,
) -> ValidationReport:
    """
    Run every check over the three derived tables.

    Raises InternalInvariantViolation when Report_ID or Visit_ID repeats.
    """

    tables = {
        GRANTS.name: (grants, GRANTS),
        PROGRESS_REPORTS.name: (progress_reports, PROGRESS_REPORTS),
        SITE_VISITS.name: (site_visits, SITE_VISITS),
    }
    warnings: List[str] = []

    orphans = {
        PROGRESS_REPORTS.name: check_orphans(progress_reports, grants),
        SITE_VISITS.name: check_orphans(site_visits, grants),
    }
    for name, missing in orphans.items():
        if missing:
            warnings.append(
                f"{len(missing)} Grant_ID value(s) in {name} have no grant row: {', '.join(sorted(missing))}"
            )

    key_uniqueness: Dict[str, KeyUniqueness] = {}
    for name, (table, schema) in tables.items():
        result = check_primary_key_uniqueness(table, schema.key, name=name)
        key_uniqueness[name] = result
        if result.unique:
            continue
        if schema.synthesized:
            raise InternalInvariantViolation(
                f"{schema.key} is not unique in {name}: {result.distinct} distinct keys for {result.rows} rows"
            )
        # Same Grant_ID with differing attributes upstream.
        warnings.append(
            f"{name} has {result.rows - result.distinct} extra row(s) sharing a {schema.key}; "
            "source rows disagree on grant attributes"
        )

    completeness: Dict[str, Dict[str, Optional[float]]] = {}
    for name, (table, schema) in tables.items():
        completeness[name] = _completeness_by_column(table, schema)
        headline = schema.completeness_column
        pct = completeness[name].get(headline) if headline else None
        if pct is not None and pct < LOW_COMPLETENESS_PCT:
            warnings.append(f"{name}.{headline} is only {pct:.0f}% complete")

    for message in warnings:
        logger.warning(message)

    return ValidationReport(
        orphans=orphans,
        key_uniqueness=key_uniqueness,
        completeness=completeness,
        warnings=warnings,
    )
