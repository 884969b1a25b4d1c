"""
Normalization engine that splits the flat grants export into Grants, Progress
Reports and Site Visits, plus the integrity checks run before write-back.
"""

from .errors import (  # noqa: F401
    EmptySourceError,
    InternalInvariantViolation,
    MalformedKeyError,
    NormalizationError,
)

from .schema import (  # noqa: F401
    GRANT_COLS,
    RAW_COLUMNS,
    REPORT_COLS,
    TABLE_SCHEMAS,
    VISIT_COLS,
    TableSchema,
)

from .keys import SyntheticKey, grant_token, synthesize_keys  # noqa: F401

from .validate import (  # noqa: F401
    KeyUniqueness,
    ValidationReport,
    check_completeness,
    check_orphans,
    check_primary_key_uniqueness,
    validate_tables,
)

from .normalize import (  # noqa: F401
    NormalizationReport,
    NormalizationResult,
    build_raw_frame,
    derive_grants,
    derive_progress_reports,
    derive_site_visits,
    normalize_grants_data,
)

__all__ = [
    "EmptySourceError",
    "InternalInvariantViolation",
    "MalformedKeyError",
    "NormalizationError",
    "GRANT_COLS",
    "RAW_COLUMNS",
    "REPORT_COLS",
    "TABLE_SCHEMAS",
    "VISIT_COLS",
    "TableSchema",
    "SyntheticKey",
    "grant_token",
    "synthesize_keys",
    "KeyUniqueness",
    "ValidationReport",
    "check_completeness",
    "check_orphans",
    "check_primary_key_uniqueness",
    "validate_tables",
    "NormalizationReport",
    "NormalizationResult",
    "build_raw_frame",
    "derive_grants",
    "derive_progress_reports",
    "derive_site_visits",
    "normalize_grants_data",
]
