"""
Engine-level exceptions for the grant normalization pipeline.

Anything raised from here means nothing was derived. Data-quality findings that
still allow write-back are reported through ``ValidationReport.warnings``.
"""

from __future__ import annotations

from typing import Any


class NormalizationError(Exception):
    """Base exception for fatal normalization failures."""


class EmptySourceError(NormalizationError):
    """Raised when the raw row set has zero rows."""

    def __init__(self, message: str = "Raw row set is empty; nothing to normalize.") -> None:
        super().__init__(message)


class MalformedKeyError(NormalizationError):
    """Raised when a Grant_ID cannot be used to synthesize child keys."""

    def __init__(self, grant_id: Any, context: str = "") -> None:
        self.grant_id = grant_id
        detail = f" ({context})" if context else ""
        super().__init__(
            f"Grant_ID {grant_id!r} does not match the expected GR-<year>-<seq> shape{detail}"
        )


class InternalInvariantViolation(NormalizationError):
    """Raised when a synthesized primary key turns out not to be unique."""
