"""
Record sources and sinks for the grants normalizer: the Airtable REST API and
local Excel workbooks, plus environment-driven settings.
"""

from .config import Settings, describe_settings, load_settings  # noqa: F401
from .airtable_client import AirtableClient, AirtableError  # noqa: F401
from .excel_io import ExcelSink, ExcelSource, read_excel_rows, write_workbook  # noqa: F401

__all__ = [
    "Settings",
    "describe_settings",
    "load_settings",
    "AirtableClient",
    "AirtableError",
    "ExcelSink",
    "ExcelSource",
    "read_excel_rows",
    "write_workbook",
]
