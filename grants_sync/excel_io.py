"""
Local workbook source and sink used when Airtable credentials are absent.

Reading streams the sheet through openpyxl in read-only mode; writing goes
through pandas + xlsxwriter, one sheet per table.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Union

import openpyxl
import pandas as pd
import polars as pl

logger = logging.getLogger(__name__)

Frame = Union[pl.DataFrame, pd.DataFrame]


def _header_names(header: tuple) -> List[str]:
    return [str(h).strip() if h is not None else f"col_{idx+1}" for idx, h in enumerate(header)]


def _sheet_rows(ws, header_row: int) -> List[Dict[str, Any]]:
    rows_iter = ws.iter_rows(values_only=True)
    for _ in range(header_row - 1):
        next(rows_iter, None)
    header = next(rows_iter, None)
    if header is None or all(h is None for h in header):
        return []

    columns = _header_names(header)
    rows: List[Dict[str, Any]] = []
    for values in rows_iter:
        if values is None or all(v is None or (isinstance(v, str) and not v.strip()) for v in values):
            continue
        padded = list(values[: len(columns)]) + [None] * (len(columns) - len(values))
        rows.append(dict(zip(columns, padded)))
    return rows


def read_excel_rows(
    path: Path,
    sheet_name: Optional[str] = None,
    header_row: int = 1,
) -> List[Dict[str, Any]]:
    """
    Read a sheet into a list of row mappings keyed by header text.

    When ``sheet_name`` is None the first sheet with data rows is used, so a
    leading summary or blank sheet does not hide the export.
    """

    if not path.exists():
        raise FileNotFoundError(f"Input file not found: {path}")

    wb = openpyxl.load_workbook(path, read_only=True, data_only=True)
    try:
        if sheet_name is not None:
            return _sheet_rows(wb[sheet_name], header_row)
        for ws in wb.worksheets:
            rows = _sheet_rows(ws, header_row)
            if rows:
                logger.debug("Using sheet %s from %s", ws.title, path)
                return rows
        return []
    finally:
        wb.close()


class ExcelSource:
    def __init__(self, path: Path, header_row: int = 1) -> None:
        self.path = Path(path)
        self.header_row = header_row

    def fetch_all(self, sheet_name: Optional[str] = None) -> List[Dict[str, Any]]:
        rows = read_excel_rows(self.path, sheet_name=sheet_name, header_row=self.header_row)
        logger.info("Loaded %d rows from %s", len(rows), self.path)
        return rows


def _to_pandas(frame: Frame) -> pd.DataFrame:
    if isinstance(frame, pd.DataFrame):
        return frame
    return pd.DataFrame(frame.to_dicts(), columns=frame.columns)


def write_workbook(path: Path, sheets: Mapping[str, Frame]) -> None:
    """Write each frame to its own sheet with auto-fitted column widths."""

    path.parent.mkdir(parents=True, exist_ok=True)
    with pd.ExcelWriter(path, engine="xlsxwriter") as writer:
        for sheet_name, frame in sheets.items():
            _to_pandas(frame).to_excel(writer, sheet_name=sheet_name, index=False)
            writer.sheets[sheet_name].autofit()


class ExcelSink:
    """
    Collects persisted tables and writes them as sheets of one workbook.

    Nothing touches disk until ``close()`` (or the end of a ``with`` block).
    """

    def __init__(self, path: Path) -> None:
        self.path = Path(path)
        self._sheets: Dict[str, Frame] = {}

    def persist(self, table_name: str, frame: Frame) -> int:
        self._sheets[table_name] = frame
        return len(frame)

    def close(self) -> None:
        if not self._sheets:
            return
        write_workbook(self.path, self._sheets)
        logger.info("Saved %s (%s)", self.path, ", ".join(self._sheets))

    def __enter__(self) -> "ExcelSink":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        if exc_type is None:
            self.close()
