from __future__ import annotations

import logging
import time
from typing import Any, Callable, Dict, Iterator, List, Mapping, Optional, Sequence, Union
from urllib.parse import quote

import polars as pl
import requests

from .config import Settings

logger = logging.getLogger(__name__)

THROTTLED_STATUS = frozenset({429})
RETRYABLE_STATUS = THROTTLED_STATUS | {500, 502, 503, 504}
RETRY_BACKOFF_SECONDS = 1.0
RECORD_ID_FIELD = "airtable_record_id"


class AirtableError(Exception):
    """Non-success response from the Airtable API."""

    def __init__(self, status_code: int, body: str, context: str = "") -> None:
        self.status_code = status_code
        self.body = body
        prefix = f"{context}: " if context else ""
        super().__init__(f"{prefix}Airtable API error {status_code} - {body}")


def _chunks(items: Sequence[Any], size: int) -> Iterator[Sequence[Any]]:
    for start in range(0, len(items), size):
        yield items[start : start + size]


class AirtableClient:
    """
    Record source and sink for one Airtable base.

    Reads page through ``offset`` tokens, writes and deletes go out in batches
    of ``write_batch_size`` (Airtable caps both at 10). Every request is
    followed by ``rate_limit_delay`` seconds of sleep to stay under 5 req/s.
    """

    def __init__(
        self,
        settings: Settings,
        session: Optional[requests.Session] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if not settings.api_configured:
            raise ValueError("AIRTABLE_API_KEY and AIRTABLE_BASE_ID must both be set.")
        self.settings = settings
        self.base_url = f"{settings.api_url.rstrip('/')}/{settings.base_id}"
        self.session = session or requests.Session()
        self.session.headers.update(
            {
                "Authorization": f"Bearer {settings.api_key}",
                "Content-Type": "application/json",
            }
        )
        self._sleep = sleep

    def _table_url(self, table: str) -> str:
        return f"{self.base_url}/{quote(table, safe='')}"

    def _retry_wait(self, response: requests.Response, attempt: int) -> float:
        fallback = RETRY_BACKOFF_SECONDS * attempt
        try:
            return float(response.headers.get("Retry-After", fallback))
        except (TypeError, ValueError):
            # HTTP-date form
            return fallback

    def _request(self, method: str, url: str, context: str, **kwargs: Any) -> Dict[str, Any]:
        # a throttled POST wrote nothing; any other failed POST may have
        retryable = THROTTLED_STATUS if method == "POST" else RETRYABLE_STATUS
        attempts = 1 + max(self.settings.max_retries, 0)
        attempt = 0
        while True:
            attempt += 1
            response = self.session.request(method, url, timeout=self.settings.timeout, **kwargs)
            self._sleep(self.settings.rate_limit_delay)
            if response.status_code == 200:
                return response.json()
            if response.status_code not in retryable or attempt >= attempts:
                raise AirtableError(response.status_code, response.text, context=context)
            wait = self._retry_wait(response, attempt)
            logger.warning(
                "%s: HTTP %d on attempt %d/%d; retrying in %.2fs",
                context,
                response.status_code,
                attempt,
                attempts,
                wait,
            )
            self._sleep(wait)

    def iter_records(self, table: str) -> Iterator[Dict[str, Any]]:
        """Yield raw Airtable records (``id``, ``fields``) across all pages."""

        url = self._table_url(table)
        params: Dict[str, Any] = {"pageSize": self.settings.read_page_size}
        page = 0
        while True:
            page += 1
            logger.debug("Fetching page %d of %s", page, table)
            data = self._request("GET", url, context=f"read {table}", params=params)
            yield from data.get("records", [])
            offset = data.get("offset")
            if not offset:
                break
            params = {**params, "offset": offset}

    def fetch_all(self, table: str) -> List[Dict[str, Any]]:
        """Return every record's fields, keeping the Airtable id under ``airtable_record_id``."""

        rows = []
        for record in self.iter_records(table):
            fields = dict(record.get("fields", {}))
            fields[RECORD_ID_FIELD] = record.get("id")
            rows.append(fields)
        logger.info("Extracted %d records from Airtable table %s", len(rows), table)
        return rows

    def persist(self, table: str, rows: Union[pl.DataFrame, Sequence[Mapping[str, Any]]]) -> int:
        """
        Create one Airtable record per row; returns the number written.

        Null cells are dropped from the payload. Calling this twice creates the
        records twice; use ``delete_all_records`` first for a full reload.
        """

        dicts = rows.to_dicts() if isinstance(rows, pl.DataFrame) else [dict(r) for r in rows]
        records = [
            {"fields": {k: v for k, v in row.items() if v is not None and k != RECORD_ID_FIELD}}
            for row in dicts
        ]
        url = self._table_url(table)
        batches = list(_chunks(records, self.settings.write_batch_size))
        written = 0
        for number, batch in enumerate(batches, start=1):
            logger.info("Writing batch %d of %d (%d records) to %s", number, len(batches), len(batch), table)
            self._request("POST", url, context=f"write batch {number} to {table}", json={"records": list(batch)})
            written += len(batch)
        logger.info("Wrote %d records to %s", written, table)
        return written

    def delete_all_records(self, table: str) -> int:
        """Delete every record in ``table``; returns the number deleted."""

        try:
            record_ids = [record["id"] for record in self.iter_records(table)]
        except AirtableError as exc:
            if exc.status_code == 404:
                logger.warning("Table %s not found; skipping deletion", table)
                return 0
            raise
        if not record_ids:
            logger.info("Table %s is already empty", table)
            return 0

        url = self._table_url(table)
        batches = list(_chunks(record_ids, self.settings.write_batch_size))
        for number, batch in enumerate(batches, start=1):
            logger.info("Deleting batch %d of %d (%d records) from %s", number, len(batches), len(batch), table)
            self._request(
                "DELETE",
                url,
                context=f"delete batch {number} from {table}",
                params=[("records[]", record_id) for record_id in batch],
            )
        logger.info("Deleted %d records from %s", len(record_ids), table)
        return len(record_ids)

    def list_tables(self) -> List[Dict[str, Any]]:
        """Tables visible to the token in the configured base (metadata API)."""

        api_root = self.settings.api_url.rstrip("/")
        url = f"{api_root}/meta/bases/{self.settings.base_id}/tables"
        return self._request("GET", url, context="list tables").get("tables", [])
