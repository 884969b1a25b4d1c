"""Verify Airtable credentials by listing the tables in the configured base."""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import Optional, Sequence

from grants_sync.airtable_client import AirtableClient, AirtableError
from grants_sync.config import load_settings

HINTS = {
    401: "The token is invalid or lacks scopes (need data.records:read, data.records:write, schema.bases:read).",
    403: "The token has no access to this base; add the base when creating the token.",
    404: "The base ID was not found; check AIRTABLE_BASE_ID (it starts with 'app').",
}


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="List the tables an Airtable token can see.")
    parser.add_argument("--env-file", type=Path, help="Explicit .env file to load.")
    return parser.parse_args(argv)


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = parse_args(argv)
    logging.basicConfig(level=logging.INFO, format="%(asctime)s [%(levelname)s] %(message)s")
    settings = load_settings(args.env_file)
    if not settings.api_configured:
        print("[FAIL] AIRTABLE_API_KEY and AIRTABLE_BASE_ID must be set (see bootstrap_env.py).")
        return 1

    print(f"[..] Token starts with {settings.api_key[:10]}..., base {settings.base_id}")
    try:
        tables = AirtableClient(settings).list_tables()
    except AirtableError as exc:
        print(f"[FAIL] HTTP {exc.status_code}: {HINTS.get(exc.status_code, exc.body)}")
        return 1

    print(f"[OK] Connected; {len(tables)} table(s) in base:")
    for table in tables:
        print(f"  - {table.get('name')} ({table.get('id')}, {len(table.get('fields', []))} fields)")
    expected = {settings.source_table, *settings.target_tables().values()}
    missing = sorted(expected - {t.get("name") for t in tables})
    if missing:
        print(f"[WARN] Expected table(s) not found: {', '.join(missing)}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
