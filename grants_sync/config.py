from __future__ import annotations

import dataclasses
import json
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from dotenv import load_dotenv


def _parse_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _parse_int(value: str | None, default: int) -> int:
    try:
        return int(value) if value is not None else default
    except ValueError:
        return default


def _parse_float(value: str | None, default: float) -> float:
    try:
        return float(value) if value is not None else default
    except ValueError:
        return default


@dataclass(frozen=True)
class Settings:
    api_key: str
    base_id: str
    source_table: str
    grants_table: str
    reports_table: str
    visits_table: str
    input_file: Path
    output_file: Path
    max_retries: int
    rate_limit_delay: float
    debug_mode: bool
    backup_before_write: bool
    api_url: str = "https://api.airtable.com/v0"
    read_page_size: int = 100
    write_batch_size: int = 10
    timeout: float = 30.0

    @property
    def api_configured(self) -> bool:
        return bool(self.api_key and self.base_id)

    def target_tables(self) -> Dict[str, str]:
        """Engine table name -> Airtable table name."""

        return {
            "grants": self.grants_table,
            "progress_reports": self.reports_table,
            "site_visits": self.visits_table,
        }


ENV_DEFAULTS: Dict[str, str] = {
    "AIRTABLE_API_KEY": "",
    "AIRTABLE_BASE_ID": "",
    "SOURCE_TABLE_NAME": "Foundation Grants Data",
    "TARGET_GRANTS_TABLE": "Grants",
    "TARGET_REPORTS_TABLE": "Progress_Reports",
    "TARGET_VISITS_TABLE": "Site_Visits",
    "INPUT_FILE": "data/input/MESSY_Grants_Data_Export.xlsx",
    "OUTPUT_FILE": "data/output/NORMALIZED_Output.xlsx",
    "MAX_API_RETRIES": "3",
    "API_RATE_LIMIT_DELAY": "0.21",
    "DEBUG_MODE": "false",
    "BACKUP_BEFORE_WRITE": "true",
}
CREDENTIAL_VARS = ("AIRTABLE_API_KEY", "AIRTABLE_BASE_ID")


def _env(name: str) -> str:
    return os.getenv(name, ENV_DEFAULTS[name])


def load_settings(env_file: Optional[Path] = None) -> Settings:
    load_dotenv(env_file)
    return Settings(
        api_key=_env("AIRTABLE_API_KEY"),
        base_id=_env("AIRTABLE_BASE_ID"),
        source_table=_env("SOURCE_TABLE_NAME"),
        grants_table=_env("TARGET_GRANTS_TABLE"),
        reports_table=_env("TARGET_REPORTS_TABLE"),
        visits_table=_env("TARGET_VISITS_TABLE"),
        input_file=Path(_env("INPUT_FILE")),
        output_file=Path(_env("OUTPUT_FILE")),
        max_retries=_parse_int(_env("MAX_API_RETRIES"), 3),
        rate_limit_delay=_parse_float(_env("API_RATE_LIMIT_DELAY"), 0.21),
        debug_mode=_parse_bool(_env("DEBUG_MODE"), False),
        backup_before_write=_parse_bool(_env("BACKUP_BEFORE_WRITE"), True),
    )


def load_config_file(path: Path) -> Dict[str, Any]:
    """Read a YAML or JSON override file keyed by Settings field names."""

    text = path.read_text(encoding="utf-8")
    if path.suffix.lower() == ".json":
        data = json.loads(text)
    else:
        data = yaml.safe_load(text) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Config file {path} must contain a mapping.")
    return data


def apply_overrides(settings: Settings, overrides: Dict[str, Any]) -> Settings:
    known = {f.name: f for f in dataclasses.fields(Settings)}
    unknown = sorted(set(overrides) - set(known))
    if unknown:
        raise ValueError(f"Unknown settings in config file: {', '.join(unknown)}")

    changes: Dict[str, Any] = {}
    for name, value in overrides.items():
        current = getattr(settings, name)
        changes[name] = Path(value) if isinstance(current, Path) else value
    return dataclasses.replace(settings, **changes)


def ensure_directories(settings: Settings) -> None:
    settings.output_file.parent.mkdir(parents=True, exist_ok=True)


def describe_settings(settings: Settings) -> List[str]:
    base = f"{settings.base_id[:10]}..." if settings.base_id else "(not set)"
    return [
        f"API configured: {'yes' if settings.api_configured else 'no'}",
        f"Base ID: {base}",
        f"Source table: {settings.source_table}",
        f"Target tables: {settings.grants_table}, {settings.reports_table}, {settings.visits_table}",
        f"Input file: {settings.input_file}",
        f"Output file: {settings.output_file}",
        f"Max API retries: {settings.max_retries}, rate limit delay: {settings.rate_limit_delay}s",
        f"Debug mode: {settings.debug_mode}, backup before write: {settings.backup_before_write}",
    ]
