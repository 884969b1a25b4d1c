"""Write or complete a .env file with every setting the grants normalizer reads."""

from __future__ import annotations

import argparse
import sys
from pathlib import Path
from typing import Dict, List, Mapping, Optional, Sequence

from dotenv import dotenv_values

from grants_sync.config import CREDENTIAL_VARS, ENV_DEFAULTS


def render_env(values: Mapping[str, str]) -> str:
    """Render settings in ENV_DEFAULTS order, flagging credentials that are still blank."""

    lines: List[str] = []
    for name in ENV_DEFAULTS:
        value = values.get(name, "")
        if name in CREDENTIAL_VARS and not value:
            lines.append(f"# {name} is required to read from and write to Airtable")
        lines.append(f"{name}={value}")
    extra = [name for name in values if name not in ENV_DEFAULTS]
    if extra:
        lines.append("")
        lines.extend(f"{name}={values[name]}" for name in extra)
    return "\n".join(lines) + "\n"


def merged_values(env_path: Path, force: bool) -> Dict[str, str]:
    """Defaults overlaid with whatever the existing file already sets, unless ``force``."""

    values = dict(ENV_DEFAULTS)
    if env_path.exists() and not force:
        values.update({k: v or "" for k, v in dotenv_values(env_path).items()})
    return values


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Bootstrap a .env file for the grants normalizer.")
    parser.add_argument("--path", type=Path, default=Path(".env"), help="Path to write the .env file (default: .env)")
    parser.add_argument(
        "--force",
        action="store_true",
        help="Discard existing values and rewrite the file from defaults",
    )
    return parser.parse_args(argv)


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = parse_args(argv)
    env_path: Path = args.path
    existed = env_path.exists()
    values = merged_values(env_path, args.force)
    env_path.parent.mkdir(parents=True, exist_ok=True)
    env_path.write_text(render_env(values), encoding="utf-8")

    action = "Rewrote" if existed and args.force else "Updated" if existed else "Wrote"
    print(f"[OK] {action} {env_path}")
    blank = [name for name in CREDENTIAL_VARS if not values.get(name)]
    if blank:
        print(f"[TODO] Fill in {', '.join(blank)} before syncing with Airtable")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
