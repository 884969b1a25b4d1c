from __future__ import annotations

import re
from typing import Any, Iterable, List, NamedTuple

from .errors import MalformedKeyError

GRANT_ID_PATTERN = re.compile(r"^GR-(\d{4})-(\d+)$")
GRANT_ID_PREFIX = "GR-"
ORDINAL_WIDTH = 4

REPORT_PREFIX = "RPT"
VISIT_PREFIX = "VST"


class SyntheticKey(NamedTuple):
    """
    Structured identifier for a child row that has no natural key.

    Stays a tuple inside the engine; ``str()`` renders the persisted form,
    e.g. ``SyntheticKey("RPT", "2023-0001", 1)`` -> ``"RPT-2023-0001-0001"``.
    """

    prefix: str
    grant_token: str
    ordinal: int

    def __str__(self) -> str:
        return f"{self.prefix}-{self.grant_token}-{self.ordinal:0{ORDINAL_WIDTH}d}"


def grant_token(grant_id: Any) -> str:
    """Return the year/sequence part of a ``GR-<year>-<seq>`` id.

    Example:
        "GR-2023-0001" -> "2023-0001"
    """
    if not isinstance(grant_id, str) or not GRANT_ID_PATTERN.match(grant_id):
        raise MalformedKeyError(grant_id)
    return grant_id[len(GRANT_ID_PREFIX):]


def synthesize_keys(prefix: str, grant_ids: Iterable[Any], ordinals: Iterable[int]) -> List[SyntheticKey]:
    """Build one key per (Grant_ID, ordinal) pair; ordinals are 1-based per grant."""

    tokens: dict[str, str] = {}
    keys: List[SyntheticKey] = []
    for grant_id, ordinal in zip(grant_ids, ordinals):
        if grant_id not in tokens:
            try:
                tokens[grant_id] = grant_token(grant_id)
            except MalformedKeyError as exc:
                raise MalformedKeyError(grant_id, context=f"cannot build {prefix} key") from exc
        keys.append(SyntheticKey(prefix, tokens[grant_id], int(ordinal)))
    return keys
