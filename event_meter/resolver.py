"""Resolve metric keys and event times from inbound records."""

from __future__ import annotations

import json
import re
from datetime import datetime, timezone
from typing import Any, Mapping, Optional

# %{field} or %{[nested][field]}
FIELD_REF_REGEX = re.compile(r"%\{([^}]+)\}")
NESTED_REF_REGEX = re.compile(r"\[([^\]]+)\]")
TIMESTAMP_FIELD = "@timestamp"

_MISSING = object()


def _lookup(record: Mapping[str, Any], reference: str) -> Any:
    """Fetch ``name`` or ``[a][b]`` from a record; returns _MISSING if absent."""
    reference = reference.strip()
    if reference.startswith("["):
        path = NESTED_REF_REGEX.findall(reference)
    else:
        path = [reference]
    value: Any = record
    for part in path:
        if not isinstance(value, Mapping) or part not in value:
            return _MISSING
        value = value[part]
    return value


def _stringify(value: Any) -> str:
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, list):
        return ",".join(_stringify(item) for item in value)
    if isinstance(value, dict):
        return json.dumps(value, sort_keys=True, separators=(",", ":"))
    if value is None:
        return ""
    return str(value)


def parse_timestamp(value: Any) -> Optional[float]:
    """Convert an ISO-8601 string or epoch number to epoch seconds."""
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if not isinstance(value, str) or not value.strip():
        return None
    text = value.strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.timestamp()


class KeyResolver:
    """Interpolates a ``meter`` template such as ``http_%{response}``."""

    def __init__(self, template: str, *, timestamp_field: str = TIMESTAMP_FIELD) -> None:
        self.template = template
        self.timestamp_field = timestamp_field

    def resolve(self, record: Mapping[str, Any]) -> str:
        def _replace(match: re.Match[str]) -> str:
            value = _lookup(record, match.group(1))
            if value is _MISSING:
                # Unresolved references stay verbatim in the key.
                return match.group(0)
            return _stringify(value)

        return FIELD_REF_REGEX.sub(_replace, self.template)

    def event_time(self, record: Mapping[str, Any]) -> Optional[float]:
        return parse_timestamp(record.get(self.timestamp_field))
