"""Secret-free rendering of configuration for DEBUG logs.

Broker, SMTP and Matrix credentials live in the settings dataclasses.
:func:`redact_for_log` turns a settings tree into plain dicts and lists with
every credential masked, so the whole configuration can be logged at
startup.
"""

from __future__ import annotations

import dataclasses
from collections.abc import Mapping, Sequence
from pathlib import PurePath
from typing import Any

REDACTED = "<redacted>"
_MAX_DEPTH = 20

# Matched against lower-cased keys; "access_token" and "mqtt_password" both hit.
_SENSITIVE_FRAGMENTS: tuple[str, ...] = ("password", "passwd", "token", "secret", "authorization")


def _is_sensitive(key: str) -> bool:
    lowered = key.lower()
    return any(fragment in lowered for fragment in _SENSITIVE_FRAGMENTS)


def _as_mapping(value: Any) -> Mapping[str, Any] | None:
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return {f.name: getattr(value, f.name) for f in dataclasses.fields(value)}
    if isinstance(value, Mapping):
        return {str(k): v for k, v in value.items()}
    return None


def redact_for_log(value: Any, *, max_string: int = 512, _depth: int = 0) -> Any:
    """Return a log-safe copy of *value*.

    Settings dataclasses and mappings become dicts whose credential entries
    read ``<redacted>`` (``None`` stays ``None`` so an unset secret is still
    visible as unset). Paths become strings and long strings are truncated.
    """
    if _depth > _MAX_DEPTH:
        return "<max-depth>"
    if value is None or isinstance(value, (bool, int, float)):
        return value
    if isinstance(value, PurePath):
        return str(value)
    if isinstance(value, str):
        return value if len(value) <= max_string else f"{value[:max_string]}…<truncated>"

    mapping = _as_mapping(value)
    if mapping is not None:
        return {
            key: (REDACTED if item is not None else None)
            if _is_sensitive(key)
            else redact_for_log(item, max_string=max_string, _depth=_depth + 1)
            for key, item in mapping.items()
        }

    if isinstance(value, Sequence) and not isinstance(value, (bytes, bytearray)):
        return [redact_for_log(item, max_string=max_string, _depth=_depth + 1) for item in value]

    return repr(value)
