"""Point-in-time host telemetry record."""

from __future__ import annotations

import json

from devstate._constants import PAYLOAD_INDENT
from devstate.models._base import DevstateModel


class TelemetrySnapshot(DevstateModel):
    """Host telemetry published on every tick.

    Field order is the wire order. Any metric the current platform does not
    support is ``None`` and serializes as ``null``; it never aborts the
    snapshot.
    """

    architecture_name: str
    board_name: str | None = None
    cpu_count: int
    cpu_frequency: int | None = None
    cpu_load: float | None = None
    temperature: float | None = None
    throttled: int | None = None
    free_hdd_space: int | None = None
    free_data_space: int | None = None
    free_memory: int
    total_hdd_space: int | None = None
    total_data_space: int | None = None
    total_memory: int
    platform: str
    uptime: int
    version: str
    timestamp: int

    def to_payload(self) -> bytes:
        """Serialize as UTF-8 JSON with 4-space indentation."""
        return json.dumps(
            self.model_dump(by_alias=True),
            indent=PAYLOAD_INDENT,
            ensure_ascii=False,
        ).encode("utf-8")

    @classmethod
    def from_payload(cls, payload: bytes | str) -> TelemetrySnapshot:
        return cls.model_validate_json(payload)
