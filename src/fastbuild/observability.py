"""Structured logging helpers."""

from __future__ import annotations

import json
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

RecordSink = Callable[[dict[str, Any]], None]


@dataclass(slots=True)
class StructuredLogger:
    records: list[dict[str, Any]] = field(default_factory=list)
    sink: RecordSink | None = None

    def log(
        self,
        *,
        operation: str,
        profile: str | None,
        phase: str | None,
        component: str | None,
        message: str,
        level: str = "info",
        extra: dict[str, Any] | None = None,
    ) -> None:
        record: dict[str, Any] = {
            "level": level,
            "operation": operation,
            "profile": profile,
            "phase": phase,
            "component": component,
            "message": message,
        }
        if extra is not None:
            record["extra"] = extra
        self.records.append(record)
        if self.sink is not None:
            self.sink(record)

    def records_for_profile(self, profile: str) -> list[dict[str, Any]]:
        return [record for record in self.records if record.get("profile") == profile]

    def records_at(self, level: str) -> list[dict[str, Any]]:
        return [record for record in self.records if record.get("level") == level]

    def to_json_lines(self, path: str | Path) -> Path:
        output_path = Path(path)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        lines = [json.dumps(record, sort_keys=True) for record in self.records]
        output_path.write_text("\n".join(lines) + "\n", encoding="utf-8")
        return output_path


def format_record(record: dict[str, Any]) -> str:
    """Render one record as a single human-readable line."""
    prefix = "" if record.get("level") == "info" else f"{str(record.get('level')).upper()}: "
    line = f"{prefix}{record['message']}"
    extra = record.get("extra")
    if record.get("level") == "debug" and extra:
        details = ", ".join(f"{key}={value}" for key, value in extra.items())
        line = f"{line} ({details})"
    return line
