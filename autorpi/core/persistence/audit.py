"""
Audit ledger — append-only provisioning history.

Every run writes one entry to an NDJSON (newline-delimited JSON) file
next to the marker directory. Useful for answering "what ran on this
Pi, when, and what failed" after the fact.

The ledger is append-only: entries are never modified or deleted.
"""

from __future__ import annotations

import json
import logging
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field

from autorpi.core.models.report import RunReport

logger = logging.getLogger(__name__)

DEFAULT_AUDIT_FILE = "audit.ndjson"


class AuditEntry(BaseModel):
    """A single audit log entry."""

    timestamp: str = Field(default_factory=lambda: datetime.now(UTC).isoformat())
    operation_id: str = ""
    config_path: str = ""

    # Results
    status: str = ""               # ok, partial, failed
    units_total: int = 0
    units_succeeded: int = 0
    units_failed: int = 0
    units_skipped: int = 0
    reboot_required: bool = False
    duration_ms: int = 0

    applied: list[str] = Field(default_factory=list)
    errors: list[str] = Field(default_factory=list)

    # Extensible context
    context: dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def from_report(cls, report: RunReport, config_path: str = "", **kwargs: Any) -> AuditEntry:
        fields: dict[str, Any] = {
            "operation_id": report.operation_id,
            "config_path": config_path,
            "status": report.status,
            "units_total": report.total,
            "units_succeeded": report.succeeded,
            "units_failed": report.failed,
            "units_skipped": report.skipped,
            "reboot_required": report.reboot_required,
            "applied": [r.unit for r in report.results if r.ok],
            "errors": [f"{r.unit}: {r.message}" for r in report.results if r.failed],
        }
        fields.update(kwargs)
        return cls(**fields)


class AuditWriter:
    """Append-only audit ledger writer.

    Each call to write() appends a single JSON line to the ledger file.
    The file is created if it doesn't exist.
    """

    def __init__(self, path: Path | None = None, state_dir: Path | None = None):
        if path is not None:
            self._path = path
        elif state_dir is not None:
            self._path = state_dir.parent / DEFAULT_AUDIT_FILE
        else:
            self._path = Path(DEFAULT_AUDIT_FILE)

    @property
    def path(self) -> Path:
        return self._path

    def write(self, entry: AuditEntry) -> None:
        """Append an audit entry to the ledger."""
        data = entry.model_dump(mode="json")
        line = json.dumps(data, ensure_ascii=False) + "\n"

        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            with self._path.open("a", encoding="utf-8") as f:
                f.write(line)
            logger.debug("Audit entry written: %s", entry.operation_id)
        except OSError as e:
            logger.error("Failed to write audit entry: %s", e)

    def read_all(self) -> list[AuditEntry]:
        """Read all entries from the ledger, oldest first."""
        if not self._path.is_file():
            return []

        entries = []
        try:
            with self._path.open("r", encoding="utf-8") as f:
                for line_num, line in enumerate(f, start=1):
                    line = line.strip()
                    if not line:
                        continue
                    try:
                        entries.append(AuditEntry.model_validate(json.loads(line)))
                    except ValueError as e:
                        logger.warning("Skipping corrupt audit entry at line %d: %s", line_num, e)
        except OSError as e:
            logger.error("Failed to read audit ledger: %s", e)

        return entries

    def read_recent(self, n: int = 20) -> list[AuditEntry]:
        """Read the most recent N entries."""
        return self.read_all()[-n:]
