from __future__ import annotations

import json
import logging
import os
import time
from pathlib import Path
from typing import Any, Dict, List

from townsfolk.domain.errors import TownsfolkError
from townsfolk.domain.repositories import EntitySnapshotRepository


SNAPSHOT_FORMAT_VERSION = 1

logger = logging.getLogger(__name__)


class SnapshotFormatError(TownsfolkError, ValueError):
    pass


class JsonFileSnapshotRepository(EntitySnapshotRepository):
    """One JSON file holding ``{"format_version", "saved_at", "records"}``.

    Writes go to a sibling ``.tmp`` file that then replaces the snapshot, so a
    crash mid-save leaves the previous snapshot intact.
    """

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)

    def load(self) -> List[Dict[str, Any]]:
        if not self.path.exists():
            return []
        try:
            envelope = json.loads(self.path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as exc:
            raise SnapshotFormatError(f"Snapshot {self.path} is not valid JSON: {exc}") from exc

        if isinstance(envelope, list):
            records = envelope
        elif isinstance(envelope, dict):
            version = envelope.get("format_version", SNAPSHOT_FORMAT_VERSION)
            if int(version) > SNAPSHOT_FORMAT_VERSION:
                raise SnapshotFormatError(f"Snapshot {self.path} uses unsupported format version {version}")
            records = envelope.get("records") or []
        else:
            raise SnapshotFormatError(f"Snapshot {self.path} has an unexpected shape")

        if not isinstance(records, list):
            raise SnapshotFormatError(f"Snapshot {self.path} 'records' must be a list")
        return [dict(row) for row in records if isinstance(row, dict)]

    def save(self, records: List[Dict[str, Any]]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        envelope = {
            "format_version": SNAPSHOT_FORMAT_VERSION,
            "saved_at": int(time.time()),
            "records": list(records),
        }
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        tmp_path.write_text(json.dumps(envelope, ensure_ascii=False, indent=2), encoding="utf-8")
        os.replace(tmp_path, self.path)
        logger.debug("Snapshot written", extra={"path": str(self.path), "records": len(envelope["records"])})
