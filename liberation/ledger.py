"""Append-only history of completed runs."""

from __future__ import annotations

import json
import threading
from pathlib import Path
from typing import Protocol

from .errors import LedgerError
from .models import LiberationRecord


class RunLedger(Protocol):
    def insert(self, record: LiberationRecord) -> None: ...

    def list(self, owner_id: str) -> list[LiberationRecord]: ...

    def delete(self, run_id: str, owner_id: str) -> bool: ...


class JsonLinesLedger:
    """Ledger stored as one JSON object per line."""

    def __init__(self, path: Path):
        self.path = Path(path)
        self._lock = threading.Lock()

    def insert(self, record: LiberationRecord) -> None:
        line = json.dumps(record.to_dict(), sort_keys=True)
        with self._lock:
            try:
                self.path.parent.mkdir(parents=True, exist_ok=True)
                with self.path.open("a", encoding="utf-8") as handle:
                    handle.write(line + "\n")
            except OSError as e:
                raise LedgerError(f"Cannot write {self.path}: {e}") from e

    def list(self, owner_id: str) -> list[LiberationRecord]:
        """Records of ``owner_id``, newest first."""
        with self._lock:
            records = self._read()
        mine = [record for record in records if record.owner_id == owner_id]
        return sorted(mine, key=lambda record: record.created_at, reverse=True)

    def delete(self, run_id: str, owner_id: str) -> bool:
        """Remove one of the owner's records; False when there was none."""
        with self._lock:
            records = self._read()
            kept = [r for r in records if not (r.run_id == run_id and r.owner_id == owner_id)]
            if len(kept) == len(records):
                return False
            try:
                tmp = self.path.with_suffix(self.path.suffix + ".tmp")
                tmp.write_text(
                    "".join(json.dumps(r.to_dict(), sort_keys=True) + "\n" for r in kept),
                    encoding="utf-8",
                )
                tmp.replace(self.path)
            except OSError as e:
                raise LedgerError(f"Cannot rewrite {self.path}: {e}") from e
            return True

    def _read(self) -> list[LiberationRecord]:
        if not self.path.exists():
            return []
        try:
            lines = self.path.read_text(encoding="utf-8").splitlines()
        except OSError as e:
            raise LedgerError(f"Cannot read {self.path}: {e}") from e

        records = []
        for number, line in enumerate(lines, start=1):
            if not line.strip():
                continue
            try:
                records.append(LiberationRecord.from_dict(json.loads(line)))
            except (ValueError, KeyError, TypeError) as e:
                raise LedgerError(f"Corrupt ledger line {number} in {self.path}: {e}") from e
        return records
