# chapwatch/utils/state.py
# Seen-set of notified chapters with atomic JSON persistence.

from __future__ import annotations
import json
import os
import tempfile
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Iterable, Iterator, List

from ..errors import CorruptStateError, PersistenceError
from .log import get_logger
from .text import normalize_url

LOG = get_logger("chapwatch.state")

DEFAULT_STATE_FILE = "data/seen.json"


@dataclass(frozen=True)
class NotifiedRecord:
    identifier: str
    title: str
    notified_at: datetime

    def to_dict(self) -> Dict[str, str]:
        return {
            "identifier": self.identifier,
            "title": self.title,
            "notified_at": self.notified_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "NotifiedRecord":
        ts = datetime.fromisoformat(str(data["notified_at"]))
        if ts.tzinfo is None:
            ts = ts.replace(tzinfo=timezone.utc)
        return cls(
            identifier=normalize_url(str(data["identifier"])),
            title=str(data.get("title") or ""),
            notified_at=ts.astimezone(timezone.utc),
        )


class SeenSet:
    """Read-only collection of NotifiedRecords keyed by identifier.

    Iteration follows insertion order. The first record for an identifier
    wins; later duplicates are ignored.
    """

    def __init__(self, records: Iterable[NotifiedRecord] = ()):
        self._records: Dict[str, NotifiedRecord] = {}
        for rec in records:
            self._records.setdefault(rec.identifier, rec)

    def __contains__(self, identifier: object) -> bool:
        return identifier in self._records

    def __len__(self) -> int:
        return len(self._records)

    def __iter__(self) -> Iterator[NotifiedRecord]:
        return iter(self._records.values())

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, SeenSet):
            return NotImplemented
        return list(self) == list(other)

    def __repr__(self) -> str:
        return f"SeenSet({len(self)} records)"

    def get(self, identifier: str) -> NotifiedRecord | None:
        return self._records.get(identifier)

    def identifiers(self) -> List[str]:
        return list(self._records)


class StateStore:
    """JSON file of notified chapters.

    File format: a JSON array of {"identifier", "title", "notified_at"}
    objects, rewritten through a temp file + rename. A file that is not JSON
    is read as the old newline-delimited URL log; it is converted to JSON on
    the next save.
    """

    def __init__(self, path: str | Path = DEFAULT_STATE_FILE):
        self.path = Path(path)

    def ensure_location(self) -> None:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise PersistenceError(self.path, str(e)) from e
        if not os.access(self.path.parent, os.W_OK):
            raise PersistenceError(self.path, f"directory {self.path.parent} is not writable")

    def load(self) -> SeenSet:
        if not self.path.exists():
            return SeenSet()
        try:
            raw_bytes = self.path.read_bytes()
        except OSError as e:
            # unreadable is not the same as corrupt; the file may be fine
            raise PersistenceError(self.path, f"read failed: {e}") from e
        try:
            raw = raw_bytes.decode("utf-8").strip()
        except UnicodeDecodeError as e:
            raise CorruptStateError(self.path, "not UTF-8 text") from e
        if not raw:
            return SeenSet()

        if raw[0] not in "[{":
            return self._load_legacy(raw)

        try:
            data = json.loads(raw)
        except json.JSONDecodeError as e:
            raise CorruptStateError(self.path, f"invalid JSON: {e}") from e
        if isinstance(data, dict) and isinstance(data.get("records"), list):
            data = data["records"]
        if not isinstance(data, list):
            raise CorruptStateError(self.path, "expected a JSON array of records")
        try:
            records = [NotifiedRecord.from_dict(d) for d in data]
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            raise CorruptStateError(self.path, f"malformed record: {e}") from e
        return SeenSet(records)

    @staticmethod
    def merge(seen: SeenSet, new_items: Iterable, now: datetime) -> SeenSet:
        """Return `seen` plus one record per item not already present."""
        added = [NotifiedRecord(identifier=it.identifier, title=it.title, notified_at=now) for it in new_items]
        return SeenSet(list(seen) + added)

    def save(self, seen: SeenSet) -> None:
        data = json.dumps([rec.to_dict() for rec in seen], ensure_ascii=False, indent=2)
        tmp_path = None
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with tempfile.NamedTemporaryFile(
                "w", encoding="utf-8", dir=str(self.path.parent), prefix=self.path.name + ".", suffix=".tmp", delete=False
            ) as tmp:
                tmp_path = Path(tmp.name)
                tmp.write(data + "\n")
                tmp.flush()
                os.fsync(tmp.fileno())
            tmp_path.replace(self.path)
        except OSError as e:
            if tmp_path is not None and tmp_path.exists():
                tmp_path.unlink()
            raise PersistenceError(self.path, str(e)) from e
        LOG.debug("Saved %d record(s) to %s", len(seen), self.path)

    def quarantine(self) -> Path | None:
        """Move an unreadable state file aside to <name>.bak; return the new path."""
        if not self.path.exists():
            return None
        bak = self.path.with_suffix(self.path.suffix + ".bak")
        try:
            self.path.replace(bak)
        except OSError:
            LOG.exception("Failed to back up state file %s; it will be overwritten on next save.", self.path)
            return None
        return bak

    # ----------------------- internal -----------------------

    def _load_legacy(self, raw: str) -> SeenSet:
        ts = datetime.fromtimestamp(self.path.stat().st_mtime, tz=timezone.utc)
        lines = [x.strip() for x in raw.splitlines() if x.strip()]
        LOG.warning("State file %s is a newline URL log; importing %d entr(ies).", self.path, len(lines))
        return SeenSet(NotifiedRecord(identifier=normalize_url(x), title="", notified_at=ts) for x in lines)
