"""
Persisted sync state.

Maps every post that has been upserted to the remote store to the fingerprint
it was upserted with, the reference the store returned and the time of the
upsert. The file is rewritten as a whole at the end of each sync pass; a pass
interrupted before that leaves the previous file in place, so the next pass
sees every post whose remote call did not get recorded and sends it again.
"""

from __future__ import annotations

import json
import os
import tempfile
from dataclasses import dataclass, asdict
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Set, Union

from ..config import get_logger, STATE_FILENAME, STATE_SCHEMA_VERSION
from .error_tracker import StatePersistenceError


logger = get_logger(__name__)


def read_json_file(path: Path) -> Optional[Dict[str, Any]]:
    """Read a JSON object from a file; None when missing or unreadable."""
    if not path.exists():
        return None
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, ValueError) as e:
        logger.warning(f"Ignoring unreadable state file {path}: {e}")
        return None
    if not isinstance(data, dict):
        logger.warning(f"Ignoring malformed state file {path}")
        return None
    return data


def write_json_atomic(path: Path, data: Dict[str, Any]) -> None:
    """
    Replace a file with the JSON rendering of data.

    The content goes to a temporary file in the same directory first, so a
    crash never leaves a half-written file behind.

    Raises:
        StatePersistenceError: If the file cannot be written
    """
    tmp_name = None
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(prefix=path.name, suffix=".tmp", dir=path.parent)
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2, ensure_ascii=False)
        os.replace(tmp_name, path)
    except (OSError, TypeError, ValueError) as e:
        if tmp_name and os.path.exists(tmp_name):
            os.unlink(tmp_name)
        raise StatePersistenceError(
            f"Failed to write {path}: {e}",
            recovery_suggestion="Check that the state directory is writable",
        )


@dataclass
class SyncRecord:
    fingerprint: str
    remote_ref: str
    synced_at: str

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> Optional[SyncRecord]:
        fingerprint = data.get("fingerprint")
        if not isinstance(fingerprint, str):
            return None
        return cls(
            fingerprint=fingerprint,
            remote_ref=str(data.get("remote_ref") or ""),
            synced_at=str(data.get("synced_at") or ""),
        )


class StateStore:
    def __init__(self, state_dir: Union[str, Path] = ".", filename: str = STATE_FILENAME):
        self.state_dir = Path(state_dir)
        self.filepath = self.state_dir / filename
        self.version = STATE_SCHEMA_VERSION
        self._records: Dict[str, SyncRecord] = {}

    def load(self) -> StateStore:
        """Load the state file. A missing or corrupt file yields an empty store."""
        self.version = STATE_SCHEMA_VERSION
        self._records = {}
        data = read_json_file(self.filepath)
        if data is None:
            return self
        posts = data.get("posts")
        if not isinstance(posts, dict):
            logger.warning(f"Ignoring state file without posts mapping: {self.filepath}")
            return self
        for item_id, raw in posts.items():
            record = SyncRecord.from_dict(raw) if isinstance(raw, dict) else None
            if record is None:
                logger.warning(f"Skipping malformed state record: {item_id}")
                continue
            self._records[item_id] = record
        version = data.get("version")
        if isinstance(version, int):
            self.version = version
        logger.debug(f"Loaded {len(self._records)} sync records from {self.filepath}")
        return self

    def save(self) -> None:
        data = {
            "version": self.version,
            "posts": {item_id: asdict(record) for item_id, record in self._records.items()},
        }
        write_json_atomic(self.filepath, data)

    def get_record(self, item_id: str) -> Optional[SyncRecord]:
        return self._records.get(item_id)

    def get_fingerprint(self, item_id: str) -> Optional[str]:
        record = self._records.get(item_id)
        return record.fingerprint if record else None

    def upsert(self, item_id: str, fingerprint: str, remote_ref: str) -> None:
        self._records[item_id] = SyncRecord(
            fingerprint=fingerprint,
            remote_ref=remote_ref,
            synced_at=datetime.now(timezone.utc).isoformat(),
        )

    def remove(self, item_id: str) -> None:
        self._records.pop(item_id, None)

    def tracked_ids(self) -> Set[str]:
        return set(self._records)

    def records(self) -> Dict[str, SyncRecord]:
        return dict(self._records)

    def clear(self) -> None:
        self._records = {}

    def __len__(self) -> int:
        return len(self._records)
