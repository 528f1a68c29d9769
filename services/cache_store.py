"""File-backed dataset store: one directory per dataset, one file per record."""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Dict, Iterator, List

import json_utils as json
from services.records import Record, RecordFormatError
from services.text_utils import is_valid_datfile

logger = logging.getLogger(__name__)

STATUS_FILENAME = "status.json"
RECORD_DIRNAME = "record"


class CacheError(Exception):
    """Base exception for dataset store errors."""


class InvalidDatasetError(CacheError):
    """Raised when a dataset id is not a safe directory name."""


class FileCache:
    """
    A single dataset under `<cache_dir>/<datfile>/`.

    Layout:
        record/<stamp>_<id>   one serialized record per file
        status.json           record count and newest stamp
    """

    def __init__(self, datfile: str, cache_dir: Path) -> None:
        self.datfile = datfile
        self._valid = is_valid_datfile(datfile)
        self.path = Path(cache_dir) / (datfile if self._valid else "_invalid_")
        self.record_dir = self.path / RECORD_DIRNAME
        self.status_path = self.path / STATUS_FILENAME

    def exists(self) -> bool:
        return self._valid and self.path.is_dir()

    def create(self) -> None:
        if not self._valid:
            raise InvalidDatasetError(f"invalid dataset id: {self.datfile!r}")
        self.record_dir.mkdir(parents=True, exist_ok=True)
        if not self.status_path.exists():
            self.sync_status()

    def add_data(self, record: Record) -> None:
        """Persist one record. Re-adding an identical record is a no-op."""
        if not self.exists():
            raise CacheError(f"dataset {self.datfile} does not exist")
        self.record_dir.mkdir(parents=True, exist_ok=True)
        target = self.record_dir / record.idstr
        if target.exists():
            logger.debug("Record %s/%s already stored", self.datfile, record.idstr)
            return
        tmp = target.with_name(target.name + ".tmp")
        tmp.write_text(record.recstr() + "\n", encoding="utf-8")
        os.replace(tmp, target)

    def _record_files(self) -> List[Path]:
        if not self.record_dir.is_dir():
            return []
        return sorted(
            (p for p in self.record_dir.iterdir() if p.is_file() and not p.name.endswith(".tmp")),
            key=lambda p: p.name,
        )

    def records(self) -> Iterator[Record]:
        """Stored records, oldest first. Unreadable files are logged and skipped."""
        for path in self._record_files():
            try:
                yield Record.parse(self.datfile, path.read_text(encoding="utf-8"))
            except (OSError, RecordFormatError) as exc:
                logger.warning("Skipping unreadable record %s: %s", path, exc)

    def __len__(self) -> int:
        return len(self._record_files())

    def status(self) -> Dict[str, int]:
        if not self.status_path.exists():
            return {"records": 0, "stamp": 0}
        try:
            return json.read_file(self.status_path)
        except (OSError, json.JSONDecodeError) as exc:
            logger.warning("Unreadable status for %s: %s", self.datfile, exc)
            return {"records": 0, "stamp": 0}

    def sync_status(self) -> None:
        """Recompute the status metadata from the stored records."""
        files = self._record_files()
        newest = 0
        for path in files:
            stamp, _, _ = path.name.partition("_")
            try:
                newest = max(newest, int(stamp))
            except ValueError:
                continue
        self.path.mkdir(parents=True, exist_ok=True)
        json.write_file(self.status_path, {"records": len(files), "stamp": newest})

    def search(self) -> bool:
        """Re-index the dataset from disk; True when it holds any record."""
        if not self.exists():
            return False
        self.sync_status()
        return len(self) > 0


class CacheStore:
    """Factory for FileCache objects rooted at one cache directory."""

    def __init__(self, cache_dir: str) -> None:
        self.cache_dir = Path(cache_dir)

    def get(self, datfile: str) -> FileCache:
        return FileCache(datfile, self.cache_dir)

    def __call__(self, datfile: str) -> FileCache:
        return self.get(datfile)

    def datasets(self) -> List[str]:
        if not self.cache_dir.is_dir():
            return []
        return sorted(p.name for p in self.cache_dir.iterdir() if p.is_dir() and is_valid_datfile(p.name))
