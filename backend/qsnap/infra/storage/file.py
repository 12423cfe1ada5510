from __future__ import annotations

import errno
import os
import re
from pathlib import Path

from qsnap.infra.ports.storage import WRITE_OK, StoragePort, WriteResult, WriteStatus, encoded_size

_SAFE_KEY = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._-]*$")
_QUOTA_ERRNOS = {errno.ENOSPC, getattr(errno, "EDQUOT", errno.ENOSPC)}


class FileStorage(StoragePort):
    """One UTF-8 file per key inside ``base_dir``."""

    def __init__(self, base_dir: Path, capacity_bytes: int | None = None):
        self.base_dir = base_dir
        self.capacity_bytes = capacity_bytes
        self.base_dir.mkdir(parents=True, exist_ok=True)

    def _path(self, key: str) -> Path:
        if not _SAFE_KEY.match(key):
            raise ValueError(f"Unsupported storage key: {key!r}")
        return self.base_dir / key

    def used_bytes(self, *, exclude: str | None = None) -> int:
        total = 0
        for entry in self.base_dir.iterdir():
            if entry.is_file() and not entry.name.endswith(".tmp") and entry.name != exclude:
                total += entry.stat().st_size
        return total

    def get(self, key: str) -> str | None:
        path = self._path(key)
        if not path.exists():
            return None
        return path.read_text(encoding="utf-8")

    def set(self, key: str, value: str) -> WriteResult:
        path = self._path(key)
        if self.capacity_bytes is not None:
            projected = self.used_bytes(exclude=key) + encoded_size(value)
            if projected > self.capacity_bytes:
                return WriteResult(
                    WriteStatus.QUOTA_EXCEEDED,
                    f"needs {projected} bytes, capacity is {self.capacity_bytes}",
                )

        tmp_path = path.with_name(f"{path.name}.tmp")
        try:
            tmp_path.write_text(value, encoding="utf-8")
            os.replace(tmp_path, path)
        except OSError as exc:
            tmp_path.unlink(missing_ok=True)
            if exc.errno in _QUOTA_ERRNOS:
                return WriteResult(WriteStatus.QUOTA_EXCEEDED, str(exc))
            return WriteResult(WriteStatus.ERROR, str(exc))
        return WRITE_OK

    def remove(self, key: str) -> None:
        self._path(key).unlink(missing_ok=True)

    def estimate_quota(self) -> int | None:
        return self.capacity_bytes
