from __future__ import annotations

from qsnap.infra.ports.storage import WRITE_OK, StoragePort, WriteResult, WriteStatus, encoded_size


class MemoryStorage(StoragePort):
    """Process-local backend for tests and non-interactive runs."""

    def __init__(self, capacity_bytes: int | None = None):
        self.capacity_bytes = capacity_bytes
        self._items: dict[str, str] = {}

    def used_bytes(self) -> int:
        return sum(encoded_size(value) for value in self._items.values())

    def get(self, key: str) -> str | None:
        return self._items.get(key)

    def set(self, key: str, value: str) -> WriteResult:
        if self.capacity_bytes is not None:
            current = self._items.get(key)
            projected = self.used_bytes() - (encoded_size(current) if current is not None else 0) + encoded_size(value)
            if projected > self.capacity_bytes:
                return WriteResult(
                    WriteStatus.QUOTA_EXCEEDED,
                    f"needs {projected} bytes, capacity is {self.capacity_bytes}",
                )
        self._items[key] = value
        return WRITE_OK

    def remove(self, key: str) -> None:
        self._items.pop(key, None)

    def estimate_quota(self) -> int | None:
        return self.capacity_bytes
