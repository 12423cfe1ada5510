from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum


class WriteStatus(str, Enum):
    OK = "ok"
    QUOTA_EXCEEDED = "quota_exceeded"
    ERROR = "error"


@dataclass(frozen=True)
class WriteResult:
    status: WriteStatus
    detail: str | None = None

    @property
    def ok(self) -> bool:
        return self.status is WriteStatus.OK


WRITE_OK = WriteResult(WriteStatus.OK)


class StoragePort(ABC):
    """String key-value backend with a known or unknown capacity."""

    @abstractmethod
    def get(self, key: str) -> str | None:
        """Return the stored value or None."""

    @abstractmethod
    def set(self, key: str, value: str) -> WriteResult:
        """Persist ``value``; never raises for capacity problems."""

    @abstractmethod
    def remove(self, key: str) -> None:
        """Delete ``key`` if present."""

    @abstractmethod
    def estimate_quota(self) -> int | None:
        """Capacity in bytes, or None when the backend cannot tell."""


def encoded_size(value: str) -> int:
    return len(value.encode("utf-8"))
