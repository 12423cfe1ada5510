from __future__ import annotations

import logging

from sqlalchemy import Engine, func, select
from sqlalchemy.exc import OperationalError, SQLAlchemyError

from qsnap.infra.db.models import KeyValueRow
from qsnap.infra.db.session import build_engine, build_session_factory, init_db
from qsnap.infra.ports.storage import WRITE_OK, StoragePort, WriteResult, WriteStatus, encoded_size

logger = logging.getLogger(__name__)

_DISK_FULL_MARKERS = ("database or disk is full", "disk full", "no space left")


class SqlStorage(StoragePort):
    """Key-value rows in a single SQL table (sqlite by default)."""

    def __init__(self, *, database_url: str | None = None, engine: Engine | None = None, capacity_bytes: int | None = None):
        self._engine = engine or build_engine(database_url)
        init_db(self._engine)
        self._session_factory = build_session_factory(self._engine)
        self.capacity_bytes = capacity_bytes

    def used_bytes(self, *, exclude: str | None = None) -> int:
        with self._session_factory() as db:
            stmt = select(func.coalesce(func.sum(KeyValueRow.size_bytes), 0))
            if exclude is not None:
                stmt = stmt.where(KeyValueRow.key != exclude)
            return int(db.execute(stmt).scalar_one())

    def get(self, key: str) -> str | None:
        with self._session_factory() as db:
            row = db.get(KeyValueRow, key)
            return row.value if row is not None else None

    def set(self, key: str, value: str) -> WriteResult:
        size = encoded_size(value)
        try:
            if self.capacity_bytes is not None:
                projected = self.used_bytes(exclude=key) + size
                if projected > self.capacity_bytes:
                    return WriteResult(
                        WriteStatus.QUOTA_EXCEEDED,
                        f"needs {projected} bytes, capacity is {self.capacity_bytes}",
                    )

            with self._session_factory() as db:
                row = db.get(KeyValueRow, key)
                if row is None:
                    db.add(KeyValueRow(key=key, value=value, size_bytes=size))
                else:
                    row.value = value
                    row.size_bytes = size
                db.commit()
        except OperationalError as exc:
            message = str(exc).lower()
            if any(marker in message for marker in _DISK_FULL_MARKERS):
                return WriteResult(WriteStatus.QUOTA_EXCEEDED, str(exc.orig or exc))
            logger.warning("kv write failed for %s: %s", key, exc)
            return WriteResult(WriteStatus.ERROR, str(exc))
        except SQLAlchemyError as exc:
            logger.warning("kv write failed for %s: %s", key, exc)
            return WriteResult(WriteStatus.ERROR, str(exc))
        return WRITE_OK

    def remove(self, key: str) -> None:
        with self._session_factory() as db:
            row = db.get(KeyValueRow, key)
            if row is not None:
                db.delete(row)
                db.commit()

    def estimate_quota(self) -> int | None:
        return self.capacity_bytes
