from __future__ import annotations

from pathlib import Path

from sqlalchemy import Engine, create_engine
from sqlalchemy.orm import Session, sessionmaker

from qsnap.infra.db.base import Base


def normalize_database_url(raw_url: str | None) -> str:
    if raw_url:
        if raw_url.startswith("sqlite:///"):
            path_part = raw_url.removeprefix("sqlite:///")
            if path_part and path_part != ":memory:" and not path_part.startswith("/"):
                return f"sqlite:///{Path(path_part).resolve()}"
        return raw_url

    default_path = Path(__file__).resolve().parents[3] / "qsnap.db"
    return f"sqlite:///{default_path}"


def build_engine(database_url: str | None) -> Engine:
    url = normalize_database_url(database_url)

    kwargs: dict = {}
    if url.startswith("sqlite"):
        kwargs["connect_args"] = {"check_same_thread": False}

    return create_engine(url, **kwargs)


def build_session_factory(engine: Engine) -> sessionmaker[Session]:
    return sessionmaker(bind=engine, autocommit=False, autoflush=False, expire_on_commit=False)


def init_db(engine: Engine) -> None:
    # Ensure ORM models are imported so metadata is populated.
    from qsnap.infra.db import models as _models  # noqa: F401

    Base.metadata.create_all(bind=engine)
