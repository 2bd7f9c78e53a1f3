from __future__ import annotations

from sqlmodel import SQLModel, create_engine
from sqlalchemy.engine import Engine
from live_insights.config import Settings

_settings = Settings()


def build_engine(database_url: str) -> Engine:
    connect_args = {"check_same_thread": False} if database_url.startswith("sqlite") else {}
    return create_engine(database_url, connect_args=connect_args)


engine: Engine = build_engine(_settings.resolved_database_url())


def init_db(bind: Engine | None = None) -> None:
    target = bind or engine
    # Import table models so they register on the metadata
    from live_insights.models import insight, organization_member, live_session, transcript_segment  # noqa: F401

    if target.dialect.name == "sqlite":
        with target.begin() as conn:
            conn.exec_driver_sql("PRAGMA journal_mode=WAL;")
            conn.exec_driver_sql("PRAGMA synchronous=NORMAL;")
    SQLModel.metadata.create_all(target)
