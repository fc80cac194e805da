import os

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool


def _require_env(name: str) -> str:
    value = os.environ.get(name)
    if not value:
        raise RuntimeError(f"Missing required environment variable: {name}")
    return value


def build_engine(db_url: str):
    if db_url.startswith("sqlite"):
        options = {"connect_args": {"check_same_thread": False}}
        if ":memory:" in db_url or db_url.rstrip("/") in {"sqlite:", "sqlite+pysqlite:"}:
            # A single shared connection keeps the in-memory database alive.
            options["poolclass"] = StaticPool
        return create_engine(db_url, future=True, **options)
    return create_engine(db_url, pool_pre_ping=True, future=True)


def build_session_factory(engine):
    return sessionmaker(
        bind=engine,
        autoflush=False,
        autocommit=False,
        expire_on_commit=False,
        future=True,
    )


TOOL_LENDING_DB_URL = _require_env("TOOL_LENDING_DB_URL")

engine_lending = build_engine(TOOL_LENDING_DB_URL)

SessionLocalLending = build_session_factory(engine_lending)
