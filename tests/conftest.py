from __future__ import annotations

import os
import uuid
from collections.abc import Callable, Generator
from contextlib import suppress
from pathlib import Path

import httpx
import pytest
from alembic.config import Config
from sqlalchemy import create_engine, delete, text
from sqlalchemy.engine.url import URL, make_url
from sqlalchemy.orm import Session

from alembic import command

HttpHandler = Callable[[httpx.Request], httpx.Response]

TEST_NOTION_CLIENT_ID = "test-notion-client-id"
TEST_NOTION_CLIENT_SECRET = "test-notion-client-secret"
# base64 of 32 bytes of b"k"
TEST_ENCRYPTION_KEY = "a2tr" * 10 + "a2s="

os.environ.setdefault("APP_ENV", "test")
os.environ.setdefault("NOTION_CLIENT_ID", TEST_NOTION_CLIENT_ID)
os.environ.setdefault("NOTION_CLIENT_SECRET", TEST_NOTION_CLIENT_SECRET)
os.environ.setdefault("TOKEN_ENCRYPTION_KEY_BASE64", TEST_ENCRYPTION_KEY)
os.environ.setdefault("API_BASE_URL", "http://localhost:5000")
os.environ.setdefault("FRONTEND_URL", "http://localhost:5173")
os.environ.setdefault("CORS_ORIGINS", "http://localhost:5173,http://localhost:3000")
os.environ.setdefault("RATE_LIMIT_REQUESTS_PER_MINUTE", "0")


def _make_admin_url(url: URL) -> URL:
    # "postgres" is present in the official image and works for admin tasks.
    return url.set(database="postgres")


def _clear_caches() -> None:
    from notion_connect.core.config import get_settings
    from notion_connect.db.session import get_engine, get_sessionmaker

    get_settings.cache_clear()
    get_engine.cache_clear()
    get_sessionmaker.cache_clear()


def _migrate() -> None:
    alembic_ini = Path(__file__).resolve().parents[1] / "alembic.ini"
    cfg = Config(str(alembic_ini))
    cfg.attributes["configure_logger"] = False
    command.upgrade(cfg, "head")


def _dispose_engine() -> None:
    from notion_connect.db.session import get_engine

    with suppress(Exception):
        get_engine().dispose()


@pytest.fixture(scope="session", autouse=True)
def _test_database(tmp_path_factory: pytest.TempPathFactory) -> Generator[None, None, None]:
    base_url = os.environ.get("DATABASE_URL", "")
    url = make_url(base_url) if base_url else None

    if url is None or url.get_backend_name() != "postgresql":
        # No Postgres configured: run against a throwaway SQLite file.
        db_path = tmp_path_factory.mktemp("db") / "notion_connect_test.sqlite3"
        os.environ["DATABASE_URL"] = f"sqlite+pysqlite:///{db_path}"
        _clear_caches()
        _migrate()
        yield
        _dispose_engine()
        _clear_caches()
        return

    if url.host not in {"localhost", "127.0.0.1", None}:
        raise RuntimeError(
            "Refusing to run tests against a non-local DATABASE_URL host. "
            "Set DATABASE_URL to a local/dev Postgres instance."
        )

    db_name = f"notion_connect_test_{uuid.uuid4().hex}"
    admin_engine = create_engine(
        _make_admin_url(url), isolation_level="AUTOCOMMIT", pool_pre_ping=True
    )

    with admin_engine.connect() as conn:
        conn.execute(text(f'CREATE DATABASE "{db_name}"'))

    os.environ["DATABASE_URL"] = url.set(database=db_name).render_as_string(hide_password=False)
    _clear_caches()
    _migrate()

    yield

    # Ensure connection pools to the test DB are closed before dropping.
    _dispose_engine()
    _clear_caches()

    with admin_engine.connect() as conn:
        conn.execute(
            text(
                """
                SELECT pg_terminate_backend(pid)
                FROM pg_stat_activity
                WHERE datname = :db_name AND pid <> pg_backend_pid();
                """
            ),
            {"db_name": db_name},
        )
        conn.execute(text(f'DROP DATABASE IF EXISTS "{db_name}"'))

    admin_engine.dispose()


@pytest.fixture(autouse=True)
def _reset_settings_cache() -> Generator[None, None, None]:
    yield
    from notion_connect.core.config import get_settings

    get_settings.cache_clear()


@pytest.fixture(autouse=True)
def _clean_connections() -> Generator[None, None, None]:
    yield
    from notion_connect.db.session import get_sessionmaker
    from notion_connect.models.connections import NotionConnection

    with get_sessionmaker()() as session:
        session.execute(delete(NotionConnection))
        session.commit()


@pytest.fixture()
def db_session() -> Generator[Session, None, None]:
    from notion_connect.db.session import get_sessionmaker

    SessionLocal = get_sessionmaker()
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def mock_http_client() -> Generator[Callable[[HttpHandler], httpx.Client], None, None]:
    clients: list[httpx.Client] = []

    def _make(handler: HttpHandler) -> httpx.Client:
        client = httpx.Client(transport=httpx.MockTransport(handler), timeout=10.0)
        clients.append(client)
        return client

    yield _make

    for client in clients:
        client.close()
