"""Session-scoped fixtures for integration tests."""

import time
import warnings
from collections.abc import AsyncGenerator, Generator

import pytest
import pytest_asyncio
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine
from testcontainers.core.container import DockerContainer
from testcontainers.core.waiting_utils import wait_for_logs

from alembic import command
from alembic.config import Config
from garment_forge.db import PostgresDesignDatabase
from garment_forge.db.migrations import get_alembic_config

_IMAGE = "postgres:16"


def _wait_for_postgres(container: DockerContainer, timeout: float = 60) -> None:
    with warnings.catch_warnings():
        warnings.simplefilter("ignore", DeprecationWarning)
        wait_for_logs(container, "database system is ready to accept connections", timeout=timeout)
    # The image restarts the server after running its init scripts; TCP is only up after that.
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        exit_code, _ = container.exec(["pg_isready", "-U", "postgres", "-h", "127.0.0.1"])
        if exit_code == 0:
            return
        time.sleep(0.5)
    raise TimeoutError("Postgres did not accept TCP connections in time")


@pytest.fixture(scope="session")
def postgres_container() -> Generator[DockerContainer, None, None]:
    """Start a Postgres container for the session."""
    container = DockerContainer(_IMAGE).with_exposed_ports(5432).with_env("POSTGRES_PASSWORD", "postgres")
    container.start()
    _wait_for_postgres(container)
    yield container
    container.stop()


@pytest.fixture(scope="session")
def test_db_url(postgres_container: DockerContainer) -> str:
    """Async connection URL for the test database."""
    host = postgres_container.get_container_host_ip()
    port = postgres_container.get_exposed_port(5432)
    return f"postgresql+asyncpg://postgres:postgres@{host}:{port}/postgres"


@pytest.fixture(scope="session")
def alembic_config(test_db_url: str) -> Config:
    """Alembic config pointed at the test database."""
    return get_alembic_config(test_db_url)


@pytest.fixture(scope="session")
def _run_migrations(alembic_config: Config) -> Generator[None, None, None]:
    """Run migrations once per session, cleanup on teardown."""
    command.upgrade(alembic_config, "head")
    yield
    command.downgrade(alembic_config, "base")


@pytest_asyncio.fixture
async def database(_run_migrations: None, test_db_url: str) -> AsyncGenerator[AsyncEngine, None]:
    """Per-test engine so each event loop gets its own connection pool."""
    engine = create_async_engine(test_db_url, future=True)
    async with engine.begin() as conn:
        await conn.execute(
            text(
                "TRUNCATE public.job_artifacts, public.production_jobs, public.design_variants, "
                "public.items, public.templates, public.assets CASCADE"
            )
        )
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def db(database: AsyncEngine) -> AsyncGenerator[PostgresDesignDatabase, None]:
    """Per-test PostgresDesignDatabase instance."""
    instance = PostgresDesignDatabase(database)
    await instance.ensure_ready()
    yield instance
