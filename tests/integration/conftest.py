"""Integration test fixtures using testcontainers for PostgreSQL."""

from __future__ import annotations

import sys
import uuid
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).resolve().parents[2] / "src"))


@pytest.fixture(scope="session")
def postgres_url():
    """Provide an asyncpg PostgreSQL URL via testcontainers.

    Skips the integration suite when Docker is unavailable.
    """
    try:
        from testcontainers.postgres import PostgresContainer

        with PostgresContainer("postgres:16-alpine", driver="asyncpg") as pg:
            yield pg.get_connection_url()
    except Exception:
        pytest.skip("PostgreSQL testcontainer unavailable")


@pytest.fixture
async def engine(postgres_url):
    """Async engine over a freshly created control-plane schema."""
    from sqlalchemy import text
    from sqlalchemy.ext.asyncio import create_async_engine

    from infrastructure.database.models import CONTROL_PLANE_SCHEMA, Base

    engine = create_async_engine(postgres_url, echo=False)
    async with engine.begin() as conn:
        await conn.execute(text(f"CREATE SCHEMA IF NOT EXISTS {CONTROL_PLANE_SCHEMA}"))
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        result = await conn.execute(
            text("SELECT schema_name FROM information_schema.schemata WHERE schema_name LIKE 'tenant\\_%'")
        )
        for (schema_name,) in result.fetchall():
            await conn.execute(text(f'DROP SCHEMA "{schema_name}" CASCADE'))
    await engine.dispose()


@pytest.fixture
def sql_store(engine):
    from infrastructure.database.repository import SqlProvisioningStore

    return SqlProvisioningStore(engine)


@pytest.fixture
async def project_id(engine) -> uuid.UUID:
    """Insert ``acme-corp`` with auth and storage enabled."""
    from sqlalchemy.ext.asyncio import async_sessionmaker

    from infrastructure.database.models import ProjectModel, ProjectServiceModel

    project_id = uuid.uuid4()
    session_factory = async_sessionmaker(bind=engine, expire_on_commit=False)
    async with session_factory.begin() as session:
        session.add(
            ProjectModel(
                id=project_id,
                name="Acme Corp",
                slug="acme-corp",
                tenant_id="tenant-acme",
                environment="prod",
                metadata_json={"billing": {"plan": "pro"}},
                services=[
                    ProjectServiceModel(service_type="auth"),
                    ProjectServiceModel(service_type="storage"),
                ],
            )
        )
    return project_id
