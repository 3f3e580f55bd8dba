"""
Schema-per-tenant DDL for PostgreSQL.

Each project is isolated in its own schema named ``tenant_{slug}`` (the
slug is used verbatim and always double-quoted, so hyphens survive).
Every statement is idempotent: ``IF NOT EXISTS`` for schemas, tables and
indexes, ``GRANT`` for privileges, and drop-then-create for row-level
security policies.
"""

from __future__ import annotations

import logging
import re
from typing import TYPE_CHECKING, Any, Optional

from sqlalchemy import text

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncEngine

logger = logging.getLogger(__name__)

_SCHEMA_NAME = re.compile(r"^tenant_[a-z0-9-]+$")
_ROLE_NAME = re.compile(r"^[A-Za-z_][A-Za-z0-9_$-]*$")


def _quote(identifier: str) -> str:
    return '"' + identifier.replace('"', '""') + '"'


def _checked_schema(schema_name: str) -> str:
    if not _SCHEMA_NAME.match(schema_name):
        raise ValueError(f"Invalid tenant schema name: {schema_name!r}. Must match {_SCHEMA_NAME.pattern}")
    return _quote(schema_name)


def tenant_table_statements(schema_name: str) -> list[str]:
    """DDL creating the tenant's core tables and indexes."""
    s = _checked_schema(schema_name)
    return [
        f"""
        CREATE TABLE IF NOT EXISTS {s}.users (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            email VARCHAR(255) UNIQUE NOT NULL,
            email_confirmed_at TIMESTAMPTZ,
            created_at TIMESTAMPTZ DEFAULT NOW(),
            updated_at TIMESTAMPTZ DEFAULT NOW(),
            raw_user_meta_data JSONB DEFAULT '{{}}'
        )
        """,
        f"CREATE INDEX IF NOT EXISTS idx_users_email ON {s}.users(email)",
        f"""
        CREATE TABLE IF NOT EXISTS {s}.audit_log (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            action VARCHAR(100) NOT NULL,
            actor_id UUID,
            target_type VARCHAR(50),
            target_id UUID,
            metadata JSONB DEFAULT '{{}}',
            created_at TIMESTAMPTZ DEFAULT NOW()
        )
        """,
        f"CREATE INDEX IF NOT EXISTS idx_audit_log_actor ON {s}.audit_log(actor_id)",
        f"CREATE INDEX IF NOT EXISTS idx_audit_log_created ON {s}.audit_log(created_at DESC)",
        f"""
        CREATE TABLE IF NOT EXISTS {s}._migrations (
            id SERIAL PRIMARY KEY,
            version VARCHAR(100) NOT NULL UNIQUE,
            applied_at TIMESTAMPTZ DEFAULT NOW()
        )
        """,
    ]


_OWN_ROW = (
    "current_setting('app.user_id', true)::uuid "
    "OR current_setting('app.user_role', true) = 'admin'"
)
_SERVICE_OR_ADMIN = "current_setting('app.user_role', true) IN ('service', 'admin')"

#: (policy name, table, command, clause keyword, predicate)
RLS_POLICIES: tuple[tuple[str, str, str, str, str], ...] = (
    ("users_select_own", "users", "SELECT", "USING", f"id = {_OWN_ROW}"),
    ("users_update_own", "users", "UPDATE", "USING", f"id = {_OWN_ROW}"),
    ("users_insert_service", "users", "INSERT", "WITH CHECK", _SERVICE_OR_ADMIN),
    ("audit_log_select_own", "audit_log", "SELECT", "USING", f"actor_id = {_OWN_ROW}"),
    ("audit_log_insert_service", "audit_log", "INSERT", "WITH CHECK", _SERVICE_OR_ADMIN),
    ("migrations_select_service", "_migrations", "SELECT", "USING", _SERVICE_OR_ADMIN),
    (
        "migrations_insert_service",
        "_migrations",
        "INSERT",
        "WITH CHECK",
        "current_setting('app.user_role', true) = 'service'",
    ),
)

RLS_TABLES: tuple[str, ...] = ("users", "audit_log", "_migrations")


def rls_statements(schema_name: str) -> list[str]:
    """Enable RLS on every tenant table and (re)create its policies."""
    s = _checked_schema(schema_name)
    statements = [f"ALTER TABLE {s}.{table} ENABLE ROW LEVEL SECURITY" for table in RLS_TABLES]
    for name, table, command, clause, predicate in RLS_POLICIES:
        statements.append(f"DROP POLICY IF EXISTS {name} ON {s}.{table}")
        statements.append(f"CREATE POLICY {name} ON {s}.{table} FOR {command} {clause} ({predicate})")
    return statements


class AsyncTenantSchemaManager:
    """Idempotent tenant DDL over an :class:`AsyncEngine`.

    Parameters
    ----------
    engine:
        An asynchronous SQLAlchemy :class:`AsyncEngine`.
    """

    def __init__(self, engine: AsyncEngine) -> None:
        self._engine = engine

    async def create_schema(self, schema_name: str, grantee: Optional[str] = None) -> None:
        """Create the schema if missing and grant ``USAGE, CREATE`` to *grantee*."""
        schema = _checked_schema(schema_name)
        async with self._engine.begin() as conn:
            await conn.execute(text(f"CREATE SCHEMA IF NOT EXISTS {schema}"))
            if grantee:
                if not _ROLE_NAME.match(grantee):
                    raise ValueError(f"Invalid role name: {grantee!r}")
                await conn.execute(text(f"GRANT USAGE ON SCHEMA {schema} TO {_quote(grantee)}"))
                await conn.execute(text(f"GRANT CREATE ON SCHEMA {schema} TO {_quote(grantee)}"))
        logger.info("Ensured schema %s", schema_name)

    async def create_tenant_tables(self, schema_name: str) -> None:
        """Create ``users``, ``audit_log`` and ``_migrations`` with RLS in one transaction."""
        async with self._engine.begin() as conn:
            for statement in tenant_table_statements(schema_name):
                await conn.execute(text(statement))
            for statement in rls_statements(schema_name):
                await conn.execute(text(statement))
        logger.info("Ensured tenant tables and RLS policies in %s", schema_name)

    async def schema_exists(self, schema_name: str) -> bool:
        async with self._engine.connect() as conn:
            return await self._check_exists(conn, schema_name)

    async def list_schemas(self) -> list[str]:
        async with self._engine.connect() as conn:
            result = await conn.execute(
                text(
                    "SELECT schema_name FROM information_schema.schemata "
                    "WHERE schema_name LIKE 'tenant\\_%' "
                    "ORDER BY schema_name"
                )
            )
            return [row[0] for row in result.fetchall()]

    @staticmethod
    async def _check_exists(conn: Any, schema: str) -> bool:
        result = await conn.execute(
            text("SELECT 1 FROM information_schema.schemata WHERE schema_name = :schema"),
            {"schema": schema},
        )
        return result.fetchone() is not None
