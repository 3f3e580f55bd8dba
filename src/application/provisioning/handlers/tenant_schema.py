"""Handlers for the two DDL steps: tenant schema and tenant tables."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Optional
from uuid import UUID

from domain.models.provisioning import StepExecutionResult, StepName

from application.provisioning.handlers.base import (
    load_project,
    require_valid_slug,
    step_handler,
    tenant_schema_name,
)

if TYPE_CHECKING:
    from application.ports import ProvisioningStore

logger = logging.getLogger(__name__)


class CreateTenantSchemaHandler:
    """``CREATE SCHEMA IF NOT EXISTS "tenant_{slug}"`` plus grants.

    Parameters
    ----------
    database_user:
        Role granted ``USAGE`` and ``CREATE`` on the new schema
        (``DATABASE_USER``). No grant is issued when unset.
    """

    step_name = StepName.CREATE_TENANT_SCHEMA

    def __init__(self, database_user: Optional[str] = None) -> None:
        self._database_user = database_user

    @step_handler("create tenant schema")
    async def __call__(self, project_id: UUID, store: ProvisioningStore) -> StepExecutionResult:
        project = await load_project(store, project_id)
        slug = require_valid_slug(project, "schema creation")
        schema_name = tenant_schema_name(slug)

        await store.tenant_schemas.create_schema(schema_name, grantee=self._database_user)

        logger.info("Created tenant schema %s for project %s", schema_name, project_id)
        return StepExecutionResult.ok({"schema_name": schema_name})


class CreateTenantDatabaseHandler:
    """Create ``users``, ``audit_log`` and ``_migrations`` with RLS policies."""

    step_name = StepName.CREATE_TENANT_DATABASE

    @step_handler("create tenant tables")
    async def __call__(self, project_id: UUID, store: ProvisioningStore) -> StepExecutionResult:
        project = await load_project(store, project_id)
        slug = require_valid_slug(project, "table creation")
        schema_name = tenant_schema_name(slug)

        await store.tenant_schemas.create_tenant_tables(schema_name)

        logger.info(
            "Created tenant tables (users, audit_log, _migrations) with RLS policies in %s",
            schema_name,
        )
        return StepExecutionResult.ok({"schema_name": schema_name})
