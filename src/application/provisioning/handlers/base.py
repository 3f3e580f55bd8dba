"""Shared plumbing for step handlers.

Every handler is an async callable ``(project_id, store) ->
StepExecutionResult``. Expected business failures are raised as
:class:`DomainException` and turned into structured failures by
:func:`step_handler`; store errors become ``"Failed to <action>: ..."``
failures; anything else propagates to the state machine.
"""

from __future__ import annotations

import functools
import logging
import re
import traceback
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING, Any
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError

from domain.exceptions import DomainException, InvalidSlugError, ProjectNotFoundError, ValidationError
from domain.models.project import Project
from domain.models.provisioning import ErrorDetails, StepExecutionResult

if TYPE_CHECKING:
    from application.ports import ProvisioningStore

logger = logging.getLogger(__name__)

SLUG_PATTERN = re.compile(r"^[a-z0-9-]+$")

_HandlerMethod = Callable[..., Awaitable[StepExecutionResult]]


def step_handler(action: str) -> Callable[[_HandlerMethod], _HandlerMethod]:
    """Decorate a handler's ``__call__`` with the shared failure contract.

    *action* completes the sentence ``"Failed to <action>"`` used when the
    store raises.
    """

    def decorator(func: _HandlerMethod) -> _HandlerMethod:
        @functools.wraps(func)
        async def wrapper(self: Any, project_id: UUID, store: ProvisioningStore) -> StepExecutionResult:
            try:
                return await func(self, project_id, store)
            except DomainException as exc:
                logger.warning("Step handler rejected project %s: %s", project_id, exc.detail)
                return StepExecutionResult.failure(
                    exc.detail,
                    ErrorDetails(
                        error_type=exc.kind,
                        context={"projectId": str(project_id), **exc.context},
                        extra=exc.extra,
                    ),
                )
            except SQLAlchemyError as exc:
                logger.error("Store error while trying to %s for project %s: %s", action, project_id, exc)
                return StepExecutionResult.failure(
                    f"Failed to {action}: {exc}",
                    ErrorDetails(
                        error_type=type(exc).__name__,
                        context={"projectId": str(project_id)},
                        stack_trace=traceback.format_exc(),
                    ),
                )

        return wrapper

    return decorator


async def load_project(store: ProvisioningStore, project_id: UUID) -> Project:
    project = await store.projects.get_by_id(project_id)
    if project is None:
        raise ProjectNotFoundError(str(project_id))
    return project


def require_valid_slug(project: Project, purpose: str) -> str:
    """Return the project's slug or raise before any DDL can see it."""
    if not project.slug:
        raise ValidationError(
            f"Project slug is required for {purpose}",
            context={"projectId": str(project.id)},
        )
    if not SLUG_PATTERN.match(project.slug):
        raise InvalidSlugError(str(project.id), project.slug)
    return project.slug


def tenant_schema_name(slug: str) -> str:
    return f"tenant_{slug}"


def environment_of(project: Project) -> str:
    return project.environment.value if project.environment else "dev"


def metadata_section(project: Project, key: str) -> dict[str, Any]:
    section = project.metadata.get(key)
    return section if isinstance(section, dict) else {}
