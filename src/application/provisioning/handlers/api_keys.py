"""Handler that issues a project's initial API keys."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING
from uuid import UUID

from domain.models.api_key import ApiKey, ApiKeyType
from domain.models.provisioning import StepExecutionResult, StepName

from application.provisioning.handlers.base import environment_of, load_project, step_handler
from application.schemas.project_metadata import ApiKeyPreview, ApiKeysSummary

if TYPE_CHECKING:
    from application.ports import ApiKeyGenerator, ProvisioningStore

logger = logging.getLogger(__name__)


class GenerateApiKeysHandler:
    """Generate public, secret and service-role keys once per project.

    Only hashes are stored. The plaintext keys are returned in
    ``data["keys"]`` on the run that creates them and never again.
    """

    step_name = StepName.GENERATE_API_KEYS

    def __init__(self, key_generator: ApiKeyGenerator) -> None:
        self._keys = key_generator

    @step_handler("generate API keys")
    async def __call__(self, project_id: UUID, store: ProvisioningStore) -> StepExecutionResult:
        project = await load_project(store, project_id)

        existing = await store.api_keys.count_for_project(project_id)
        if existing:
            logger.info("Project %s already has %d API keys; skipping generation", project_id, existing)
            return StepExecutionResult.ok({"existing_keys": existing})

        environment = environment_of(project)
        plaintext: dict[str, str] = {}
        keys: list[ApiKey] = []
        previews: list[ApiKeyPreview] = []
        for key_type in ApiKeyType:
            plain_key = self._keys.generate_key(environment, key_type)
            plaintext[key_type.value] = plain_key
            keys.append(
                ApiKey(
                    project_id=project_id,
                    key_type=key_type,
                    key_prefix=self._keys.preview(plain_key),
                    key_hash=self._keys.hash_key(plain_key),
                    scopes=key_type.scopes,
                )
            )
            previews.append(
                ApiKeyPreview(
                    key_type=key_type.value,
                    key_prefix=self._keys.preview(plain_key),
                    scopes=key_type.scopes,
                )
            )

        await store.api_keys.add_many(keys)

        summary = ApiKeysSummary(environment=environment, keys=previews)
        await store.projects.merge_metadata(project_id, summary.metadata_key, summary.to_metadata())

        logger.info("Generated %d API keys for project %s", len(keys), project_id)
        return StepExecutionResult.ok({"keys": plaintext})
