"""BigQuery implementation of the dataset access store."""

from __future__ import annotations

from typing import Any, NoReturn

from google.api_core import exceptions as gcp_exceptions
from google.cloud import bigquery

from bqiam.base.exceptions import (
    EnumerationError,
    InvalidPrincipalError,
    PolicyFetchError,
    PolicyUpdateError,
    StalePolicyError,
)
from bqiam.base.logger import bq_logger
from bqiam.base.models import AccessEntry, DatasetAccess
from bqiam.base.policy_store import DatasetAccessBlueprint
from bqiam.gcp.clients import SDK_ERRORS, ClientPool


def _handle_update_error(e: Exception, message: str) -> NoReturn:
    """Raise a mapped exception or a generic PolicyUpdateError."""
    if isinstance(e, (gcp_exceptions.PreconditionFailed, gcp_exceptions.Conflict)):
        raise StalePolicyError(f"{message}: {e}") from e
    if isinstance(e, gcp_exceptions.BadRequest):
        raise InvalidPrincipalError(f"{message}: {e}") from e
    raise PolicyUpdateError(f"{message}: {e}") from e


def _entry_from_sdk(entry: bigquery.AccessEntry) -> AccessEntry:
    condition = entry.to_api_repr().get("condition")
    return AccessEntry(
        role=entry.role,
        entity_type=entry.entity_type,
        entity_id=entry.entity_id,
        condition=dict(condition) if condition else None,
    )


def _entry_to_sdk(entry: AccessEntry) -> bigquery.AccessEntry:
    resource: dict[str, Any] = {entry.entity_type: entry.entity_id}
    if entry.role is not None:
        resource["role"] = entry.role
    if entry.condition:
        resource["condition"] = dict(entry.condition)
    return bigquery.AccessEntry.from_api_repr(resource)


class DatasetAccessStore(DatasetAccessBlueprint):
    """Dataset ACLs and project / dataset listing through the BigQuery API.

    Every call is made with ``retry=None``: a write is sent exactly once
    and a failure surfaces to the operator as is.

    Attributes:
        pool: Shared SDK client pool; one BigQuery client per project.
    """

    def __init__(self, pool: ClientPool) -> None:
        self.pool = pool

    def list_projects(self) -> list[str]:
        """List every project visible to the caller.

        The SDK iterator follows ``nextPageToken`` until exhausted.
        """
        client = self.pool.bigquery()
        try:
            return [p.project_id for p in client.list_projects(retry=None)]
        except SDK_ERRORS as e:
            raise EnumerationError(f"failed to list GCP projects: {e}") from e

    def list_datasets(self, project: str) -> list[str]:
        client = self.pool.bigquery(project)
        try:
            return [d.dataset_id for d in client.list_datasets(project=project, retry=None)]
        except SDK_ERRORS as e:
            raise EnumerationError(
                f"failed to fetch BigQuery datasets: project {project}: {e}"
            ) from e

    def get_access(self, project: str, dataset: str) -> DatasetAccess:
        client = self.pool.bigquery(project)
        bq_logger.debug(
            "fetching dataset metadata", project=project, dataset=dataset, operation="get_access"
        )
        try:
            ds = client.get_dataset(f"{project}.{dataset}", retry=None)
        except SDK_ERRORS as e:
            raise PolicyFetchError(
                f"failed to fetch dataset metadata: project {project}, dataset {dataset}: {e}"
            ) from e
        return DatasetAccess(
            project=project,
            dataset=dataset,
            entries=tuple(_entry_from_sdk(e) for e in ds.access_entries),
            etag=ds.etag,
        )

    def update_access(self, access: DatasetAccess) -> DatasetAccess:
        """Replace the access list; the etag is sent as ``If-Match``."""
        client = self.pool.bigquery(access.project)
        resource: dict = {
            "datasetReference": {"projectId": access.project, "datasetId": access.dataset}
        }
        if access.etag:
            resource["etag"] = access.etag
        ds = bigquery.Dataset.from_api_repr(resource)
        ds.access_entries = [_entry_to_sdk(e) for e in access.entries]
        bq_logger.debug(
            "updating dataset access",
            project=access.project,
            dataset=access.dataset,
            operation="update_access",
        )
        try:
            updated = client.update_dataset(ds, ["access_entries"], retry=None)
        except SDK_ERRORS as e:
            _handle_update_error(
                e,
                f"failed to update access of dataset {access.project}:{access.dataset}",
            )
        return DatasetAccess(
            project=access.project,
            dataset=access.dataset,
            entries=tuple(_entry_from_sdk(e) for e in updated.access_entries),
            etag=updated.etag,
        )
