"""Policy store blueprints.

The reconciler and the cache only talk to these interfaces. The GCP
implementations live in :mod:`bqiam.gcp`; tests use in-memory ones.
"""

from abc import ABC, abstractmethod

from bqiam.base.async_support import AsyncMixin
from bqiam.base.models import DatasetAccess, ProjectPolicy


class ProjectPolicyBlueprint(AsyncMixin, ABC):
    """Authoritative project-wide IAM policy store."""

    @abstractmethod
    def get_policy(self, project: str) -> ProjectPolicy:
        """Fetch the current IAM policy of *project*, including its etag.

        Raises:
            PolicyFetchError: On read failure.
        """

    @abstractmethod
    def set_policy(self, project: str, policy: ProjectPolicy) -> ProjectPolicy:
        """Submit *policy* for *project*, conditioned on ``policy.etag``.

        Returns:
            The policy as stored (with its new etag).

        Raises:
            StalePolicyError: If the policy changed since it was read.
            InvalidPrincipalError: If a member was rejected as invalid.
            PolicyUpdateError: On any other write failure.
        """


class DatasetAccessBlueprint(AsyncMixin, ABC):
    """Managed dataset access store, plus project / dataset enumeration."""

    @abstractmethod
    def list_projects(self) -> list[str]:
        """List every project id visible to the caller.

        Raises:
            EnumerationError: On listing failure.
        """

    @abstractmethod
    def list_datasets(self, project: str) -> list[str]:
        """List dataset ids of *project*.

        Raises:
            EnumerationError: On listing failure.
        """

    @abstractmethod
    def get_access(self, project: str, dataset: str) -> DatasetAccess:
        """Fetch the access list of a dataset, including its etag.

        Raises:
            PolicyFetchError: On read failure.
        """

    @abstractmethod
    def update_access(self, access: DatasetAccess) -> DatasetAccess:
        """Replace the dataset access list, conditioned on ``access.etag``.

        Returns:
            The access list as stored (with its new etag).

        Raises:
            StalePolicyError: If the dataset changed since it was read.
            InvalidPrincipalError: If an entry was rejected as invalid.
            PolicyUpdateError: On any other write failure.
        """
