"""GCP store implementations."""

from .clients import ClientPool
from .dataset_access import DatasetAccessStore
from .project_policy import ProjectPolicyStore

__all__ = [
    "ClientPool",
    "DatasetAccessStore",
    "ProjectPolicyStore",
]
