"""Component factory.

Builds the GCP-backed stores from a validated :class:`BqiamConfig` and
wires them into the reconciler, the metadata cache and the completion
builder. This is the only place that knows which store implementation
backs which interface.
"""

from typing import Callable, NamedTuple

from bqiam.base.config import BqiamConfig
from bqiam.base.policy_store import DatasetAccessBlueprint, ProjectPolicyBlueprint
from bqiam.gcp.clients import ClientPool
from bqiam.gcp.dataset_access import DatasetAccessStore
from bqiam.gcp.project_policy import ProjectPolicyStore
from bqiam.metadata import MetadataCache
from bqiam.reconciler import PolicyReconciler


class Stores(NamedTuple):
    project: ProjectPolicyBlueprint
    dataset: DatasetAccessBlueprint


def create_stores(config: BqiamConfig) -> Stores:
    """Create both stores on top of one shared client pool."""
    pool = ClientPool(credentials=config.credentials)
    return Stores(project=ProjectPolicyStore(pool), dataset=DatasetAccessStore(pool))


def create_reconciler(
    config: BqiamConfig,
    *,
    confirm: Callable[[str], bool] | None = None,
    stores: Stores | None = None,
) -> PolicyReconciler:
    stores = stores or create_stores(config)
    return PolicyReconciler(stores.project, stores.dataset, confirm=confirm)


def create_metadata_cache(config: BqiamConfig, *, stores: Stores | None = None) -> MetadataCache:
    stores = stores or create_stores(config)
    return MetadataCache(config, stores.dataset)
