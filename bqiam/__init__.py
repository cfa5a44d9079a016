"""bqiam: grant, revoke and audit BigQuery dataset and project access.

Entry points for library use::

    from bqiam import load_config, create_reconciler

    config = load_config()
    reconciler = create_reconciler(config)
    reconciler.permit_datasets("READER", "my-project", ["alice@example.com"], ["sales"])
"""

from .base.config import BqiamConfig, load_config
from .factory import create_metadata_cache, create_reconciler, create_stores
from .metadata import Meta, Metas, MetadataCache
from .reconciler import PolicyReconciler, ReconcileOutcome

__all__ = [
    "BqiamConfig",
    "Meta",
    "Metas",
    "MetadataCache",
    "PolicyReconciler",
    "ReconcileOutcome",
    "create_metadata_cache",
    "create_reconciler",
    "create_stores",
    "load_config",
]
