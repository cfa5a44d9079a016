"""Store blueprints, value types and core utilities.

The GCP stores and the in-memory test stores both implement the
blueprints defined here.
"""

from .models import AccessGrant, DatasetAccess, EntityKind, Intent, ProjectPolicy, ResourceScope
from .policy_store import DatasetAccessBlueprint, ProjectPolicyBlueprint


__all__ = [
    "AccessGrant",
    "DatasetAccess",
    "DatasetAccessBlueprint",
    "EntityKind",
    "Intent",
    "ProjectPolicy",
    "ProjectPolicyBlueprint",
    "ResourceScope",
]
