"""
Value types shared by the reconciler, the GCP stores and the cache.

Policy documents are treated as immutable snapshots: the ``with_*`` /
``without_*`` helpers return a modified copy and keep the etag that was
observed at read time, so the store can reject a stale write.
"""

from __future__ import annotations

from enum import Enum
from typing import Any
from pydantic import BaseModel, ConfigDict

from bqiam.base.exceptions import InvalidRoleError


# ── Roles ─────────────────────────────────────────────────────────────
READER = "READER"
WRITER = "WRITER"
OWNER = "OWNER"

DATASET_ROLES: dict[str, str] = {
    READER: "READER",
    WRITER: "WRITER",
    OWNER: "OWNER",
}

# No owner-equivalent project role on purpose.
PROJECT_ROLES: dict[str, str] = {
    READER: "roles/viewer",
    WRITER: "roles/editor",
}

BQ_JOB_USER_ROLE = "roles/bigquery.jobUser"
BQ_USER_ROLE = "roles/bigquery.user"
AUXILIARY_ROLES: tuple[str, ...] = (BQ_JOB_USER_ROLE, BQ_USER_ROLE)


def dataset_role(token: str) -> str:
    """Map a ``READER|WRITER|OWNER`` token to a dataset access role."""
    try:
        return DATASET_ROLES[token.upper()]
    except KeyError:
        raise InvalidRoleError(
            f"failed to parse {token}: READER or WRITER or OWNER must be specified"
        ) from None


def project_role(token: str) -> str:
    """Map a ``READER|WRITER`` token to a project-wide IAM role.

    Raises:
        InvalidRoleError: For ``OWNER`` or any unknown token.
    """
    try:
        return PROJECT_ROLES[token.upper()]
    except KeyError:
        raise InvalidRoleError(
            f"failed to parse {token}: READER or WRITER must be specified"
        ) from None


# ── Principals ────────────────────────────────────────────────────────
SERVICE_ACCOUNT_SUFFIX = ".iam.gserviceaccount.com"


class ResourceScope(str, Enum):
    PROJECT = "project"
    DATASET = "dataset"


class EntityKind(str, Enum):
    """Principal kind; the value is the IAM member prefix."""

    USER = "user"
    SERVICE_ACCOUNT = "serviceAccount"
    GROUP = "group"

    @property
    def dataset_entity_type(self) -> str:
        # service accounts are addressed by email like users in dataset ACLs
        if self is EntityKind.GROUP:
            return "groupByEmail"
        return "userByEmail"


class Intent(str, Enum):
    GRANT = "grant"
    REVOKE = "revoke"


def is_service_account(entity: str) -> bool:
    return entity.endswith(SERVICE_ACCOUNT_SUFFIX)


def entity_kind_of(entity: str) -> EntityKind:
    if is_service_account(entity):
        return EntityKind.SERVICE_ACCOUNT
    return EntityKind.USER


def member_identity(member: str) -> str | None:
    """Return the email part of an IAM member (``user:a@b.com`` -> ``a@b.com``).

    ``deleted:`` members and members without a prefix yield ``None``.
    """
    kind, sep, identity = member.partition(":")
    if not sep or kind == "deleted":
        return None
    return identity


class AccessGrant(BaseModel):
    """One (principal, role, resource) triple.

    For project scope ``resource_id`` is the project id; for dataset scope
    it is the dataset id inside ``project``.
    """

    model_config = ConfigDict(frozen=True)

    resource_scope: ResourceScope
    project: str
    resource_id: str
    role: str
    entity: str
    entity_kind: EntityKind

    @classmethod
    def for_project(
        cls, project: str, role: str, entity: str, *, group: bool = False
    ) -> AccessGrant:
        return cls(
            resource_scope=ResourceScope.PROJECT,
            project=project,
            resource_id=project,
            role=role,
            entity=entity,
            entity_kind=EntityKind.GROUP if group else entity_kind_of(entity),
        )

    @classmethod
    def for_dataset(
        cls, project: str, dataset: str, role: str, entity: str, *, group: bool = False
    ) -> AccessGrant:
        return cls(
            resource_scope=ResourceScope.DATASET,
            project=project,
            resource_id=dataset,
            role=role,
            entity=entity,
            entity_kind=EntityKind.GROUP if group else entity_kind_of(entity),
        )

    @property
    def member(self) -> str:
        """IAM member string, e.g. ``serviceAccount:sa@p.iam.gserviceaccount.com``."""
        return f"{self.entity_kind.value}:{self.entity}"

    @property
    def entity_type(self) -> str:
        return self.entity_kind.dataset_entity_type

    def as_group(self) -> AccessGrant:
        return self.model_copy(update={"entity_kind": EntityKind.GROUP})

    def describe(self) -> str:
        if self.resource_scope is ResourceScope.PROJECT:
            return f"{self.member} {self.role} on project {self.project}"
        return f"{self.member} {self.role} on dataset {self.project}:{self.resource_id}"


# ── Project IAM policy ────────────────────────────────────────────────
class Binding(BaseModel):
    """A ``(role, members)`` pair. Conditional bindings are carried through
    untouched; grants and revokes only ever edit unconditional ones."""

    model_config = ConfigDict(frozen=True)

    role: str
    members: tuple[str, ...] = ()
    condition: dict[str, str] | None = None

    def is_plain(self, role: str) -> bool:
        return self.role == role and self.condition is None


class ProjectPolicy(BaseModel):
    """Project IAM policy as read from the store, with its etag."""

    model_config = ConfigDict(frozen=True)

    bindings: tuple[Binding, ...] = ()
    etag: bytes = b""
    version: int = 0

    def has_member(self, role: str, member: str) -> bool:
        return any(b.is_plain(role) and member in b.members for b in self.bindings)

    def with_member(self, role: str, member: str) -> ProjectPolicy:
        if self.has_member(role, member):
            return self
        bindings = list(self.bindings)
        for i, b in enumerate(bindings):
            if b.is_plain(role):
                bindings[i] = Binding(role=role, members=b.members + (member,))
                break
        else:
            bindings.append(Binding(role=role, members=(member,)))
        return self.model_copy(update={"bindings": tuple(bindings)})

    def without_member(self, role: str, member: str) -> ProjectPolicy:
        bindings = []
        for b in self.bindings:
            if b.is_plain(role):
                members = tuple(m for m in b.members if m != member)
                if not members:
                    continue
                b = Binding(role=role, members=members)
            bindings.append(b)
        return self.model_copy(update={"bindings": tuple(bindings)})

    def identities(self) -> list[str]:
        """Member identities (email part) in binding order, duplicates kept."""
        result = []
        for b in self.bindings:
            for m in b.members:
                identity = member_identity(m)
                if identity:
                    result.append(identity)
        return result


# ── Dataset access list ───────────────────────────────────────────────
class AccessEntry(BaseModel):
    """One dataset ACL entry.

    ``entity_id`` is a dict for view / routine / dataset entries, which
    carry no role; those are kept as-is when the list is written back.
    Conditional entries are carried through untouched, like conditional
    project bindings.
    """

    model_config = ConfigDict(frozen=True)

    role: str | None = None
    entity_type: str
    entity_id: str | dict[str, Any] | None = None
    condition: dict[str, Any] | None = None

    def matches(self, role: str, entity_type: str, entity: str) -> bool:
        return (
            self.condition is None
            and self.role == role
            and self.entity_type == entity_type
            and self.entity_id == entity
        )


class DatasetAccess(BaseModel):
    """A dataset's access list plus the etag it was read with."""

    model_config = ConfigDict(frozen=True)

    project: str
    dataset: str
    entries: tuple[AccessEntry, ...] = ()
    etag: str | None = None

    def has_entry(self, role: str, entity_type: str, entity: str) -> bool:
        return any(e.matches(role, entity_type, entity) for e in self.entries)

    def with_entry(self, role: str, entity_type: str, entity: str) -> DatasetAccess:
        if self.has_entry(role, entity_type, entity):
            return self
        entry = AccessEntry(role=role, entity_type=entity_type, entity_id=entity)
        return self.model_copy(update={"entries": self.entries + (entry,)})

    def without_entry(self, role: str, entity_type: str, entity: str) -> DatasetAccess:
        entries = tuple(e for e in self.entries if not e.matches(role, entity_type, entity))
        return self.model_copy(update={"entries": entries})


__all__ = [
    "AUXILIARY_ROLES",
    "AccessEntry",
    "AccessGrant",
    "BQ_JOB_USER_ROLE",
    "BQ_USER_ROLE",
    "Binding",
    "DatasetAccess",
    "EntityKind",
    "Intent",
    "OWNER",
    "ProjectPolicy",
    "READER",
    "ResourceScope",
    "WRITER",
    "dataset_role",
    "entity_kind_of",
    "is_service_account",
    "member_identity",
    "project_role",
]
