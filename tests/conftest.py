"""In-memory stores implementing the policy store blueprints."""

import pytest

from bqiam.base.config import BqiamConfig
from bqiam.base.exceptions import (
    EnumerationError,
    InvalidPrincipalError,
    PolicyFetchError,
    StalePolicyError,
)
from bqiam.base.models import AccessEntry, Binding, DatasetAccess, ProjectPolicy
from bqiam.base.policy_store import DatasetAccessBlueprint, ProjectPolicyBlueprint


def _next_etag(etag):
    return str(int(etag or 0) + 1)


class FakeProjectPolicyStore(ProjectPolicyBlueprint):
    def __init__(self, policies=None, *, invalid_members=(), events=None):
        self.policies = dict(policies or {})
        self.invalid_members = set(invalid_members)
        self.events = events if events is not None else []
        self.set_calls = []

    def get_policy(self, project):
        self.events.append(("get_policy", project))
        return self.policies.setdefault(project, ProjectPolicy(etag=b"1", version=1))

    def set_policy(self, project, policy):
        self.events.append(("set_policy", project))
        self.set_calls.append((project, policy))
        current = self.policies.setdefault(project, ProjectPolicy(etag=b"1", version=1))
        if policy.etag != current.etag:
            raise StalePolicyError("There were concurrent policy changes")
        for binding in policy.bindings:
            for member in binding.members:
                if member in self.invalid_members:
                    raise InvalidPrincipalError(f"INVALID_ARGUMENT: {member}")
        stored = policy.model_copy(update={"etag": _next_etag(current.etag.decode()).encode()})
        self.policies[project] = stored
        return stored

    def touch(self, project):
        """Simulate a concurrent change made by someone else."""
        current = self.policies.setdefault(project, ProjectPolicy(etag=b"1", version=1))
        self.policies[project] = current.model_copy(
            update={"etag": _next_etag(current.etag.decode()).encode()}
        )


class FakeDatasetAccessStore(DatasetAccessBlueprint):
    def __init__(
        self,
        datasets=None,
        *,
        projects=None,
        invalid_entities=(),
        broken=(),
        events=None,
    ):
        self.datasets = {}
        for (project, dataset), entries in (datasets or {}).items():
            self.datasets[(project, dataset)] = DatasetAccess(
                project=project, dataset=dataset, entries=tuple(entries), etag="1"
            )
        self.projects = projects
        self.invalid_entities = set(invalid_entities)
        self.broken = set(broken)
        self.events = events if events is not None else []
        self.update_calls = []

    def list_projects(self):
        if self.projects is not None:
            return list(self.projects)
        return list(dict.fromkeys(p for p, _ in self.datasets))

    def list_datasets(self, project):
        if project in self.broken:
            raise EnumerationError(f"failed to fetch BigQuery datasets: project {project}")
        return [d for p, d in self.datasets if p == project]

    def get_access(self, project, dataset):
        self.events.append(("get_access", dataset))
        if (project, dataset) in self.broken:
            raise PolicyFetchError(f"failed to fetch dataset metadata: {project}.{dataset}")
        return self.datasets[(project, dataset)]

    def update_access(self, access):
        self.events.append(("update_access", access.dataset))
        self.update_calls.append(access)
        current = self.datasets[(access.project, access.dataset)]
        if access.etag != current.etag:
            raise StalePolicyError("Precondition check failed")
        for entry in access.entries:
            if (entry.entity_type, entry.entity_id) in self.invalid_entities:
                raise InvalidPrincipalError(f"Invalid value for entity: {entry.entity_id}")
        stored = access.model_copy(update={"etag": _next_etag(current.etag)})
        self.datasets[(access.project, access.dataset)] = stored
        return stored


def entry(role, entity, entity_type="userByEmail"):
    return AccessEntry(role=role, entity_type=entity_type, entity_id=entity)


def policy(*bindings, etag=b"1"):
    return ProjectPolicy(
        bindings=tuple(Binding(role=r, members=tuple(m)) for r, m in bindings),
        etag=etag,
        version=1,
    )


@pytest.fixture
def events():
    return []


@pytest.fixture
def project_store(events):
    return FakeProjectPolicyStore(
        {"my-project": policy(("roles/viewer", ["user:bob@example.com"]))},
        events=events,
    )


@pytest.fixture
def dataset_store(events):
    return FakeDatasetAccessStore(
        {
            ("my-project", "sales"): [entry("OWNER", "owner@example.com")],
            ("my-project", "ads"): [entry("READER", "bob@example.com")],
        },
        events=events,
    )


@pytest.fixture
def config(tmp_path):
    return BqiamConfig(
        bigquery_projects=["my-project", "other-project"],
        cache_file=str(tmp_path / "cache.toml"),
        completion_file=str(tmp_path / "completion.toml"),
    )


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    for var in (
        "BQIAM_BIGQUERY_PROJECTS",
        "BQIAM_CACHE_FILE",
        "BQIAM_CACHE_REFRESH_HOUR",
        "BQIAM_COMPLETION_FILE",
        "GOOGLE_APPLICATION_CREDENTIALS",
    ):
        monkeypatch.delenv(var, raising=False)
