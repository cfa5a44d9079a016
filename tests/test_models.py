"""Tests for roles, principals and policy documents."""

import pytest

from bqiam.base.exceptions import InvalidRoleError
from bqiam.base.models import (
    AccessEntry,
    AccessGrant,
    Binding,
    DatasetAccess,
    EntityKind,
    ProjectPolicy,
    dataset_role,
    entity_kind_of,
    member_identity,
    project_role,
)

from conftest import entry, policy


class TestRoles:
    @pytest.mark.parametrize("token", ["READER", "WRITER", "OWNER", "reader"])
    def test_dataset_roles(self, token):
        assert dataset_role(token) == token.upper()

    def test_project_roles(self):
        assert project_role("READER") == "roles/viewer"
        assert project_role("writer") == "roles/editor"

    @pytest.mark.parametrize("token", ["OWNER", "ADMIN", ""])
    def test_project_owner_rejected(self, token):
        with pytest.raises(InvalidRoleError):
            project_role(token)

    def test_unknown_dataset_role(self):
        with pytest.raises(InvalidRoleError):
            dataset_role("ADMIN")


class TestPrincipals:
    def test_service_account(self):
        sa = "runner@my-project.iam.gserviceaccount.com"
        assert entity_kind_of(sa) is EntityKind.SERVICE_ACCOUNT
        grant = AccessGrant.for_project("my-project", "roles/viewer", sa)
        assert grant.member == f"serviceAccount:{sa}"
        assert grant.entity_type == "userByEmail"

    def test_user(self):
        grant = AccessGrant.for_dataset("p", "d", "READER", "alice@example.com")
        assert grant.member == "user:alice@example.com"
        assert grant.entity_type == "userByEmail"

    def test_forced_group(self):
        grant = AccessGrant.for_dataset("p", "d", "READER", "team@example.com", group=True)
        assert grant.member == "group:team@example.com"
        assert grant.entity_type == "groupByEmail"

    def test_as_group_keeps_everything_else(self):
        grant = AccessGrant.for_project("p", "roles/bigquery.user", "team@example.com")
        group = grant.as_group()
        assert group.entity_kind is EntityKind.GROUP
        assert (group.project, group.role, group.entity) == (grant.project, grant.role, grant.entity)
        assert grant.entity_kind is EntityKind.USER

    @pytest.mark.parametrize(
        "member, expected",
        [
            ("user:a@b.com", "a@b.com"),
            ("serviceAccount:sa@p.iam.gserviceaccount.com", "sa@p.iam.gserviceaccount.com"),
            ("deleted:user:a@b.com?uid=1", None),
            ("allUsers", None),
        ],
    )
    def test_member_identity(self, member, expected):
        assert member_identity(member) == expected


class TestProjectPolicy:
    def test_with_member_appends_to_existing_binding(self):
        p = policy(("roles/viewer", ["user:a@b.com"]))
        updated = p.with_member("roles/viewer", "user:c@d.com")
        assert updated.bindings[0].members == ("user:a@b.com", "user:c@d.com")
        assert updated.etag == p.etag
        assert p.bindings[0].members == ("user:a@b.com",)

    def test_without_member_drops_empty_binding(self):
        p = policy(("roles/viewer", ["user:a@b.com"]), ("roles/editor", ["user:x@y.com"]))
        updated = p.without_member("roles/viewer", "user:a@b.com")
        assert [b.role for b in updated.bindings] == ["roles/editor"]

    def test_conditional_bindings_untouched(self):
        conditional = Binding(
            role="roles/viewer",
            members=("user:a@b.com",),
            condition={"expression": "request.time < timestamp('2030-01-01T00:00:00Z')"},
        )
        p = ProjectPolicy(bindings=(conditional,), etag=b"1")
        assert not p.has_member("roles/viewer", "user:a@b.com")
        updated = p.with_member("roles/viewer", "user:a@b.com")
        assert updated.bindings[0] == conditional
        assert updated.bindings[1] == Binding(role="roles/viewer", members=("user:a@b.com",))
        assert updated.without_member("roles/viewer", "user:a@b.com").bindings == (conditional,)

    def test_identities(self):
        p = policy(
            ("roles/viewer", ["user:a@b.com", "deleted:user:x@y.com?uid=1"]),
            ("roles/owner", ["group:g@b.com"]),
        )
        assert p.identities() == ["a@b.com", "g@b.com"]


class TestDatasetAccess:
    def test_with_and_without_entry(self):
        access = DatasetAccess(project="p", dataset="d", entries=(entry("OWNER", "o@b.com"),), etag="e")
        granted = access.with_entry("READER", "userByEmail", "a@b.com")
        assert granted.has_entry("READER", "userByEmail", "a@b.com")
        assert not granted.has_entry("READER", "groupByEmail", "a@b.com")
        assert granted.etag == "e"
        assert granted.without_entry("READER", "userByEmail", "a@b.com") == access

    def test_conditional_entries_untouched(self):
        conditional = AccessEntry(
            role="READER",
            entity_type="userByEmail",
            entity_id="a@b.com",
            condition={"expression": "request.time < timestamp('2030-01-01T00:00:00Z')"},
        )
        access = DatasetAccess(project="p", dataset="d", entries=(conditional,), etag="e")
        assert not access.has_entry("READER", "userByEmail", "a@b.com")
        granted = access.with_entry("READER", "userByEmail", "a@b.com")
        assert granted.entries == (conditional, entry("READER", "a@b.com"))
        assert granted.without_entry("READER", "userByEmail", "a@b.com").entries == (conditional,)
