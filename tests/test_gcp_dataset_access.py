"""Tests for the BigQuery dataset access store."""

from unittest.mock import MagicMock
import pytest

from google.api_core import exceptions as gcp_exceptions
from google.auth import exceptions as auth_exceptions
from google.cloud import bigquery

from bqiam.base.exceptions import (
    EnumerationError,
    InvalidPrincipalError,
    PolicyFetchError,
    PolicyUpdateError,
    StalePolicyError,
)
from bqiam.base.models import AccessEntry, DatasetAccess
from bqiam.gcp.dataset_access import DatasetAccessStore, _entry_from_sdk, _entry_to_sdk


VIEW = {"projectId": "my-project", "datasetId": "views", "tableId": "v"}
CONDITION = {
    "expression": "request.time < timestamp(\"2030-01-01T00:00:00Z\")",
    "title": "until 2030",
}


@pytest.fixture
def svc():
    pool = MagicMock()
    client = pool.bigquery.return_value
    yield DatasetAccessStore(pool), client


def _dataset(entries, etag="etag-1"):
    ds = MagicMock()
    ds.access_entries = entries
    ds.etag = etag
    return ds


# --- enumeration ---

class TestListProjects:
    def test_success(self, svc):
        inst, client = svc
        client.list_projects.return_value = [
            MagicMock(project_id="p1"),
            MagicMock(project_id="p2"),
        ]
        assert inst.list_projects() == ["p1", "p2"]

    def test_error(self, svc):
        inst, client = svc
        client.list_projects.side_effect = gcp_exceptions.Forbidden("nope")
        with pytest.raises(EnumerationError):
            inst.list_projects()

    @pytest.mark.parametrize(
        "error",
        [
            gcp_exceptions.RetryError("Deadline of 600s exceeded", None),
            auth_exceptions.RefreshError("invalid_grant"),
        ],
    )
    def test_transport_and_auth_errors(self, svc, error):
        inst, client = svc
        client.list_projects.side_effect = error
        with pytest.raises(EnumerationError):
            inst.list_projects()
        client.list_projects.assert_called_once_with(retry=None)


class TestListDatasets:
    def test_success(self, svc):
        inst, client = svc
        client.list_datasets.return_value = [MagicMock(dataset_id="sales")]
        assert inst.list_datasets("my-project") == ["sales"]
        client.list_datasets.assert_called_once_with(project="my-project", retry=None)

    def test_error(self, svc):
        inst, client = svc
        client.list_datasets.side_effect = gcp_exceptions.NotFound("no project")
        with pytest.raises(EnumerationError, match="my-project"):
            inst.list_datasets("my-project")


# --- access lists ---

class TestGetAccess:
    def test_success(self, svc):
        inst, client = svc
        client.get_dataset.return_value = _dataset(
            [
                bigquery.AccessEntry("READER", "userByEmail", "a@b.com"),
                bigquery.AccessEntry(None, "view", VIEW),
            ]
        )
        access = inst.get_access("my-project", "sales")
        client.get_dataset.assert_called_once_with("my-project.sales", retry=None)
        assert access.etag == "etag-1"
        assert access.entries[0] == AccessEntry(
            role="READER", entity_type="userByEmail", entity_id="a@b.com"
        )
        assert access.entries[1].entity_id == VIEW

    def test_not_found(self, svc):
        inst, client = svc
        client.get_dataset.side_effect = gcp_exceptions.NotFound("missing")
        with pytest.raises(PolicyFetchError, match="sales"):
            inst.get_access("my-project", "sales")

    def test_refresh_error(self, svc):
        inst, client = svc
        client.get_dataset.side_effect = auth_exceptions.RefreshError("invalid_grant")
        with pytest.raises(PolicyFetchError, match="invalid_grant"):
            inst.get_access("my-project", "sales")

    def test_keeps_condition(self, svc):
        inst, client = svc
        client.get_dataset.return_value = _dataset(
            [
                bigquery.AccessEntry.from_api_repr(
                    {"role": "READER", "userByEmail": "a@b.com", "condition": CONDITION}
                )
            ]
        )
        access = inst.get_access("my-project", "sales")
        assert access.entries[0].condition == CONDITION
        assert not access.has_entry("READER", "userByEmail", "a@b.com")


class TestUpdateAccess:
    def _access(self):
        return DatasetAccess(
            project="my-project",
            dataset="sales",
            entries=(
                AccessEntry(role="READER", entity_type="userByEmail", entity_id="a@b.com"),
                AccessEntry(entity_type="view", entity_id=VIEW),
            ),
            etag="etag-1",
        )

    def test_sends_full_list_with_etag(self, svc):
        inst, client = svc
        client.update_dataset.return_value = _dataset(
            [bigquery.AccessEntry("READER", "userByEmail", "a@b.com")], etag="etag-2"
        )
        stored = inst.update_access(self._access())
        ds, fields = client.update_dataset.call_args[0]
        assert fields == ["access_entries"]
        assert client.update_dataset.call_args[1] == {"retry": None}
        assert ds.etag == "etag-1"
        assert ds.dataset_id == "sales"
        assert [e.entity_type for e in ds.access_entries] == ["userByEmail", "view"]
        assert stored.etag == "etag-2"

    def test_precondition_failed(self, svc):
        inst, client = svc
        client.update_dataset.side_effect = gcp_exceptions.PreconditionFailed("etag mismatch")
        with pytest.raises(StalePolicyError, match="etag mismatch"):
            inst.update_access(self._access())

    def test_bad_request(self, svc):
        inst, client = svc
        client.update_dataset.side_effect = gcp_exceptions.BadRequest(
            "Invalid value for: team@example.com is not a valid value"
        )
        with pytest.raises(InvalidPrincipalError):
            inst.update_access(self._access())

    def test_forbidden(self, svc):
        inst, client = svc
        client.update_dataset.side_effect = gcp_exceptions.Forbidden("Access Denied")
        with pytest.raises(PolicyUpdateError, match="Access Denied"):
            inst.update_access(self._access())

    def test_retry_exhausted(self, svc):
        inst, client = svc
        client.update_dataset.side_effect = gcp_exceptions.RetryError("Deadline exceeded", None)
        with pytest.raises(PolicyUpdateError, match="Deadline exceeded"):
            inst.update_access(self._access())

    def test_conditional_entries_written_back(self, svc):
        inst, client = svc
        conditional = AccessEntry(
            role="READER", entity_type="userByEmail", entity_id="c@b.com", condition=CONDITION
        )
        access = self._access().with_entry("WRITER", "userByEmail", "c@b.com")
        access = access.model_copy(update={"entries": (conditional,) + access.entries})
        client.update_dataset.return_value = _dataset([], etag="etag-2")
        inst.update_access(access)
        ds = client.update_dataset.call_args[0][0]
        assert ds.access_entries[0].to_api_repr() == {
            "role": "READER",
            "userByEmail": "c@b.com",
            "condition": CONDITION,
        }


class TestEntryConversion:
    def test_condition_round_trip(self):
        resource = {"role": "READER", "userByEmail": "a@x.com", "condition": CONDITION}
        sdk_entry = _entry_to_sdk(_entry_from_sdk(bigquery.AccessEntry.from_api_repr(resource)))
        assert sdk_entry.to_api_repr() == resource

    def test_view_entry_round_trip(self):
        resource = {"view": VIEW}
        sdk_entry = _entry_to_sdk(_entry_from_sdk(bigquery.AccessEntry.from_api_repr(resource)))
        assert sdk_entry.to_api_repr() == resource
