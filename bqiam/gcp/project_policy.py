"""Resource Manager implementation of the project IAM policy store."""

from __future__ import annotations

from typing import Any, NoReturn

from google.api_core import exceptions as gcp_exceptions
from google.iam.v1 import policy_pb2
from google.type import expr_pb2

from bqiam.base.exceptions import (
    InvalidPrincipalError,
    PolicyFetchError,
    PolicyUpdateError,
    StalePolicyError,
)
from bqiam.base.logger import bq_logger
from bqiam.base.models import Binding, ProjectPolicy
from bqiam.base.policy_store import ProjectPolicyBlueprint
from bqiam.gcp.clients import SDK_ERRORS, ClientPool


# Conditional role bindings are only returned for version 3 requests.
REQUESTED_POLICY_VERSION = 3

_CONDITION_FIELDS = ("expression", "title", "description", "location")


def _handle_update_error(e: Exception, message: str) -> NoReturn:
    """Raise a mapped exception or a generic PolicyUpdateError."""
    if isinstance(e, (gcp_exceptions.Conflict, gcp_exceptions.PreconditionFailed)):
        raise StalePolicyError(f"{message}: {e}") from e
    if isinstance(e, gcp_exceptions.BadRequest):
        raise InvalidPrincipalError(f"{message}: {e}") from e
    raise PolicyUpdateError(f"{message}: {e}") from e


def policy_from_pb(policy: Any) -> ProjectPolicy:
    bindings = []
    for b in policy.bindings:
        condition = None
        if b.HasField("condition"):
            condition = {
                f: getattr(b.condition, f) for f in _CONDITION_FIELDS if getattr(b.condition, f)
            }
        bindings.append(Binding(role=b.role, members=tuple(b.members), condition=condition))
    return ProjectPolicy(bindings=tuple(bindings), etag=policy.etag, version=policy.version)


def policy_to_pb(policy: ProjectPolicy) -> policy_pb2.Policy:
    bindings = []
    for b in policy.bindings:
        kwargs: dict[str, Any] = {"role": b.role, "members": list(b.members)}
        if b.condition:
            kwargs["condition"] = expr_pb2.Expr(**b.condition)
        bindings.append(policy_pb2.Binding(**kwargs))
    return policy_pb2.Policy(version=policy.version, etag=policy.etag, bindings=bindings)


class ProjectPolicyStore(ProjectPolicyBlueprint):
    """Project IAM policies through the Resource Manager API.

    Writes send the whole policy back with the etag that was read, so a
    concurrent change made in between is rejected by the service. Calls
    are made once, with ``retry=None``.
    """

    def __init__(self, pool: ClientPool) -> None:
        self.pool = pool

    def get_policy(self, project: str) -> ProjectPolicy:
        client = self.pool.projects()
        bq_logger.debug("fetching IAM policy", project=project, operation="get_policy")
        try:
            policy = client.get_iam_policy(
                request={
                    "resource": f"projects/{project}",
                    "options": {"requested_policy_version": REQUESTED_POLICY_VERSION},
                },
                retry=None,
            )
        except SDK_ERRORS as e:
            raise PolicyFetchError(
                f"failed to fetch current policy of project {project}: {e}"
            ) from e
        return policy_from_pb(policy)

    def set_policy(self, project: str, policy: ProjectPolicy) -> ProjectPolicy:
        client = self.pool.projects()
        bq_logger.debug("updating IAM policy", project=project, operation="set_policy")
        try:
            stored = client.set_iam_policy(
                request={
                    "resource": f"projects/{project}",
                    "policy": policy_to_pb(policy),
                },
                retry=None,
            )
        except SDK_ERRORS as e:
            _handle_update_error(e, f"failed to update policy bindings of project {project}")
        return policy_from_pb(stored)
