"""Policy reconciler.

Turns a grant / revoke intent into at most one mutation of the
authoritative policy. The current policy is always read fresh, the intent
is checked against it, and only a missing grant (or a present revoke)
produces a write, which carries the etag that was read.
"""

from __future__ import annotations

import functools
from typing import Callable, Iterable, NamedTuple

from bqiam.base.confirm import confirm as confirm_prompt
from bqiam.base.exceptions import InvalidPrincipalError
from bqiam.base.logger import bq_logger
from bqiam.base.models import (
    AUXILIARY_ROLES,
    AccessGrant,
    EntityKind,
    Intent,
    ResourceScope,
    dataset_role,
    project_role,
)
from bqiam.base.policy_store import DatasetAccessBlueprint, ProjectPolicyBlueprint


class ReconcileOutcome(NamedTuple):
    grant: AccessGrant
    intent: Intent
    changed: bool


def _distinct(items: Iterable[str]) -> list[str]:
    return list(dict.fromkeys(items))


def _summary(
    action: str,
    project: str,
    role: str,
    users: list[str],
    datasets: list[str] | None = None,
) -> str:
    lines = [
        f"{action} following roles",
        f"project_id: {project}",
        f"role:       {role}",
    ]
    if datasets is None:
        lines.append(f"users:      {users}")
        verb = "added" if action == "PERMIT" else "removed"
        lines.append(f"If you proceed, PROJECT-WIDE permission will be {verb}.")
    else:
        lines.append(f"datasets:   {datasets}")
        lines.append(f"users:      {users}")
    return "\n".join(lines)


class PolicyReconciler:
    """Idempotent grant / revoke at project and dataset scope.

    Args:
        project_store: Project IAM policy store.
        dataset_store: Dataset access store.
        confirm: Callable receiving the batch summary and returning whether
            to proceed. Defaults to the interactive ``[y/n]`` prompt.
    """

    def __init__(
        self,
        project_store: ProjectPolicyBlueprint,
        dataset_store: DatasetAccessBlueprint,
        *,
        confirm: Callable[[str], bool] | None = None,
    ) -> None:
        self.project_store = project_store
        self.dataset_store = dataset_store
        self.confirm = confirm or functools.partial(confirm_prompt, assume_yes=False)

    # --- single intent ---

    def reconcile(self, intent: Intent, grant: AccessGrant) -> ReconcileOutcome:
        """Bring one grant to the state requested by *intent*.

        Returns:
            The outcome; ``changed`` is ``False`` when nothing had to be written.

        Raises:
            PolicyFetchError: If the current policy cannot be read.
            PolicyUpdateError: If the write is rejected (including stale etag).
        """
        if grant.resource_scope is ResourceScope.PROJECT:
            changed = self._reconcile_project(intent, grant)
        else:
            changed = self._reconcile_dataset(intent, grant)
        return ReconcileOutcome(grant, intent, changed)

    def reconcile_with_group_fallback(
        self, intent: Intent, grant: AccessGrant
    ) -> ReconcileOutcome:
        """Like :meth:`reconcile`, retrying once as a group principal when the
        store rejects the user / service-account form as invalid."""
        try:
            return self.reconcile(intent, grant)
        except InvalidPrincipalError as e:
            if grant.entity_kind is EntityKind.GROUP:
                raise
            bq_logger.warning(
                f"failed to {intent.value} {grant.member}, trying as group account: {e}",
                project=grant.project,
                operation=intent.value,
            )
            return self.reconcile(intent, grant.as_group())

    def _reconcile_project(self, intent: Intent, grant: AccessGrant) -> bool:
        policy = self.project_store.get_policy(grant.project)
        present = policy.has_member(grant.role, grant.member)
        if intent is Intent.GRANT:
            if present:
                bq_logger.info(
                    f"{grant.entity} already has {grant.role}. skipped.",
                    project=grant.project,
                    operation="grant",
                )
                return False
            updated = policy.with_member(grant.role, grant.member)
        else:
            if not present:
                bq_logger.info(
                    f"{grant.entity} does not have {grant.role}. skipped.",
                    project=grant.project,
                    operation="revoke",
                )
                return False
            updated = policy.without_member(grant.role, grant.member)
        self.project_store.set_policy(grant.project, updated)
        return True

    def _reconcile_dataset(self, intent: Intent, grant: AccessGrant) -> bool:
        access = self.dataset_store.get_access(grant.project, grant.resource_id)
        present = access.has_entry(grant.role, grant.entity_type, grant.entity)
        if intent is Intent.GRANT:
            if present:
                bq_logger.info(
                    f"{grant.entity} already has {grant.role}. skipped.",
                    project=grant.project,
                    dataset=grant.resource_id,
                    operation="grant",
                )
                return False
            updated = access.with_entry(grant.role, grant.entity_type, grant.entity)
        else:
            if not present:
                bq_logger.info(
                    f"{grant.entity} does not have {grant.role}. skipped.",
                    project=grant.project,
                    dataset=grant.resource_id,
                    operation="revoke",
                )
                return False
            updated = access.without_entry(grant.role, grant.entity_type, grant.entity)
        self.dataset_store.update_access(updated)
        return True

    # --- batches ---

    def permit_datasets(
        self,
        role: str,
        project: str,
        users: Iterable[str],
        datasets: Iterable[str],
        *,
        group: bool = False,
    ) -> list[ReconcileOutcome] | None:
        """Grant *role* on every dataset to every user.

        Each distinct user first gets ``roles/bigquery.jobUser`` and
        ``roles/bigquery.user`` on the project. Processing stops at the
        first error; what was applied before it stays applied.

        Returns:
            The outcomes in processing order, or ``None`` if the operator aborted.
        """
        access_role = dataset_role(role)
        users, datasets = _distinct(users), _distinct(datasets)
        if not self.confirm(_summary("PERMIT", project, access_role, users, datasets)):
            return None

        outcomes = []
        for user in users:
            for aux_role in AUXILIARY_ROLES:
                grant = AccessGrant.for_project(project, aux_role, user, group=group)
                outcomes.append(self.reconcile_with_group_fallback(Intent.GRANT, grant))
        for dataset in datasets:
            for user in users:
                grant = AccessGrant.for_dataset(project, dataset, access_role, user, group=group)
                outcomes.append(self.reconcile_with_group_fallback(Intent.GRANT, grant))
        return outcomes

    def revoke_datasets(
        self,
        role: str,
        project: str,
        users: Iterable[str],
        datasets: Iterable[str],
        *,
        group: bool = False,
    ) -> list[ReconcileOutcome] | None:
        """Revoke *role* on every dataset from every user.

        The project-level BigQuery roles are left in place.
        """
        access_role = dataset_role(role)
        users, datasets = _distinct(users), _distinct(datasets)
        if not self.confirm(_summary("REVOKE", project, access_role, users, datasets)):
            return None

        outcomes = []
        for dataset in datasets:
            for user in users:
                grant = AccessGrant.for_dataset(project, dataset, access_role, user, group=group)
                outcomes.append(self.reconcile_with_group_fallback(Intent.REVOKE, grant))
        return outcomes

    def permit_project(
        self,
        role: str,
        project: str,
        users: Iterable[str],
        *,
        group: bool = False,
    ) -> list[ReconcileOutcome] | None:
        """Grant a project-wide viewer / editor role to every user."""
        iam_role = project_role(role)
        users = _distinct(users)
        if not self.confirm(_summary("PERMIT", project, iam_role, users)):
            return None
        return [
            self.reconcile(Intent.GRANT, AccessGrant.for_project(project, iam_role, u, group=group))
            for u in users
        ]

    def revoke_project(
        self,
        role: str,
        project: str,
        users: Iterable[str],
        *,
        group: bool = False,
    ) -> list[ReconcileOutcome] | None:
        """Revoke a project-wide viewer / editor role from every user."""
        iam_role = project_role(role)
        users = _distinct(users)
        if not self.confirm(_summary("REVOKE", project, iam_role, users)):
            return None
        return [
            self.reconcile(Intent.REVOKE, AccessGrant.for_project(project, iam_role, u, group=group))
            for u in users
        ]
