"""
SDK client pool.

The crawl and the reconciler ask for the same BigQuery / Resource Manager
client many times (once per dataset, once per project...). The pool keeps
one client per service and project, built lazily.
"""

from __future__ import annotations

import threading
from typing import Any, Callable

from google.api_core import exceptions as gcp_exceptions
from google.auth import exceptions as auth_exceptions
from google.cloud import bigquery, resourcemanager_v3

from bqiam.base.exceptions import ClientError


# Anything the SDK can raise once a request is on the wire, including an
# exhausted retry deadline and a failed token refresh.
SDK_ERRORS = (gcp_exceptions.GoogleAPIError, auth_exceptions.GoogleAuthError)


class ClientPool:
    """Thread-safe, in-process cache of SDK clients keyed by service + project."""

    def __init__(self, credentials: Any | None = None) -> None:
        self.credentials = credentials
        self._cache: dict[tuple[str, str | None], Any] = {}
        self._lock = threading.Lock()

    def get_or_create(
        self,
        service_name: str,
        project: str | None,
        factory: Callable[[], Any],
    ) -> Any:
        """Return a cached client or create one via *factory*.

        Raises:
            ClientError: If the client cannot be constructed (e.g. no credentials).
        """
        key = (service_name, project)
        with self._lock:
            if key not in self._cache:
                try:
                    self._cache[key] = factory()
                except auth_exceptions.GoogleAuthError as e:
                    raise ClientError(
                        f"failed to create {service_name} client for project {project}: {e}"
                    ) from e
            return self._cache[key]

    def bigquery(self, project: str | None = None) -> bigquery.Client:
        return self.get_or_create(
            "bigquery",
            project,
            lambda: bigquery.Client(project=project, credentials=self.credentials),
        )

    def projects(self) -> resourcemanager_v3.ProjectsClient:
        return self.get_or_create(
            "resourcemanager",
            None,
            lambda: resourcemanager_v3.ProjectsClient(credentials=self.credentials),
        )

    def clear(self) -> None:
        """Close and drop all cached clients."""
        with self._lock:
            for client in self._cache.values():
                close = getattr(client, "close", None)
                if callable(close):
                    close()
            self._cache.clear()
