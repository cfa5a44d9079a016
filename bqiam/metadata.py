"""Dataset metadata cache.

A flat snapshot of ``(project, dataset, role, entity)`` rows, one per
dataset access entry, crawled across the allow-listed projects and saved
as a TOML document. It answers "which datasets can X access" without
touching the live service, and is never used to decide a mutation.
"""

from __future__ import annotations

import asyncio
import os
import time
import tomllib
from typing import Callable
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from bqiam.base.config import BqiamConfig
from bqiam.base.exceptions import (
    BqiamError,
    CacheLoadError,
    CacheSaveError,
    CrawlError,
)
from bqiam.base.logger import bq_logger
from bqiam.base.models import DatasetAccess
from bqiam.base.policy_store import DatasetAccessBlueprint
from bqiam.base.tomlfile import read_toml, write_toml_atomic


class Meta(BaseModel):
    """One access entry of one dataset."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    project: str = Field(alias="Project")
    dataset: str = Field(alias="Dataset")
    role: str = Field(default="", alias="Role")
    entity: str = Field(default="", alias="Entity")


class Metas(BaseModel):
    """The whole cache, loaded and saved as one document."""

    model_config = ConfigDict(populate_by_name=True)

    metas: list[Meta] = Field(default_factory=list, alias="Metas")

    @classmethod
    def load(cls, cache_file: str) -> Metas:
        try:
            return cls.model_validate(read_toml(cache_file))
        except (OSError, tomllib.TOMLDecodeError, ValidationError) as e:
            raise CacheLoadError(
                f"failed to load metadata cache file: {e}\n"
                "  (use `bqiam cache` to create or update bigquery datasets' metadata)"
            ) from e

    def save(self, cache_file: str) -> None:
        try:
            write_toml_atomic(cache_file, self.model_dump(by_alias=True))
        except OSError as e:
            raise CacheSaveError(f"failed to save metadata to the file {cache_file}: {e}") from e

    def query(self, entity: str) -> list[Meta]:
        """All rows whose entity is exactly *entity*, in persisted order."""
        return [m for m in self.metas if m.entity == entity]


def flatten(access: DatasetAccess) -> list[Meta]:
    """One :class:`Meta` per access entry; view / routine entries get an empty entity."""
    return [
        Meta(
            project=access.project,
            dataset=access.dataset,
            role=entry.role or "",
            entity=entry.entity_id if isinstance(entry.entity_id, str) else "",
        )
        for entry in access.entries
    ]


class MetadataCache:
    """Builds, persists and queries the dataset metadata cache.

    Args:
        config: Operator configuration (allow-list, cache path, refresh threshold).
        store: Dataset access store used for the crawl.
    """

    def __init__(self, config: BqiamConfig, store: DatasetAccessBlueprint) -> None:
        self.config = config
        self.store = store

    @property
    def cache_file(self) -> str:
        return self.config.cache_file

    # --- crawl ---

    def allowed_projects(self) -> list[str]:
        """Visible projects that are also in the configured allow-list."""
        allowed = set(self.config.bigquery_projects)
        return [p for p in self.store.list_projects() if p in allowed]

    def crawl(self) -> Metas:
        """Crawl projects -> datasets -> access entries.

        Raises:
            EnumerationError: If the project listing fails.
            CrawlError: If any project or dataset fails; the other project
                crawls are cancelled.
        """
        projects = self.allowed_projects()
        bq_logger.info(f"caching datasets of {len(projects)} projects", operation="crawl")
        return Metas(metas=asyncio.run(self._crawl(projects)))

    async def _crawl(self, projects: list[str]) -> list[Meta]:
        semaphore = asyncio.Semaphore(self.config.crawl_concurrency)
        try:
            async with asyncio.TaskGroup() as tg:
                tasks = [tg.create_task(self._crawl_project(p, semaphore)) for p in projects]
        except ExceptionGroup as eg:
            first = eg.exceptions[0]
            if isinstance(first, CrawlError) or not isinstance(first, BqiamError):
                raise first from eg
            raise CrawlError(str(first)) from first
        return [m for task in tasks for m in task.result()]

    async def _crawl_project(self, project: str, semaphore: asyncio.Semaphore) -> list[Meta]:
        async with semaphore:
            datasets = await self.store.alist_datasets(project)
            metas: list[Meta] = []
            for i, dataset in enumerate(datasets, 1):
                access = await self.store.aget_access(project, dataset)
                metas.extend(flatten(access))
                bq_logger.debug(
                    f"[{i}/{len(datasets)}] cached",
                    project=project,
                    dataset=dataset,
                    operation="crawl",
                )
        bq_logger.info(f"cached {len(datasets)} datasets", project=project, operation="crawl")
        return metas

    def rebuild(self) -> Metas:
        """Crawl and overwrite the cache file. Nothing is written on failure."""
        metas = self.crawl()
        metas.save(self.cache_file)
        bq_logger.info(f"dataset meta data are cached to {self.cache_file}", operation="cache")
        return metas

    # --- read path ---

    def load(self) -> Metas:
        return Metas.load(self.cache_file)

    def query(self, entity: str) -> list[Meta]:
        return self.load().query(entity)

    def is_expired(self, now: float | None = None) -> bool:
        """True when the cache file is missing or older than the refresh threshold."""
        try:
            modified = os.path.getmtime(self.cache_file)
        except OSError:
            return True
        now = time.time() if now is None else now
        return now - modified > self.config.cache_refresh_hour * 3600

    def refresh_if_stale(
        self, confirm: Callable[[str], bool], now: float | None = None
    ) -> bool:
        """Offer a rebuild when the cache is expired.

        A declined or failed rebuild is logged and otherwise ignored; the
        caller goes on with whatever cache is on disk.

        Returns:
            ``True`` if the cache was rebuilt.
        """
        if not self.is_expired(now):
            return False
        summary = (
            f"cache file {self.cache_file} is missing or older than "
            f"{self.config.cache_refresh_hour} hours. Refresh it now?"
        )
        if not confirm(summary):
            bq_logger.warning("cache refresh declined, using the stale cache", operation="cache")
            return False
        try:
            self.rebuild()
        except BqiamError as e:
            bq_logger.warning(
                f"failed to refresh cache, using the stale cache: {e}", operation="cache"
            )
            return False
        return True
