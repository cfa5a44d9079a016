"""
bqiam exception hierarchy.

Every failure surfaced by the tool inherits from :class:`BqiamError`.
SDK exceptions are mapped onto these at the GCP store boundary and
chained with ``raise ... from e`` so the upstream diagnostic survives.
"""


# ── Base ──────────────────────────────────────────────────────────────
class BqiamError(Exception):
    """Root exception for all bqiam errors."""


# ── Configuration ─────────────────────────────────────────────────────
class ConfigError(BqiamError):
    """Config file missing, unreadable or invalid."""


# ── Clients / enumeration ─────────────────────────────────────────────
class ClientError(BqiamError):
    """Failed to construct an SDK client (transport or credentials)."""


class EnumerationError(BqiamError):
    """Failed to list projects or datasets."""


# ── Policies ──────────────────────────────────────────────────────────
class PolicyError(BqiamError):
    """Base exception for policy read / write operations."""


class PolicyFetchError(PolicyError):
    """Failed to read a project IAM policy or a dataset access list."""


class PolicyUpdateError(PolicyError):
    """Failed to submit a policy mutation."""


class StalePolicyError(PolicyUpdateError):
    """The policy changed since it was read (etag mismatch)."""


class InvalidPrincipalError(PolicyUpdateError):
    """The store rejected the principal as an invalid argument."""


class InvalidRoleError(PolicyError):
    """Unknown role token, or a role that may not be granted."""


# ── Metadata cache ────────────────────────────────────────────────────
class CacheError(BqiamError):
    """Base exception for metadata cache operations."""


class CacheLoadError(CacheError):
    """Cache file missing or unreadable."""


class CacheSaveError(CacheError):
    """Cache file could not be written."""


class CrawlError(CacheError):
    """A project or dataset failed during the crawl."""


# ── Completion ────────────────────────────────────────────────────────
class CompletionError(BqiamError):
    """Completion list could not be built, loaded or saved."""
