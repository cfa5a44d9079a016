"""bqiam CLI: BigQuery dataset and project access administration.

Usage examples::

    bqiam permit dataset READER -p my-project -u alice@example.com -d sales -d ads
    bqiam revoke project WRITER -p my-project -u bob@example.com
    bqiam cache
    bqiam dataset alice@example.com
    bqiam completion bash > /etc/bash_completion.d/bqiam
"""

from __future__ import annotations

import argparse
import functools
import sys

from bqiam.base.config import DEFAULT_COMPLETION_FILE, BqiamConfig, load_config, real_path
from bqiam.base.confirm import confirm
from bqiam.base.exceptions import BqiamError, ConfigError
from bqiam.base.logger import bq_logger
from bqiam.base.models import DATASET_ROLES, Intent, ResourceScope
from bqiam.completion import SHELL_SCRIPTS, CompletionList, build_completion_list
from bqiam.factory import create_metadata_cache, create_reconciler, create_stores
from bqiam.reconciler import ReconcileOutcome


def _csv(value: str) -> list[str]:
    """``-u a,b -u c`` -> ``[a, b, c]`` when combined with ``action="extend"``."""
    return [v.strip() for v in value.split(",") if v.strip()]


def _add_mutation_parsers(parent: argparse._SubParsersAction, verb: str) -> None:
    parser = parent.add_parser(verb, help=f"{verb} access to datasets or a whole project")
    scopes = parser.add_subparsers(dest="scope", required=True)

    ds = scopes.add_parser(
        "dataset",
        help=f"{verb} users access to datasets",
        description=(
            f"{verb} some users access to some datasets as READER or WRITER or OWNER, e.g.\n"
            f"  bqiam {verb} dataset READER -p bq-project-id -u user1@email.com -d dataset1"
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    ds.add_argument("role", type=str.upper, choices=list(DATASET_ROLES), help="Dataset role")
    ds.add_argument("--datasets", "-d", action="extend", type=_csv, required=True,
                    help="Dataset id(s), repeatable or comma separated")

    pj = scopes.add_parser(
        "project",
        help=f"{verb} users project-wide access",
        description=(
            f"{verb} some users project-wide access as READER (viewer) or WRITER (editor), e.g.\n"
            f"  bqiam {verb} project READER -p bq-project-id -u user1@email.com"
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    pj.add_argument("role", type=str.upper, help="READER or WRITER")

    for sub in (ds, pj):
        sub.add_argument("--project", "-p", required=True, help="GCP project id")
        sub.add_argument("--users", "-u", action="extend", type=_csv, required=True,
                         help="User / service account email(s), repeatable or comma separated")
        sub.add_argument("--group", action="store_true",
                         help="Treat the given emails as groups")
        sub.add_argument("--yes", "-y", action="store_true",
                         help="Do not ask for confirmation")
        sub.set_defaults(handler=functools.partial(_run_mutation, verb))


def _build_parser() -> argparse.ArgumentParser:
    """Build the argparse parser for the ``bqiam`` CLI.

    Returns:
        Configured :class:`~argparse.ArgumentParser`.
    """
    parser = argparse.ArgumentParser(
        prog="bqiam",
        description="bqiam is a tool for bigquery administrator",
    )
    parser.add_argument(
        "--config",
        default=None,
        help="config file (default is $HOME/.bqiam.toml)",
    )
    parser.add_argument(
        "--refresh", "-r",
        type=int,
        default=None,
        help="cache refresh threshold in hour (default is 24 hours)",
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="debug logging")

    sub = parser.add_subparsers(dest="command", required=True)
    _add_mutation_parsers(sub, "permit")
    _add_mutation_parsers(sub, "revoke")

    cache = sub.add_parser("cache", help="cache bigquery datasets' metadata in a local file")
    cache.set_defaults(handler=_run_cache)

    dataset = sub.add_parser(
        "dataset",
        help="list datasets that the user or service account has permissions on",
    )
    dataset.add_argument("entity", help="user / service account email")
    dataset.add_argument("--yes", "-y", action="store_true",
                         help="refresh an expired cache without asking")
    dataset.set_defaults(handler=_run_dataset)

    completion = sub.add_parser("completion", help="generate shell completion scripts")
    completion.add_argument("shell", choices=sorted(SHELL_SCRIPTS))
    completion.set_defaults(handler=_run_completion)
    return parser


# --- handlers ---

def _format_outcome(outcome: ReconcileOutcome) -> str:
    grant = outcome.grant
    if grant.resource_scope is ResourceScope.DATASET:
        target = grant.resource_id
    else:
        target = f"project {grant.project}"
    if outcome.intent is Intent.GRANT:
        if outcome.changed:
            return f"Permit {grant.entity} to {target} access as {grant.role}"
        return f"{grant.entity} already has {grant.role} on {target}. skipped."
    if outcome.changed:
        return f"Revoked {grant.entity}'s permission of {target} access as {grant.role}"
    return f"{grant.entity} has no {grant.role} on {target}. skipped."


def _run_mutation(verb: str, ns: argparse.Namespace, config: BqiamConfig) -> None:
    reconciler = create_reconciler(
        config, confirm=functools.partial(confirm, assume_yes=ns.yes)
    )
    if ns.scope == "dataset":
        batch = reconciler.permit_datasets if verb == "permit" else reconciler.revoke_datasets
        outcomes = batch(ns.role, ns.project, ns.users, ns.datasets, group=ns.group)
    else:
        batch = reconciler.permit_project if verb == "permit" else reconciler.revoke_project
        outcomes = batch(ns.role, ns.project, ns.users, group=ns.group)
    for outcome in outcomes or []:
        print(_format_outcome(outcome))


def _run_cache(ns: argparse.Namespace, config: BqiamConfig) -> None:
    create_metadata_cache(config).rebuild()
    print(f"dataset meta data are cached to {config.cache_file}")


def _run_dataset(ns: argparse.Namespace, config: BqiamConfig) -> None:
    cache = create_metadata_cache(config)
    if cache.is_expired():
        print(f"cache is expired (older than {config.cache_refresh_hour} hours)")
        cache.refresh_if_stale(functools.partial(confirm, assume_yes=ns.yes))
    for meta in cache.query(ns.entity):
        print(meta.project, meta.dataset, meta.role)


def _run_completion(ns: argparse.Namespace, config: BqiamConfig) -> None:
    print(f"creating completion file: {config.completion_file}", file=sys.stderr)
    stores = create_stores(config)
    build_completion_list(config, stores.project, stores.dataset).save(config.completion_file)
    print(SHELL_SCRIPTS[ns.shell], end="")


def _complete(args: list[str]) -> int:
    """Hidden ``__complete <kind> [prefix]`` helper used by the shell scripts."""
    if not args or args[0] not in ("users", "datasets", "projects"):
        return 1
    prefix = args[1] if len(args) > 1 else ""
    try:
        path = load_config().completion_file
    except ConfigError:
        path = real_path(DEFAULT_COMPLETION_FILE)
    try:
        candidates = CompletionList.load(path).matches(args[0], prefix)
    except BqiamError:
        return 1
    for candidate in candidates:
        print(candidate)
    return 0


def main(argv: list[str] | None = None) -> None:
    """CLI entry point.

    Loads the config, builds the requested component and runs the
    subcommand. Any bqiam error is printed on stderr with exit status 1.

    Args:
        argv: Optional argument list (defaults to ``sys.argv``).
    """
    argv = sys.argv[1:] if argv is None else argv
    if argv[:1] == ["__complete"]:
        sys.exit(_complete(argv[1:]))

    parser = _build_parser()
    ns = parser.parse_args(argv)

    try:
        config = load_config(
            ns.config,
            cache_refresh_hour=ns.refresh,
            verbose=ns.verbose or None,
        )
    except ConfigError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)
    bq_logger.set_verbose(config.verbose)

    try:
        ns.handler(ns, config)
    except BqiamError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
