"""Shell-completion candidates.

A separate crawl collects the allow-listed projects, their datasets and the
principals found in their IAM policies, and stores them in a small TOML
file. The completion scripts printed by ``bqiam completion`` call back into
``bqiam __complete`` which prefix-matches against that file.
"""

from __future__ import annotations

import tomllib
from typing import Literal
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from bqiam.base.config import BqiamConfig
from bqiam.base.exceptions import CompletionError
from bqiam.base.policy_store import DatasetAccessBlueprint, ProjectPolicyBlueprint
from bqiam.base.tomlfile import read_toml, write_toml_atomic


CompletionKind = Literal["users", "datasets", "projects"]


class CompletionList(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    users: list[str] = Field(default_factory=list, alias="Users")
    datasets: list[str] = Field(default_factory=list, alias="Datasets")
    projects: list[str] = Field(default_factory=list, alias="Projects")
    display_size_limit: int = Field(default=100, gt=0, alias="DisplaySizeLimit")

    @classmethod
    def load(cls, path: str) -> CompletionList:
        try:
            return cls.model_validate(read_toml(path))
        except (OSError, tomllib.TOMLDecodeError, ValidationError) as e:
            raise CompletionError(f"failed to load completion list file: {e}") from e

    def save(self, path: str) -> None:
        try:
            write_toml_atomic(path, self.model_dump(by_alias=True))
        except OSError as e:
            raise CompletionError(f"failed to save completion list to the file: {e}") from e

    def matches(self, kind: CompletionKind, prefix: str = "") -> list[str]:
        """Candidates of *kind* starting with *prefix*, capped at the display limit."""
        result = []
        for candidate in getattr(self, kind):
            if candidate.startswith(prefix):
                result.append(candidate)
                if len(result) >= self.display_size_limit:
                    break
        return result


def build_completion_list(
    config: BqiamConfig,
    project_store: ProjectPolicyBlueprint,
    dataset_store: DatasetAccessBlueprint,
) -> CompletionList:
    """Collect completion candidates for the allow-listed projects.

    Raises:
        EnumerationError / PolicyFetchError: On the first failing project.
    """
    projects = list(config.bigquery_projects)
    datasets: list[str] = []
    for project in projects:
        datasets.extend(dataset_store.list_datasets(project))

    users: list[str] = []
    for project in projects:
        users.extend(project_store.get_policy(project).identities())

    return CompletionList(
        users=list(dict.fromkeys(users)),
        datasets=list(dict.fromkeys(datasets)),
        projects=projects,
        display_size_limit=config.completion_display_size_limit,
    )


_BASH_SCRIPT = """\
# bash completion for bqiam
_bqiam_complete() {
    local cur prev kind
    cur="${COMP_WORDS[COMP_CWORD]}"
    prev="${COMP_WORDS[COMP_CWORD-1]}"
    case "$prev" in
        -u|--users) kind=users ;;
        -d|--datasets) kind=datasets ;;
        -p|--project) kind=projects ;;
        *)
            COMPREPLY=($(compgen -W "permit revoke cache dataset completion project dataset READER WRITER OWNER" -- "$cur"))
            return 0
            ;;
    esac
    COMPREPLY=($(bqiam __complete "$kind" "$cur" 2>/dev/null))
}
complete -F _bqiam_complete bqiam
"""

_ZSH_SCRIPT = """\
#compdef bqiam
_bqiam() {
    local kind
    case "${words[CURRENT-1]}" in
        -u|--users) kind=users ;;
        -d|--datasets) kind=datasets ;;
        -p|--project) kind=projects ;;
        *)
            compadd permit revoke cache dataset completion project READER WRITER OWNER
            return
            ;;
    esac
    compadd -- ${(f)"$(bqiam __complete $kind ${words[CURRENT]} 2>/dev/null)"}
}
compdef _bqiam bqiam
"""

SHELL_SCRIPTS: dict[str, str] = {"bash": _BASH_SCRIPT, "zsh": _ZSH_SCRIPT}
