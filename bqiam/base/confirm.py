"""Operator confirmation gate for mutating batches."""

from __future__ import annotations

from typing import Callable


PROMPT = "Are you sure? [y/n] "


def confirm(
    summary: str,
    *,
    assume_yes: bool = False,
    reader: Callable[[str], str] | None = None,
) -> bool:
    """Print *summary* and ask the operator to proceed.

    Only an exact ``y`` (surrounding whitespace ignored) proceeds. Any other
    answer, or a failure to read one, aborts.

    Args:
        summary: Human-readable description of the intended change.
        assume_yes: Skip the prompt (``--yes``).
        reader: Callable that displays a prompt and returns one line
            (defaults to :func:`input`).

    Returns:
        ``True`` when the operator confirmed.
    """
    print(summary)
    if assume_yes:
        return True
    try:
        answer = (reader or input)(PROMPT)
    except (EOFError, OSError):
        answer = ""
    if answer.strip() != "y":
        print("Abort.")
        return False
    return True
