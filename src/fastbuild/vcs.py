"""Git worktree query."""

from __future__ import annotations

from pathlib import Path

from fastbuild.models import VcsInfo
from fastbuild.process import CommandRunner, SubprocessRunner


def query_worktree(path: Path, *, runner: CommandRunner | None = None) -> VcsInfo:
    """Describe the git worktree containing *path*.

    Never raises: outside a repository (or without git) the result carries
    ``in_repo=False`` and *path* as the worktree root.
    """
    active = runner or SubprocessRunner()
    toplevel = _git(active, path, "rev-parse", "--show-toplevel")
    worktree_root = Path(toplevel) if toplevel else path
    if _git(active, path, "rev-parse", "--is-inside-work-tree") != "true":
        return VcsInfo(in_repo=False, branch_or_ref_label="unknown", worktree_root=worktree_root)

    label = _git(active, path, "rev-parse", "--abbrev-ref", "HEAD") or "HEAD"
    short_commit = _git(active, path, "rev-parse", "--short", "HEAD")
    commit_time = _git(active, path, "log", "-1", "--pretty=%ct")
    return VcsInfo(
        in_repo=True,
        branch_or_ref_label=label,
        worktree_root=worktree_root,
        short_commit=short_commit,
        commit_time=commit_time,
    )


def _git(runner: CommandRunner, cwd: Path, *argv: str) -> str | None:
    result = runner.run(("git", *argv), cwd=cwd)
    if not result.ok:
        return None
    output = result.stdout.strip()
    return output or None
