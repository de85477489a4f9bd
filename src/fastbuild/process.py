"""Spawn primitive shared by every external tool invocation.

Child environments are always passed as an explicit table; the orchestrator's
own ``os.environ`` is never mutated.
"""

from __future__ import annotations

import shutil
import subprocess
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol


@dataclass(frozen=True, slots=True)
class CommandResult:
    argv: tuple[str, ...]
    returncode: int
    stdout: str = ""
    stderr: str = ""

    @property
    def ok(self) -> bool:
        return self.returncode == 0


class CommandRunner(Protocol):
    def run(
        self,
        argv: Sequence[str],
        *,
        cwd: Path | None = None,
        env: Mapping[str, str] | None = None,
        capture: bool = True,
        stdin: bytes | None = None,
    ) -> CommandResult:
        """Run *argv* and return its exit status and (optionally) output."""

    def which(self, name: str) -> str | None:
        """Return the absolute path of *name* on PATH, or None."""


@dataclass(slots=True)
class SubprocessRunner:
    """Real runner backed by :func:`subprocess.run`.

    A missing executable is reported as exit status 127 rather than raised,
    the same way a shell would.
    """

    path: str | None = None

    def run(
        self,
        argv: Sequence[str],
        *,
        cwd: Path | None = None,
        env: Mapping[str, str] | None = None,
        capture: bool = True,
        stdin: bytes | None = None,
    ) -> CommandResult:
        command = tuple(argv)
        try:
            if stdin is not None:
                completed = subprocess.run(
                    command,
                    cwd=cwd,
                    env=dict(env) if env is not None else None,
                    input=stdin,
                    capture_output=True,
                    check=False,
                )
                return CommandResult(
                    argv=command,
                    returncode=completed.returncode,
                    stdout=completed.stdout.decode("utf-8", errors="replace"),
                    stderr=completed.stderr.decode("utf-8", errors="replace"),
                )
            completed_text = subprocess.run(
                command,
                cwd=cwd,
                env=dict(env) if env is not None else None,
                capture_output=capture,
                text=True,
                check=False,
            )
        except FileNotFoundError as exc:
            return CommandResult(argv=command, returncode=127, stderr=str(exc))
        return CommandResult(
            argv=command,
            returncode=completed_text.returncode,
            stdout=completed_text.stdout or "",
            stderr=completed_text.stderr or "",
        )

    def which(self, name: str) -> str | None:
        return shutil.which(name, path=self.path)
