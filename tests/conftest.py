"""Shared test fixtures."""

from __future__ import annotations

from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field
from pathlib import Path

import pytest

from fastbuild.environment import profile_subdir
from fastbuild.process import CommandResult

Handler = Callable[[tuple[str, ...], Path | None, Mapping[str, str]], CommandResult]


@dataclass(slots=True)
class RecordedCall:
    argv: tuple[str, ...]
    cwd: Path | None
    env: dict[str, str]


@dataclass(slots=True)
class FakeRunner:
    """In-memory command runner: canned results keyed by argv prefix.

    The longest registered prefix wins; anything unregistered exits 1.
    """

    tools: dict[str, str] = field(default_factory=dict)
    responses: dict[tuple[str, ...], CommandResult | Handler] = field(default_factory=dict)
    calls: list[RecordedCall] = field(default_factory=list)

    def on(
        self,
        *prefix: str,
        stdout: str = "",
        returncode: int = 0,
        stderr: str = "",
        handler: Handler | None = None,
    ) -> None:
        if handler is not None:
            self.responses[prefix] = handler
            return
        self.responses[prefix] = CommandResult(
            argv=prefix,
            returncode=returncode,
            stdout=stdout,
            stderr=stderr,
        )

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
        self.calls.append(RecordedCall(argv=command, cwd=cwd, env=dict(env or {})))
        matches = [prefix for prefix in self.responses if command[: len(prefix)] == prefix]
        if not matches:
            return CommandResult(argv=command, returncode=1)
        response = self.responses[max(matches, key=len)]
        if isinstance(response, CommandResult):
            return CommandResult(
                argv=command,
                returncode=response.returncode,
                stdout=response.stdout,
                stderr=response.stderr,
            )
        return response(command, cwd, dict(env or {}))

    def which(self, name: str) -> str | None:
        return self.tools.get(name)

    def invoked(self, *prefix: str) -> list[RecordedCall]:
        return [call for call in self.calls if call.argv[: len(prefix)] == prefix]


@pytest.fixture
def runner() -> FakeRunner:
    return FakeRunner()


def write_executable(path: Path, content: str = "#!/bin/sh\nexit 0\n") -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")
    path.chmod(0o755)
    return path


WORKSPACE_MANIFEST = """[workspace]
members = ["cli"]

[profile.dev-fast]
inherits = "dev"

[profile.perf]
inherits = "release"

[profile.release-prod]
inherits = "release"
"""


def fake_cargo_build(argv: tuple[str, ...], cwd: Path | None, env: Mapping[str, str]) -> CommandResult:
    """Write one executable per ``--bin`` where cargo would put it."""
    args = list(argv)
    profile = args[args.index("--profile") + 1]
    output = Path(env["CARGO_TARGET_DIR"])
    if "--target" in args:
        output = output / args[args.index("--target") + 1]
    output = output / profile_subdir(profile)
    for index, arg in enumerate(args):
        if arg == "--bin":
            name = args[index + 1]
            write_executable(output / name, f"#!/bin/sh\necho {name} {profile}\n")
    return CommandResult(argv=argv, returncode=0)
