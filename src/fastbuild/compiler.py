"""Cargo invocation surface."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from pathlib import Path

from fastbuild.models import ToolchainDescriptor
from fastbuild.process import CommandResult, CommandRunner, SubprocessRunner


@dataclass(slots=True)
class CargoDriver:
    runner: CommandRunner = field(default_factory=SubprocessRunner)

    def lockfile_consistent(
        self,
        toolchain: ToolchainDescriptor,
        *,
        workspace: Path,
        env: Mapping[str, str],
    ) -> bool:
        result = self.runner.run(
            toolchain.cargo_argv("metadata", "--locked", "--format-version", "1"),
            cwd=workspace,
            env=env,
        )
        return result.ok

    def build_argv(
        self,
        toolchain: ToolchainDescriptor,
        *,
        profile: str,
        target: str | None,
        binaries: Sequence[str],
        locked: bool,
    ) -> tuple[str, ...]:
        args: list[str] = ["build"]
        if locked:
            args.append("--locked")
        args.extend(["--profile", profile])
        if target:
            args.extend(["--target", target])
        for name in binaries:
            args.extend(["--bin", name])
        return toolchain.cargo_argv(*args)

    def build(
        self,
        toolchain: ToolchainDescriptor,
        *,
        workspace: Path,
        env: Mapping[str, str],
        profile: str,
        target: str | None,
        binaries: Sequence[str],
        locked: bool,
    ) -> CommandResult:
        argv = self.build_argv(
            toolchain,
            profile=profile,
            target=target,
            binaries=binaries,
            locked=locked,
        )
        # Cargo output streams straight to the terminal.
        return self.runner.run(argv, cwd=workspace, env=env, capture=False)
