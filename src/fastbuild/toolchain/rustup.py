"""Toolchain management surface backed by ``rustup``."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path

from fastbuild.errors import ToolchainError
from fastbuild.process import CommandResult, CommandRunner, SubprocessRunner


@dataclass(slots=True)
class RustupManager:
    runner: CommandRunner = field(default_factory=SubprocessRunner)
    env: Mapping[str, str] | None = None

    def available(self) -> bool:
        return self.runner.which("rustup") is not None

    def active_default(self, *, cwd: Path | None = None) -> str | None:
        result = self._rustup("show", "active-toolchain", cwd=cwd)
        if not result.ok:
            return None
        words = result.stdout.split()
        return words[0] if words else None

    def installed_channels(self) -> tuple[str, ...]:
        result = self._rustup("toolchain", "list")
        if not result.ok:
            return ()
        channels: list[str] = []
        for line in result.stdout.splitlines():
            words = line.split()
            if words and words[0] != "no":
                channels.append(words[0])
        return tuple(channels)

    def is_installed(self, channel: str) -> bool:
        return any(
            name == channel or name.startswith(f"{channel}-")
            for name in self.installed_channels()
        )

    def install(self, channel: str) -> None:
        # No timeout.
        result = self._rustup("toolchain", "install", channel)
        if not result.ok:
            raise ToolchainError(
                "rustup failed to install toolchain.",
                hint="Check network access and that the channel name is valid.",
                context={
                    "operation": "install_toolchain",
                    "channel": channel,
                    "returncode": str(result.returncode),
                    "stderr": result.stderr[:2000],
                },
            )

    def run(self, channel: str, tool: str, *args: str) -> CommandResult:
        return self._rustup("run", channel, tool, *args)

    def which(self, channel: str, tool: str) -> str | None:
        result = self._rustup("which", tool, "--toolchain", channel)
        if not result.ok:
            return None
        path = result.stdout.strip()
        return path or None

    def installed_targets(self, channel: str) -> tuple[str, ...]:
        result = self._rustup("target", "list", "--installed", "--toolchain", channel)
        if not result.ok:
            return ()
        return tuple(line.strip() for line in result.stdout.splitlines() if line.strip())

    def add_target(self, channel: str, triple: str) -> None:
        result = self._rustup("target", "add", triple, "--toolchain", channel)
        if not result.ok:
            raise ToolchainError(
                "rustup failed to install the target standard library.",
                hint=f"Run `rustup target add {triple} --toolchain {channel}` manually.",
                context={
                    "operation": "add_target",
                    "channel": channel,
                    "target": triple,
                    "returncode": str(result.returncode),
                    "stderr": result.stderr[:2000],
                },
            )

    def _rustup(self, *argv: str, cwd: Path | None = None) -> CommandResult:
        return self.runner.run(("rustup", *argv), cwd=cwd, env=self.env)
