"""Toolchain channel selection, installation and host-triple resolution."""

from __future__ import annotations

import platform
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from pathlib import Path

from fastbuild.errors import ToolchainError
from fastbuild.manifest import toolchain_channel
from fastbuild.models import UNKNOWN_TRIPLE, ChannelSource, HostSource, ToolchainDescriptor
from fastbuild.observability import StructuredLogger
from fastbuild.toolchain.rustup import RustupManager

Uname = Callable[[], tuple[str, str]]


def _platform_uname() -> tuple[str, str]:
    return platform.system(), platform.machine()


@dataclass(slots=True)
class ToolchainResolver:
    manager: RustupManager
    environ: Mapping[str, str] = field(default_factory=dict)
    logger: StructuredLogger = field(default_factory=StructuredLogger)
    uname: Uname = _platform_uname

    def resolve(self, workspace: Path, *, profile: str | None = None) -> ToolchainDescriptor:
        if not self.manager.available():
            raise ToolchainError(
                "rustup is required for consistent builds.",
                hint="Install rustup: https://rustup.rs/",
                context={"operation": "resolve_toolchain"},
            )
        channel, source = self.select_channel(workspace)
        installed_now = False
        if not self.manager.is_installed(channel):
            self._log(profile, "install_toolchain", f"Installing toolchain {channel}.")
            self.manager.install(channel)
            installed_now = True

        host, host_source = self.host_triple(channel)
        cargo_bin = self._driver_path(channel, "cargo")
        rustc_bin = self._driver_path(channel, "rustc")
        self._log(
            profile,
            "resolve_toolchain",
            f"Using rustup toolchain: {channel}",
            extra={"channel_source": source, "host": host, "host_source": host_source},
        )
        return ToolchainDescriptor(
            channel=channel,
            channel_source=source,
            host_triple=host,
            host_source=host_source,
            cargo_bin=cargo_bin,
            rustc_bin=rustc_bin,
            installed_now=installed_now,
        )

    def select_channel(self, workspace: Path) -> tuple[str, ChannelSource]:
        override = self.environ.get("RUSTUP_TOOLCHAIN", "").strip()
        if override:
            return override, "override"
        scanned = toolchain_channel(workspace)
        if scanned:
            return scanned, "manifest"
        active = self.manager.active_default(cwd=workspace)
        if active:
            return active, "active-default"
        raise ToolchainError(
            "No rustup toolchain could be determined.",
            hint="Set RUSTUP_TOOLCHAIN, add rust-toolchain.toml, or run `rustup default stable`.",
            context={"operation": "resolve_toolchain", "workspace": str(workspace)},
        )

    def host_triple(self, channel: str) -> tuple[str, HostSource]:
        result = self.manager.run(channel, "rustc", "-vV")
        if result.ok:
            for line in result.stdout.splitlines():
                if line.startswith("host:"):
                    host = line.partition(":")[2].strip()
                    if host:
                        return host, "probe"
        guessed = heuristic_host_triple(*self.uname())
        if guessed is not None:
            return guessed, "heuristic"
        return UNKNOWN_TRIPLE, "sentinel"

    def _driver_path(self, channel: str, tool: str) -> str:
        return self.manager.which(channel, tool) or self.manager.runner.which(tool) or tool

    def _log(
        self,
        profile: str | None,
        operation: str,
        message: str,
        *,
        extra: dict[str, object] | None = None,
    ) -> None:
        self.logger.log(
            operation=operation,
            profile=profile,
            phase="configure",
            component="toolchain",
            message=message,
            extra=extra,
        )


def heuristic_host_triple(system: str, machine: str) -> str | None:
    if not machine:
        return None
    if system == "Darwin":
        arch = "aarch64" if machine == "arm64" else machine
        return f"{arch}-apple-darwin"
    if system == "Linux":
        arch = "aarch64" if machine == "arm64" else machine
        return f"{arch}-unknown-linux-gnu"
    return None
