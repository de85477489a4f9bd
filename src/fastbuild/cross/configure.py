"""Foreign-target configuration: NDK tools, cargo/cc environment, std component."""

from __future__ import annotations

import os
import sys
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path

from fastbuild.config import canonical_target
from fastbuild.cross.sdk import PREBUILT_SUBDIR, SdkDiscovery, require_sdk
from fastbuild.errors import CrossTargetError
from fastbuild.models import CrossCompileTarget, ToolchainDescriptor
from fastbuild.observability import StructuredLogger
from fastbuild.toolchain.rustup import RustupManager

# Rust triple -> NDK clang wrapper prefix (API level 24).
NDK_CLANG_PREFIXES: Mapping[str, str] = {
    "aarch64-linux-android": "aarch64-linux-android24",
    "armv7-linux-androideabi": "armv7a-linux-androideabi24",
    "x86_64-linux-android": "x86_64-linux-android24",
    "i686-linux-android": "i686-linux-android24",
}

NDK_HOST_TAGS: Mapping[str, str] = {
    "linux": "linux-x86_64",
    "darwin": "darwin-x86_64",
}

ARCHIVER_NAME = "llvm-ar"


def env_suffix(triple: str) -> str:
    """``aarch64-linux-android`` -> ``AARCH64_LINUX_ANDROID``."""
    return triple.upper().replace("-", "_").replace(".", "_")


def is_cross(target: str | None, host_triple: str) -> bool:
    return target is not None and target != host_triple


@dataclass(slots=True)
class CrossTargetConfigurator:
    discovery: SdkDiscovery
    manager: RustupManager
    host_platform: str = sys.platform
    logger: StructuredLogger = field(default_factory=StructuredLogger)

    def configure(
        self,
        target: str,
        toolchain: ToolchainDescriptor,
        *,
        profile: str | None = None,
    ) -> CrossCompileTarget:
        triple = canonical_target(target) or target
        clang_prefix = NDK_CLANG_PREFIXES.get(triple)
        if clang_prefix is None:
            raise CrossTargetError(
                "No cross SDK configuration is known for this target.",
                hint=f"Supported targets: {', '.join(sorted(NDK_CLANG_PREFIXES))}.",
                context={"operation": "configure_cross", "target": triple},
            )

        sdk_root, strategy = require_sdk(self.discovery)
        self._log(profile, "discover_sdk", f"Android NDK: {sdk_root}", {"strategy": strategy})

        prebuilt_dir = self._prebuilt_dir(sdk_root)
        linker = prebuilt_dir / "bin" / f"{clang_prefix}-clang"
        archiver = prebuilt_dir / "bin" / ARCHIVER_NAME
        _require_executable(linker, role="linker", triple=triple)
        _require_executable(archiver, role="archiver", triple=triple)

        std_installed_now = self.ensure_std(triple, toolchain, profile=profile)
        env = cross_environment(triple, linker=linker, archiver=archiver)
        self._log(
            profile,
            "configure_cross",
            f"Linker: {linker.name} Target: {triple}",
            {"linker": str(linker), "archiver": str(archiver)},
        )
        return CrossCompileTarget(
            triple=triple,
            sdk_root=sdk_root,
            prebuilt_dir=prebuilt_dir,
            linker=linker,
            archiver=archiver,
            env=env,
            std_installed_now=std_installed_now,
        )

    def ensure_std(
        self,
        triple: str,
        toolchain: ToolchainDescriptor,
        *,
        profile: str | None = None,
    ) -> bool:
        if triple in self.manager.installed_targets(toolchain.channel):
            return False
        self._log(profile, "add_target", f"Installing Rust target: {triple}", None)
        self.manager.add_target(toolchain.channel, triple)
        return True

    def _prebuilt_dir(self, sdk_root: Path) -> Path:
        host_tag = None
        for prefix, tag in NDK_HOST_TAGS.items():
            if self.host_platform.startswith(prefix):
                host_tag = tag
                break
        if host_tag is None:
            raise CrossTargetError(
                "Unsupported host platform for Android NDK.",
                context={"operation": "configure_cross", "host_platform": self.host_platform},
            )
        prebuilt_dir = sdk_root / PREBUILT_SUBDIR / host_tag
        if not prebuilt_dir.is_dir():
            raise CrossTargetError(
                "NDK prebuilt tools not found.",
                hint="Reinstall the NDK for this host platform.",
                context={"operation": "configure_cross", "path": str(prebuilt_dir)},
            )
        return prebuilt_dir

    def _log(
        self,
        profile: str | None,
        operation: str,
        message: str,
        extra: dict[str, object] | None,
    ) -> None:
        self.logger.log(
            operation=operation,
            profile=profile,
            phase="configure",
            component="cross",
            message=message,
            extra=extra,
        )


def cross_environment(triple: str, *, linker: Path, archiver: Path) -> dict[str, str]:
    suffix = env_suffix(triple)
    return {
        f"CARGO_TARGET_{suffix}_LINKER": str(linker),
        f"CARGO_TARGET_{suffix}_AR": str(archiver),
        # cc-rs shells out to a C compiler separately from rustc's linker.
        f"CC_{suffix}": str(linker),
        f"AR_{suffix}": str(archiver),
        "CARGO_BUILD_TARGET": triple,
        "OPENSSL_NO_PKG_CONFIG": "1",
        "OPENSSL_STATIC": "1",
    }


def _require_executable(path: Path, *, role: str, triple: str) -> None:
    if path.is_file() and os.access(path, os.X_OK):
        return
    raise CrossTargetError(
        f"Android {role} not found.",
        hint="Install a complete NDK (API level 24 clang wrappers and llvm-ar).",
        context={"operation": "configure_cross", "target": triple, "path": str(path)},
    )
