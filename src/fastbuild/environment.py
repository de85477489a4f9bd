"""Profile selection and the environment table handed to cargo."""

from __future__ import annotations

import warnings
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path

from fastbuild.errors import AccelerationUnavailableWarning, ProfileFallbackWarning
from fastbuild.manifest import defines_profile
from fastbuild.models import BuildRequest
from fastbuild.process import CommandRunner

BUILTIN_PROFILES = ("dev", "release")

PROFILE_FALLBACKS: Mapping[str, str] = {
    "dev-fast": "dev",
    "perf": "release",
    "release-prod": "release",
}

# Profile name -> directory cargo writes it to.
PROFILE_SUBDIRS: Mapping[str, str] = {"dev-fast": "dev-fast", "dev": "debug"}

SANITIZED_VARIABLES = (
    "RUSTC_WRAPPER",
    "CARGO_BUILD_RUSTC_WRAPPER",
    "SCCACHE",
    "SCCACHE_BIN",
    "MACOSX_DEPLOYMENT_TARGET",
    "CARGO_PROFILE_RELEASE_LTO",
    "CARGO_PROFILE_DEV_FAST_LTO",
    "CARGO_PROFILE_RELEASE_CODEGEN_UNITS",
    "CARGO_PROFILE_DEV_FAST_CODEGEN_UNITS",
    "CARGO_INCREMENTAL",
)

DETERMINISTIC_RUSTFLAG = "-C debuginfo=0"
SCCACHE_CACHE_SIZE = "50G"


def profile_subdir(profile: str) -> str:
    return PROFILE_SUBDIRS.get(profile, profile)


def profile_env_name(profile: str) -> str:
    return profile.upper().replace("-", "_")


@dataclass(slots=True)
class PreparedEnvironment:
    profile: str
    env: dict[str, str]
    outcomes: list[str] = field(default_factory=list)
    notes: list[str] = field(default_factory=list)
    sanitized: bool = False


@dataclass(slots=True)
class EnvironmentBuilder:
    """Compose the child environment for one build.

    The base mapping is copied, never modified.
    """

    base: Mapping[str, str]
    repo_root: Path
    cache_home: Path
    runner: CommandRunner

    def prepare(
        self,
        request: BuildRequest,
        *,
        workspace_manifest: Path,
        target_dir: Path,
        commit_time: str | None = None,
        strict_cargo_home: bool = False,
        enforced_cargo_home: str | None = None,
    ) -> PreparedEnvironment:
        env = dict(self.base)
        prepared = PreparedEnvironment(profile=request.profile, env=env)

        self._apply_determinism_profile(request, prepared)
        self._apply_profile_fallback(workspace_manifest, prepared)

        if not request.keep_env:
            if not request.deterministic:
                env["RUSTFLAGS"] = ""
            for name in SANITIZED_VARIABLES:
                env.pop(name, None)
            prepared.sanitized = True

        if request.deterministic:
            if commit_time:
                env["SOURCE_DATE_EPOCH"] = commit_time
            if not request.debug_symbols:
                env["RUSTFLAGS"] = _append_flag(env.get("RUSTFLAGS", ""), DETERMINISTIC_RUSTFLAG)

        env["CARGO_TARGET_DIR"] = str(target_dir)
        self._configure_sccache(env, prepared)
        if request.debug_symbols:
            self._apply_debug_symbols(request, prepared)

        if strict_cargo_home:
            env["CARGO_HOME"] = enforced_cargo_home or str(self.repo_root / ".cargo-home")
        elif not env.get("CARGO_HOME"):
            env["CARGO_HOME"] = str(self.repo_root / ".cargo-home")
        env["CARGO_REGISTRIES_CRATES_IO_PROTOCOL"] = "sparse"
        return prepared

    def _apply_determinism_profile(self, request: BuildRequest, prepared: PreparedEnvironment) -> None:
        if request.determinism == "off":
            return
        prepared.outcomes.append(f"deterministic:{request.determinism}")
        if prepared.profile != "dev-fast":
            return
        if request.determinism == "promote-release":
            prepared.profile = "release-prod"
            prepared.notes.append("Deterministic build: switching profile to release-prod")
        else:
            prepared.notes.append(
                "Deterministic build: keeping profile dev-fast (DETERMINISTIC_FORCE_RELEASE=0)"
            )

    def _apply_profile_fallback(self, manifest: Path, prepared: PreparedEnvironment) -> None:
        profile = prepared.profile
        if profile in BUILTIN_PROFILES or defines_profile(manifest, profile):
            return
        fallback = PROFILE_FALLBACKS.get(profile, "dev")
        prepared.profile = fallback
        prepared.outcomes.append("profile-fallback")
        message = f"Profile {profile} not defined in {manifest}; falling back to {fallback}."
        prepared.notes.append(message)
        warnings.warn(message, ProfileFallbackWarning, stacklevel=3)

    def _configure_sccache(self, env: dict[str, str], prepared: PreparedEnvironment) -> None:
        sccache = self.runner.which("sccache")
        if sccache is None:
            prepared.outcomes.append("acceleration-unavailable")
            warnings.warn(
                "sccache not found on PATH; building without a compiler cache.",
                AccelerationUnavailableWarning,
                stacklevel=3,
            )
            return
        if not env.get("RUSTC_WRAPPER"):
            env["RUSTC_WRAPPER"] = sccache
        sccache_dir = env.get("SCCACHE_DIR") or str(self.cache_home / "sccache")
        env["SCCACHE_DIR"] = sccache_dir
        env.setdefault("SCCACHE_CACHE_SIZE", SCCACHE_CACHE_SIZE)
        Path(sccache_dir).mkdir(parents=True, exist_ok=True)

    def _apply_debug_symbols(self, request: BuildRequest, prepared: PreparedEnvironment) -> None:
        env = prepared.env
        if prepared.profile == "perf":
            prepared.notes.append("Debug symbols: profile 'perf' already preserves debuginfo")
        elif not request.profile_explicit and prepared.profile == "dev-fast":
            prepared.profile = "perf"
            prepared.notes.append("Debug symbols requested: switching profile to perf")
        else:
            name = profile_env_name(prepared.profile)
            env[f"CARGO_PROFILE_{name}_DEBUG"] = "2"
            env[f"CARGO_PROFILE_{name}_STRIP"] = "none"
            env[f"CARGO_PROFILE_{name}_SPLIT_DEBUGINFO"] = "packed"
            prepared.notes.append(f"Debug symbols: forcing debuginfo for profile {prepared.profile}")
        if env.get("RUSTFLAGS"):
            env["RUSTFLAGS"] = _remove_flag(env["RUSTFLAGS"], DETERMINISTIC_RUSTFLAG)
        env["CARGO_PROFILE_RELEASE_STRIP"] = "none"
        env["CARGO_PROFILE_RELEASE_PROD_STRIP"] = "none"
        prepared.outcomes.append("debug-symbols")


def _append_flag(flags: str, flag: str) -> str:
    if flag in flags:
        return flags
    return f"{flags} {flag}".strip()


def _remove_flag(flags: str, flag: str) -> str:
    return " ".join(flags.replace(flag, " ").split())
