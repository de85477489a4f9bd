"""Build configuration read from an explicit environment mapping."""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path

from fastbuild.errors import ValidationError
from fastbuild.models import DEFAULT_PROFILE, BuildRequest, DeterminismMode

TARGET_ALIASES: Mapping[str, str] = {"android": "aarch64-linux-android"}


@dataclass(frozen=True, slots=True)
class BuildOptions:
    cache_key_override: str | None = None
    binaries_override: tuple[str, ...] = ()
    profile: str | None = None
    determinism: DeterminismMode = "off"
    keep_env: bool = True
    debug_symbols: bool = False
    trace: bool = False
    cache_root: str | None = None
    sdk_root: str | None = None
    strict_cargo_home: bool = False
    enforced_cargo_home: str | None = None
    caller_cwd: str | None = None

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> BuildOptions:
        env = os.environ if environ is None else environ
        return cls(
            cache_key_override=env.get("BUILD_FAST_CACHE_KEY") or None,
            binaries_override=parse_binaries(env.get("BUILD_FAST_BINS", "")),
            profile=env.get("PROFILE") if "PROFILE" in env else None,
            determinism=_determinism(env),
            keep_env=env.get("KEEP_ENV", "1") != "0",
            debug_symbols=env.get("DEBUG_SYMBOLS") == "1",
            trace=env.get("TRACE_BUILD") == "1",
            cache_root=env.get("BUILD_FAST_CACHE_ROOT") or None,
            strict_cargo_home=env.get("STRICT_CARGO_HOME") == "1",
            enforced_cargo_home=env.get("CARGO_HOME_ENFORCED") or None,
            caller_cwd=env.get("CODE_CALLER_CWD") or None,
        )

    def to_request(
        self,
        *,
        workspace: str,
        primary_binary: str,
        profile: str | None = None,
        target: str | None = None,
        run_after_build: bool = False,
        locked: bool = True,
    ) -> BuildRequest:
        """Build an immutable request; an explicit *profile* wins over ``PROFILE``."""
        chosen = profile or self.profile
        if chosen is not None and not chosen.strip():
            raise ValidationError(
                "Build profile must not be empty.",
                hint="Unset PROFILE or give it a profile name such as dev-fast.",
                context={"operation": "configure"},
            )
        run_cwd = Path(self.caller_cwd) if self.caller_cwd else Path.cwd()
        if self.caller_cwd and not run_cwd.is_dir():
            raise ValidationError(
                "CODE_CALLER_CWD is not a valid directory.",
                context={"operation": "configure", "path": self.caller_cwd},
            )
        return BuildRequest(
            workspace=workspace,
            binaries=order_binaries(primary_binary, self.binaries_override),
            profile=chosen or DEFAULT_PROFILE,
            profile_explicit=chosen is not None,
            target=canonical_target(target),
            locked=locked,
            determinism=self.determinism,
            keep_env=self.keep_env,
            debug_symbols=self.debug_symbols,
            trace=self.trace,
            run_after_build=run_after_build,
            run_cwd=run_cwd.resolve(),
        )


def parse_binaries(raw: str) -> tuple[str, ...]:
    names: list[str] = []
    for chunk in raw.replace(",", " ").split():
        name = chunk.strip()
        if name and name not in names:
            names.append(name)
    return tuple(names)


def order_binaries(primary: str, requested: tuple[str, ...]) -> tuple[str, ...]:
    """Return *requested* with *primary* first; an empty request yields just the primary."""
    if not requested:
        return (primary,)
    if primary in requested:
        return (primary, *(name for name in requested if name != primary))
    return (primary, *requested)


def canonical_target(target: str | None) -> str | None:
    if target is None:
        return None
    cleaned = target.strip()
    if not cleaned:
        return None
    if any(ch.isspace() for ch in cleaned):
        raise ValidationError(
            "Target triple must not contain whitespace.",
            context={"operation": "configure", "target": target},
        )
    return TARGET_ALIASES.get(cleaned, cleaned)


def _determinism(env: Mapping[str, str]) -> DeterminismMode:
    if env.get("DETERMINISTIC") != "1":
        return "off"
    if env.get("DETERMINISTIC_FORCE_RELEASE", "1") == "1":
        return "promote-release"
    return "pin-only"
