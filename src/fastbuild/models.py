"""Core typed dataclasses for build requests, resolved state and results."""

from __future__ import annotations

import json
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Literal

import cbor2

KeyProvenance = Literal["branch/worktree", "override"]
ChannelSource = Literal["override", "manifest", "active-default"]
HostSource = Literal["probe", "heuristic", "sentinel"]
DeterminismMode = Literal["off", "pin-only", "promote-release"]
LockMode = Literal["locked", "unlocked", "not-requested"]
DriftOutcome = Literal["first-run", "unchanged", "drift-detected"]
AliasOutcome = Literal["created", "replaced", "stale-replaced"]

DEFAULT_PROFILE = "dev-fast"
UNKNOWN_TRIPLE = "unknown-unknown-unknown"


@dataclass(frozen=True, slots=True)
class BuildRequest:
    workspace: str
    binaries: tuple[str, ...]
    profile: str = DEFAULT_PROFILE
    profile_explicit: bool = False
    target: str | None = None
    locked: bool = True
    determinism: DeterminismMode = "off"
    keep_env: bool = True
    debug_symbols: bool = False
    trace: bool = False
    run_after_build: bool = False
    run_cwd: Path | None = None

    @property
    def primary_binary(self) -> str:
        return self.binaries[0]

    @property
    def deterministic(self) -> bool:
        return self.determinism != "off"


@dataclass(frozen=True, slots=True)
class VcsInfo:
    in_repo: bool
    branch_or_ref_label: str
    worktree_root: Path
    short_commit: str | None = None
    commit_time: str | None = None


@dataclass(frozen=True, slots=True)
class CacheBucket:
    key: str
    provenance: KeyProvenance
    directory: Path


@dataclass(frozen=True, slots=True)
class ToolchainDescriptor:
    channel: str
    channel_source: ChannelSource
    host_triple: str
    host_source: HostSource
    cargo_bin: str
    rustc_bin: str
    installed_now: bool = False

    def cargo_argv(self, *args: str) -> tuple[str, ...]:
        return ("rustup", "run", self.channel, "cargo", *args)

    def rustc_argv(self, *args: str) -> tuple[str, ...]:
        return ("rustup", "run", self.channel, "rustc", *args)


@dataclass(frozen=True, slots=True)
class CrossCompileTarget:
    triple: str
    sdk_root: Path
    prebuilt_dir: Path
    linker: Path
    archiver: Path
    env: Mapping[str, str] = field(default_factory=dict)
    std_installed_now: bool = False


@dataclass(frozen=True, slots=True)
class EnvironmentFingerprint:
    fields: tuple[tuple[str, str], ...]
    blob: str
    digest: str

    def render(self) -> str:
        return f"HASH={self.digest}\n{self.blob}\n"


@dataclass(frozen=True, slots=True)
class FingerprintComparison:
    current: EnvironmentFingerprint
    previous_digest: str | None
    outcome: DriftOutcome

    @property
    def drift(self) -> bool:
        return self.outcome == "drift-detected"


@dataclass(frozen=True, slots=True)
class AliasLink:
    path: Path
    target: str
    outcome: AliasOutcome


@dataclass(frozen=True, slots=True)
class Artifact:
    name: str
    source_path: Path
    published_path: Path
    aliases: tuple[AliasLink, ...] = ()
    digest: str | None = None
    size: int = 0


@dataclass(slots=True)
class BuildSummary:
    bucket: CacheBucket
    requested_profile: str
    profile: str
    toolchain: ToolchainDescriptor | None = None
    cross_target: CrossCompileTarget | None = None
    lock_mode: LockMode = "not-requested"
    fingerprint: FingerprintComparison | None = None
    artifacts: list[Artifact] = field(default_factory=list)
    run_status: int | None = None
    outcomes: list[str] = field(default_factory=list)
    report_path: Path | None = None
    schema_version: int = 1

    def artifact(self, name: str) -> Artifact | None:
        for artifact in self.artifacts:
            if artifact.name == name:
                return artifact
        return None

    def to_json(self, path: str | Path | None = None) -> str:
        encoded = json.dumps(self._payload(), indent=2, sort_keys=True) + "\n"
        if path is not None:
            Path(path).write_text(encoded, encoding="utf-8")
        return encoded

    def to_cbor(self, path: str | Path | None = None) -> bytes:
        encoded = cbor2.dumps(self._payload(), canonical=True)
        if path is not None:
            Path(path).write_bytes(encoded)
        return encoded

    def _payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "schema_version": self.schema_version,
            "bucket": {
                "key": self.bucket.key,
                "provenance": self.bucket.provenance,
                "directory": str(self.bucket.directory),
            },
            "profile": {"requested": self.requested_profile, "effective": self.profile},
            "lock_mode": self.lock_mode,
            "outcomes": list(self.outcomes),
            "artifacts": [
                {
                    "name": artifact.name,
                    "source": str(artifact.source_path),
                    "published": str(artifact.published_path),
                    "digest": artifact.digest,
                    "size": artifact.size,
                    "aliases": [
                        {"path": str(alias.path), "target": alias.target, "outcome": alias.outcome}
                        for alias in artifact.aliases
                    ],
                }
                for artifact in self.artifacts
            ],
        }
        if self.toolchain is not None:
            payload["toolchain"] = {
                "channel": self.toolchain.channel,
                "channel_source": self.toolchain.channel_source,
                "host_triple": self.toolchain.host_triple,
                "host_source": self.toolchain.host_source,
            }
        if self.cross_target is not None:
            payload["cross_target"] = {
                "triple": self.cross_target.triple,
                "sdk_root": str(self.cross_target.sdk_root),
                "linker": str(self.cross_target.linker),
                "archiver": str(self.cross_target.archiver),
            }
        if self.fingerprint is not None:
            payload["fingerprint"] = {
                "digest": self.fingerprint.current.digest,
                "previous_digest": self.fingerprint.previous_digest,
                "outcome": self.fingerprint.outcome,
            }
        if self.run_status is not None:
            payload["run_status"] = self.run_status
        return payload
