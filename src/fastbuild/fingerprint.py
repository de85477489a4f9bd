"""Advisory toolchain/environment fingerprinting for drift warnings.

The fingerprint never decides whether cargo rebuilds anything; it only tells
the developer that a bucket may hold artifacts built under other settings.
"""

from __future__ import annotations

import os
import platform
import tempfile
import warnings
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from pathlib import Path

from fastbuild.errors import FingerprintDriftWarning, FingerprintUnwritableWarning
from fastbuild.hashing import HasherChain, HashlibHasher
from fastbuild.models import (
    EnvironmentFingerprint,
    FingerprintComparison,
    ToolchainDescriptor,
)
from fastbuild.observability import StructuredLogger
from fastbuild.toolchain.rustup import RustupManager

FINGERPRINT_FILENAME = ".env-fingerprint"

REPRODUCIBILITY_VARIABLES = (
    "RUSTUP_TOOLCHAIN",
    "CARGO_TARGET_DIR",
    "RUSTFLAGS",
    "RUSTC_WRAPPER",
    "CARGO_BUILD_RUSTC_WRAPPER",
    "SCCACHE",
    "CARGO_INCREMENTAL",
    "MACOSX_DEPLOYMENT_TARGET",
    "CODE_HOME",
    "CODEX_HOME",
)

Probe = Callable[[], str]


def _platform_uname() -> str:
    info = platform.uname()
    return " ".join(part for part in (info.system, info.release, info.machine) if part)


def fingerprint_path(bucket_dir: Path, profile: str) -> Path:
    return bucket_dir / profile / FINGERPRINT_FILENAME


def render_blob(fields: tuple[tuple[str, str], ...]) -> str:
    return "\n".join(f"{key}={value}" for key, value in fields)


def read_previous_digest(path: Path) -> str | None:
    try:
        lines = path.read_text(encoding="utf-8").splitlines()
    except (OSError, UnicodeDecodeError):
        return None
    for line in lines:
        if line.startswith("HASH="):
            return line[len("HASH=") :].strip() or None
    return None


@dataclass(slots=True)
class EnvironmentFingerprinter:
    manager: RustupManager
    hasher: HasherChain = field(default_factory=lambda: HasherChain(hashers=(HashlibHasher(),)))
    logger: StructuredLogger = field(default_factory=StructuredLogger)
    uname: Probe = _platform_uname

    def capture(
        self,
        *,
        profile: str,
        target: str | None,
        toolchain: ToolchainDescriptor | None,
        env: Mapping[str, str],
    ) -> EnvironmentFingerprint:
        channel = toolchain.channel if toolchain is not None else ""
        fields: list[tuple[str, str]] = [
            ("profile", profile),
            ("toolchain", channel),
            ("build_target", target or ""),
            ("host", toolchain.host_triple if toolchain is not None else ""),
            ("cargo_bin", toolchain.cargo_bin if toolchain is not None else ""),
            ("rustc_bin", toolchain.rustc_bin if toolchain is not None else ""),
            ("cargo_version", self._probe(lambda: self._tool_version(channel, "cargo", "-V"))),
            ("rustc_version", self._probe(lambda: self._tool_version(channel, "rustc", "-vV"))),
            ("uname", self._probe(self.uname)),
        ]
        fields.extend((name, env.get(name, "")) for name in REPRODUCIBILITY_VARIABLES)
        frozen = tuple(fields)
        blob = render_blob(frozen)
        digest = self.hasher.hash_string(blob) or ""
        return EnvironmentFingerprint(fields=frozen, blob=blob, digest=digest)

    def compare(self, current: EnvironmentFingerprint, path: Path) -> FingerprintComparison:
        previous = read_previous_digest(path)
        if previous is None:
            return FingerprintComparison(current=current, previous_digest=None, outcome="first-run")
        if previous == current.digest:
            return FingerprintComparison(current=current, previous_digest=previous, outcome="unchanged")
        return FingerprintComparison(
            current=current,
            previous_digest=previous,
            outcome="drift-detected",
        )

    def report(self, comparison: FingerprintComparison, *, profile: str) -> None:
        if not comparison.drift:
            return
        message = (
            f"Build cache fingerprint changed since last run for profile '{profile}'; "
            "the bucket may contain artifacts built under different settings."
        )
        self.logger.log(
            operation="fingerprint_drift",
            profile=profile,
            phase="configure",
            component="fingerprint",
            message=message,
            level="warning",
            extra={
                "previous": comparison.previous_digest,
                "current": comparison.current.digest,
            },
        )
        warnings.warn(message, FingerprintDriftWarning, stacklevel=2)

    def persist(self, fingerprint: EnvironmentFingerprint, path: Path, *, profile: str | None = None) -> Path | None:
        """Overwrite *path* with ``HASH=<digest>`` followed by the blob.

        Returns None when the file cannot be written; the build carries on.
        """
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            fd, temp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
        except OSError as exc:
            self._report_unwritable(path, exc, profile=profile)
            return None
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                handle.write(fingerprint.render())
            os.replace(temp_name, path)
        except OSError as exc:
            Path(temp_name).unlink(missing_ok=True)
            self._report_unwritable(path, exc, profile=profile)
            return None
        except BaseException:
            Path(temp_name).unlink(missing_ok=True)
            raise
        return path

    def _report_unwritable(self, path: Path, error: OSError, *, profile: str | None) -> None:
        message = f"Could not write build fingerprint {path}: {error.strerror or error}; drift detection is skipped."
        self.logger.log(
            operation="fingerprint_persist",
            profile=profile,
            phase="compile",
            component="fingerprint",
            message=message,
            level="warning",
            extra={"path": str(path)},
        )
        warnings.warn(message, FingerprintUnwritableWarning, stacklevel=3)

    def _tool_version(self, channel: str, tool: str, flag: str) -> str:
        if not channel:
            return ""
        result = self.manager.run(channel, tool, flag)
        if not result.ok:
            return ""
        return " ".join(result.stdout.strip().splitlines())

    @staticmethod
    def _probe(probe: Probe) -> str:
        # A failing probe degrades its own field only.
        try:
            return probe()
        except (OSError, ValueError):
            return ""
