"""Android NDK discovery as an ordered chain of resolution strategies.

Each strategy yields candidate roots; the chain accepts the first candidate
whose layout contains ``toolchains/llvm/prebuilt`` and rejects the rest
wholesale.
"""

from __future__ import annotations

import re
from collections.abc import Iterator, Mapping, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

from fastbuild.errors import CrossTargetError

PREBUILT_SUBDIR = Path("toolchains") / "llvm" / "prebuilt"

_VERSION_PART = re.compile(r"\d+|[^\d]+")


class SdkStrategy(Protocol):
    name: str

    def candidates(self) -> Iterator[Path]:
        """Yield candidate SDK roots in preference order."""


@dataclass(frozen=True, slots=True)
class ExplicitRoot:
    root: Path
    name: str = "explicit"

    def candidates(self) -> Iterator[Path]:
        yield self.root


@dataclass(frozen=True, slots=True)
class EnvironmentVariables:
    environ: Mapping[str, str]
    variables: tuple[str, ...] = ("ANDROID_NDK", "ANDROID_NDK_HOME")
    name: str = "environment"

    def candidates(self) -> Iterator[Path]:
        for variable in self.variables:
            value = self.environ.get(variable)
            if value:
                yield Path(value).expanduser()


@dataclass(frozen=True, slots=True)
class FixedPaths:
    paths: tuple[Path, ...]
    name: str = "fixed"

    def candidates(self) -> Iterator[Path]:
        yield from self.paths


@dataclass(frozen=True, slots=True)
class VersionedDirectories:
    """Directories matching ``parent/pattern``, highest version first."""

    patterns: tuple[tuple[Path, str], ...]
    name: str = "versioned"

    def candidates(self) -> Iterator[Path]:
        for parent, pattern in self.patterns:
            if not parent.is_dir():
                continue
            matches = [path for path in parent.glob(pattern) if path.is_dir()]
            yield from sorted(matches, key=lambda path: version_key(path.name), reverse=True)


@dataclass(frozen=True, slots=True)
class SdkDiscovery:
    strategies: tuple[SdkStrategy, ...]

    def discover(self) -> tuple[Path, str] | None:
        """Return ``(root, strategy_name)`` for the first matching candidate."""
        for strategy in self.strategies:
            for candidate in strategy.candidates():
                if matches_layout(candidate):
                    return candidate, strategy.name
        return None

    def tried(self) -> list[str]:
        return [str(path) for strategy in self.strategies for path in strategy.candidates()]


def matches_layout(root: Path) -> bool:
    return (root / PREBUILT_SUBDIR).is_dir()


def version_key(name: str) -> tuple[tuple[int, int | str], ...]:
    """Sort key treating digit runs numerically, so ``27.1`` ranks above ``26.9``."""
    parts: list[tuple[int, int | str]] = []
    for token in _VERSION_PART.findall(name):
        if token.isdigit():
            parts.append((1, int(token)))
        else:
            parts.append((0, token))
    return tuple(parts)


def default_ndk_discovery(
    *,
    environ: Mapping[str, str],
    home: Path,
    explicit_root: str | None = None,
) -> SdkDiscovery:
    if explicit_root:
        # An explicit root is authoritative; no silent fallback to other locations.
        return SdkDiscovery(strategies=(ExplicitRoot(Path(explicit_root).expanduser()),))
    strategies: Sequence[SdkStrategy] = (
        EnvironmentVariables(environ=environ),
        FixedPaths(paths=(Path("/opt/homebrew/share/android-ndk"),), name="package-manager"),
        VersionedDirectories(
            patterns=(
                (home / "Android" / "Sdk" / "ndk", "*"),
                (home / "Android" / "ndk", "*"),
                (home, "android-ndk-r*"),
            ),
        ),
        FixedPaths(paths=(Path("/opt/android-ndk"), Path("/usr/local/android-ndk"))),
    )
    return SdkDiscovery(strategies=tuple(strategies))


def require_sdk(discovery: SdkDiscovery) -> tuple[Path, str]:
    found = discovery.discover()
    if found is None:
        raise CrossTargetError(
            "Android NDK not found.",
            hint=(
                "Set ANDROID_NDK, pass --android-ndk, or install the NDK under "
                "~/Android/Sdk/ndk/<version>."
            ),
            context={"operation": "discover_sdk", "tried": ", ".join(discovery.tried())},
        )
    return found
