"""Artifact publication: atomic copies, alias symlinks, identity, run-after-build."""

from __future__ import annotations

import dataclasses
import os
import shutil
import stat
import tempfile
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from pathlib import Path

from fastbuild.cross import is_cross
from fastbuild.environment import profile_subdir
from fastbuild.errors import ArtifactMissingError, ForeignExecutionError, RunError, ValidationError
from fastbuild.hashing import HasherChain, default_hasher_chain
from fastbuild.models import AliasLink, AliasOutcome, Artifact
from fastbuild.observability import StructuredLogger
from fastbuild.process import CommandRunner, SubprocessRunner

Copier = Callable[[Path, Path], object]

# Extra filename suffix cargo's output is published under, per profile.
PROFILE_FILENAME_SUFFIXES = {"perf": "-perf"}

# External tooling looks for these triple-suffixed names regardless of host.
EXTRA_ALIAS_TRIPLES = ("aarch64-apple-darwin",)

EXECUTABLE_BITS = stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH


@dataclass(frozen=True, slots=True)
class PublishLayout:
    """Where one build's outputs live and where they get published."""

    workspace: Path
    bucket_dir: Path
    crate_prefix: str
    profile: str
    host_triple: str
    target: str | None = None
    cli_bin_dirs: tuple[Path, ...] = ()
    primary: str | None = None

    @property
    def primary_name(self) -> str:
        """Cargo output name of the binary the aliases point at."""
        return self.primary or self.crate_prefix

    @property
    def subdir(self) -> Path:
        base = Path(profile_subdir(self.profile))
        return Path(self.target) / base if self.target else base

    @property
    def output_dir(self) -> Path:
        return self.bucket_dir / self.subdir

    @property
    def publish_dir(self) -> Path:
        return self.workspace / "bin"

    @property
    def alias_root(self) -> Path:
        return self.workspace / "target"

    @property
    def primary_filename(self) -> str:
        return self.primary_name + PROFILE_FILENAME_SUFFIXES.get(self.profile, "")

    @property
    def primary_path(self) -> Path:
        return self.output_dir / self.primary_filename

    @property
    def bucket_is_local(self) -> bool:
        return _same_path(self.bucket_dir, self.alias_root)

    def source_path(self, name: str) -> Path:
        return self.output_dir / name

    def symlink_prefixes(self) -> tuple[str, ...]:
        if self.crate_prefix == "code":
            return (self.crate_prefix, "coder")
        return (self.crate_prefix,)


@dataclass(slots=True)
class ArtifactPublisher:
    hasher: HasherChain = field(default_factory=default_hasher_chain)
    runner: CommandRunner = field(default_factory=SubprocessRunner)
    logger: StructuredLogger = field(default_factory=StructuredLogger)
    copier: Copier = shutil.copyfile

    def publish(self, layout: PublishLayout, binaries: Sequence[str]) -> list[Artifact]:
        """Publish every binary in *binaries*; the first one is the primary."""
        if not binaries:
            raise ValidationError("publish() requires at least one binary name.")
        layout = dataclasses.replace(layout, primary=binaries[0])
        for name in binaries:
            source = layout.source_path(name)
            if not source.is_file():
                raise ArtifactMissingError(
                    "Binary missing after cargo reported success.",
                    hint="The expected output path does not match cargo's layout for this profile.",
                    context={
                        "operation": "publish",
                        "binary": name,
                        "path": str(source),
                        "profile": layout.profile,
                    },
                )

        profile_link = self._link_profile_filename(layout)
        if not layout.primary_path.is_file():
            raise ArtifactMissingError(
                "Primary binary alias target does not resolve.",
                context={
                    "operation": "publish",
                    "binary": layout.primary_name,
                    "path": str(layout.primary_path),
                    "profile": layout.profile,
                },
            )
        artifacts: list[Artifact] = []
        for index, name in enumerate(binaries):
            source = layout.source_path(name)
            published = self.atomic_copy(source, layout.publish_dir / name)
            aliases: list[AliasLink] = []
            if index == 0:
                if profile_link is not None:
                    aliases.append(profile_link)
                aliases.extend(self.refresh_aliases(layout))
            digest = self.hasher.hash_file(published)
            artifacts.append(
                Artifact(
                    name=name,
                    source_path=source,
                    published_path=published,
                    aliases=tuple(aliases),
                    digest=digest,
                    size=published.stat().st_size,
                )
            )
            self._log_identity(layout, artifacts[-1])
        return artifacts

    def atomic_copy(self, source: Path, destination: Path) -> Path:
        """Copy *source* to *destination* via a same-directory temp file and rename.

        Readers see either the previous file or the complete new one.
        """
        destination.parent.mkdir(parents=True, exist_ok=True)
        fd, temp_name = tempfile.mkstemp(
            prefix=f".{destination.name}.tmp.",
            dir=destination.parent,
        )
        os.close(fd)
        temp_path = Path(temp_name)
        try:
            self.copier(source, temp_path)
            mode = stat.S_IMODE(source.stat().st_mode) | EXECUTABLE_BITS
            os.chmod(temp_path, mode)
            os.replace(temp_path, destination)
        except BaseException:
            temp_path.unlink(missing_ok=True)
            raise
        return destination

    def refresh_aliases(self, layout: PublishLayout) -> list[AliasLink]:
        primary = layout.primary_path
        # Inside the workspace target tree links stay relative; a bucket elsewhere needs absolute ones.
        relative = layout.bucket_is_local
        aliases: list[Path] = []
        if not relative:
            aliases.append(layout.alias_root / layout.subdir / layout.primary_filename)
        aliases.append(layout.alias_root / "release" / layout.crate_prefix)
        if layout.profile != "dev-fast":
            aliases.append(layout.alias_root / "dev-fast" / layout.crate_prefix)

        triples = (layout.host_triple, *(t for t in EXTRA_ALIAS_TRIPLES if t != layout.host_triple))
        for cli_dir in layout.cli_bin_dirs:
            if not cli_dir.is_dir():
                continue
            for prefix in layout.symlink_prefixes():
                aliases.extend(cli_dir / f"{prefix}-{triple}" for triple in triples)

        links: list[AliasLink] = []
        for alias in dict.fromkeys(aliases):
            link = self.relink(alias, primary, relative=relative)
            if link is not None:
                links.append(link)
        return links

    def relink(self, alias: Path, target: Path, *, relative: bool = False) -> AliasLink | None:
        """Point *alias* at *target*, replacing whatever is there.

        Returns None when *alias* is the target itself.
        """
        if _same_path(alias, target):
            return None
        if alias.is_dir() and not alias.is_symlink():
            raise ValidationError(
                "Alias path is occupied by a directory.",
                context={"operation": "publish", "path": str(alias)},
            )
        alias.parent.mkdir(parents=True, exist_ok=True)
        if relative:
            link_text = os.path.relpath(target.absolute(), alias.parent.absolute())
        else:
            link_text = str(target.absolute())
        outcome = _alias_outcome(alias, link_text)

        temp_alias = alias.with_name(f".{alias.name}.tmp.{os.getpid()}")
        temp_alias.unlink(missing_ok=True)
        os.symlink(link_text, temp_alias)
        try:
            os.replace(temp_alias, alias)
        except BaseException:
            temp_alias.unlink(missing_ok=True)
            raise
        return AliasLink(path=alias, target=link_text, outcome=outcome)

    def run(self, layout: PublishLayout, primary: str, *, cwd: Path) -> int:
        """Execute the published primary binary from *cwd*; foreign targets are refused."""
        if is_cross(layout.target, layout.host_triple):
            raise ForeignExecutionError(
                "Cannot run a cross-compiled binary on this host.",
                hint="Transfer the binary to a matching device and run it there.",
                context={
                    "operation": "run",
                    "target": layout.target or "",
                    "host": layout.host_triple,
                    "binary": str(layout.publish_dir / primary),
                },
            )
        run_path = layout.publish_dir / primary
        if not _is_executable(run_path):
            run_path = layout.source_path(primary)
        if not _is_executable(run_path):
            raise RunError(
                "Run failed: binary is missing or not executable.",
                context={"operation": "run", "path": str(run_path)},
            )
        self.logger.log(
            operation="run",
            profile=layout.profile,
            phase="run",
            component="publish",
            message=f"Running {run_path} (cwd: {cwd})...",
        )
        result = self.runner.run((str(run_path),), cwd=cwd, capture=False)
        if not result.ok:
            raise RunError(
                f"Run failed with status {result.returncode}.",
                exit_status=result.returncode,
                context={"operation": "run", "path": str(run_path), "cwd": str(cwd)},
            )
        return result.returncode

    def _link_profile_filename(self, layout: PublishLayout) -> AliasLink | None:
        if layout.primary_filename == layout.primary_name:
            return None
        # Cargo writes `<primary>`; the profile-specific name is a sibling symlink.
        return self.relink(
            layout.primary_path,
            layout.source_path(layout.primary_name),
            relative=True,
        )

    def _log_identity(self, layout: PublishLayout, artifact: Artifact) -> None:
        if artifact.digest:
            message = f"Binary Hash: {artifact.digest} ({artifact.size} bytes)"
        else:
            message = f"Binary Size: {artifact.size} bytes"
        self.logger.log(
            operation="publish",
            profile=layout.profile,
            phase="publish",
            component="publish",
            message=message,
            extra={"binary": artifact.name, "published": str(artifact.published_path)},
        )


def _alias_outcome(alias: Path, link_text: str) -> AliasOutcome:
    if alias.is_symlink():
        if os.readlink(alias) == link_text and alias.exists():
            return "replaced"
        return "stale-replaced"
    if alias.exists():
        return "stale-replaced"
    return "created"


def _same_path(left: Path, right: Path) -> bool:
    return os.path.normpath(left.absolute()) == os.path.normpath(right.absolute())


def _is_executable(path: Path) -> bool:
    return path.is_file() and os.access(path, os.X_OK)
