"""Sequential build pipeline.

Order: cache bucket, toolchain, cross target, environment table, lock check,
fingerprint, compile, publish, optional run. The first fatal error aborts the
remaining steps; the fingerprint is persisted after every compile attempt.
"""

from __future__ import annotations

import getpass
import os
import warnings
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path

from fastbuild.cache import (
    CacheKeyInput,
    branch_label,
    resolve_bucket,
    resolve_cache_home,
    target_cache_root,
)
from fastbuild.compiler import CargoDriver
from fastbuild.config import BuildOptions
from fastbuild.cross import CrossTargetConfigurator, default_ndk_discovery, is_cross
from fastbuild.environment import EnvironmentBuilder, PreparedEnvironment
from fastbuild.errors import CompileError, UnlockedBuildWarning, ValidationError
from fastbuild.fingerprint import EnvironmentFingerprinter, fingerprint_path
from fastbuild.hashing import HasherChain, default_hasher_chain
from fastbuild.manifest import package_name
from fastbuild.models import (
    BuildRequest,
    BuildSummary,
    CacheBucket,
    CrossCompileTarget,
    LockMode,
    ToolchainDescriptor,
    VcsInfo,
)
from fastbuild.observability import StructuredLogger
from fastbuild.process import CommandRunner, SubprocessRunner
from fastbuild.publish import ArtifactPublisher, PublishLayout
from fastbuild.toolchain import RustupManager, ToolchainResolver
from fastbuild.vcs import query_worktree

SUMMARY_FILENAME = "build-summary.json"


def repo_name_for(repo_root: Path) -> str:
    """Name the target cache after the repository, not after a branch worktree."""
    parts = repo_root.parts
    if "branches" in parts:
        index = len(parts) - 1 - parts[::-1].index("branches")
        if index >= 3 and parts[index - 2] == "working" and parts[index - 3] == ".code":
            return parts[index - 1]
    return repo_root.name


def crate_prefix_for(workspace: Path) -> str:
    cli_package = package_name(workspace / "cli" / "Cargo.toml")
    if cli_package:
        return cli_package.split("-", 1)[0]
    return workspace.name.removesuffix("-rs")


@dataclass(slots=True)
class BuildPipeline:
    repo_root: Path
    options: BuildOptions = field(default_factory=BuildOptions)
    environ: Mapping[str, str] = field(default_factory=lambda: dict(os.environ))
    runner: CommandRunner = field(default_factory=SubprocessRunner)
    logger: StructuredLogger = field(default_factory=StructuredLogger)
    hasher: HasherChain | None = None
    home: Path = field(default_factory=Path.home)
    publisher: ArtifactPublisher | None = None

    def workspace_path(self, request: BuildRequest) -> Path:
        path = self.repo_root / request.workspace
        if not path.is_dir():
            raise ValidationError(
                "Workspace directory not found.",
                context={"operation": "configure", "workspace": str(path)},
            )
        return path

    def run(self, request: BuildRequest) -> BuildSummary:
        hasher = self.hasher or default_hasher_chain(self.runner)
        workspace = self.workspace_path(request)
        manager = RustupManager(runner=self.runner, env=self.environ)
        cache_home = resolve_cache_home(
            repo_root=self.repo_root,
            environ=self.environ,
            override=self.options.cache_root,
        )

        vcs = query_worktree(workspace, runner=self.runner)
        bucket = _bucket_for(
            self.repo_root,
            request,
            vcs=vcs,
            cache_home=cache_home,
            override=self.options.cache_key_override,
            hasher=hasher,
        )
        bucket.directory.mkdir(parents=True, exist_ok=True)
        summary = BuildSummary(bucket=bucket, requested_profile=request.profile, profile=request.profile)
        summary.outcomes.append(f"bucket:{bucket.provenance}")
        self._log(request.profile, "resolve_bucket", f"Cache bucket: {bucket.key} ({bucket.provenance})")

        toolchain = ToolchainResolver(manager=manager, environ=self.environ, logger=self.logger).resolve(
            workspace,
            profile=request.profile,
        )
        summary.toolchain = toolchain
        if toolchain.installed_now:
            summary.outcomes.append("toolchain-installed")

        cross_target: CrossCompileTarget | None = None
        if request.target is not None and is_cross(request.target, toolchain.host_triple):
            configurator = CrossTargetConfigurator(
                discovery=default_ndk_discovery(
                    environ=self.environ,
                    home=self.home,
                    explicit_root=self.options.sdk_root,
                ),
                manager=manager,
                logger=self.logger,
            )
            cross_target = configurator.configure(request.target, toolchain, profile=request.profile)
            summary.cross_target = cross_target
            if cross_target.std_installed_now:
                summary.outcomes.append("target-std-installed")

        prepared = EnvironmentBuilder(
            base=self.environ,
            repo_root=self.repo_root,
            cache_home=cache_home,
            runner=self.runner,
        ).prepare(
            request,
            workspace_manifest=workspace / "Cargo.toml",
            target_dir=bucket.directory,
            commit_time=vcs.commit_time,
            strict_cargo_home=self.options.strict_cargo_home,
            enforced_cargo_home=self.options.enforced_cargo_home,
        )
        if cross_target is not None:
            prepared.env.update(cross_target.env)
        if prepared.sanitized:
            summary.outcomes.append("env-sanitized")
        summary.outcomes.extend(prepared.outcomes)
        summary.profile = prepared.profile
        for note in prepared.notes:
            self._log(prepared.profile, "prepare_environment", note)
        Path(prepared.env["CARGO_HOME"]).mkdir(parents=True, exist_ok=True)

        driver = CargoDriver(runner=self.runner)
        summary.lock_mode = self._lock_mode(request, driver, toolchain, workspace, prepared)
        if summary.lock_mode == "unlocked":
            summary.outcomes.append("unlocked")

        if request.trace:
            self._trace(request, toolchain, manager, prepared, workspace)

        fingerprinter = EnvironmentFingerprinter(manager=manager, hasher=hasher, logger=self.logger)
        fingerprint = fingerprinter.capture(
            profile=prepared.profile,
            target=request.target,
            toolchain=toolchain,
            env=prepared.env,
        )
        fingerprint_file = fingerprint_path(bucket.directory, prepared.profile)
        comparison = fingerprinter.compare(fingerprint, fingerprint_file)
        fingerprinter.report(comparison, profile=prepared.profile)
        summary.fingerprint = comparison
        summary.outcomes.append(comparison.outcome)

        self._log(prepared.profile, "compile", f"Building bins: {' '.join(request.binaries)}")
        try:
            result = driver.build(
                toolchain,
                workspace=workspace,
                env=prepared.env,
                profile=prepared.profile,
                target=request.target,
                binaries=request.binaries,
                locked=summary.lock_mode == "locked",
            )
        finally:
            if fingerprinter.persist(fingerprint, fingerprint_file, profile=prepared.profile) is None:
                summary.outcomes.append("fingerprint-unwritable")
        if not result.ok:
            raise CompileError(
                "Build failed.",
                hint="See cargo output above.",
                context={
                    "operation": "compile",
                    "profile": prepared.profile,
                    "returncode": str(result.returncode),
                    "command": " ".join(result.argv),
                },
            )

        layout = PublishLayout(
            workspace=workspace,
            bucket_dir=bucket.directory,
            crate_prefix=crate_prefix_for(workspace),
            profile=prepared.profile,
            host_triple=toolchain.host_triple,
            target=request.target,
            cli_bin_dirs=(workspace / "code-cli" / "bin", self.repo_root / "codex-cli" / "bin"),
        )
        publisher = self.publisher or ArtifactPublisher(hasher=hasher, runner=self.runner, logger=self.logger)
        summary.artifacts = publisher.publish(layout, request.binaries)
        self._log(prepared.profile, "publish", f"Build successful: {layout.publish_dir / request.primary_binary}")

        summary.report_path = bucket.directory / prepared.profile / SUMMARY_FILENAME
        summary.to_json(summary.report_path)

        if request.run_after_build:
            run_cwd = request.run_cwd or Path.cwd()
            summary.run_status = publisher.run(layout, request.primary_binary, cwd=run_cwd)
            summary.outcomes.append("ran")
        return summary

    def _lock_mode(
        self,
        request: BuildRequest,
        driver: CargoDriver,
        toolchain: ToolchainDescriptor,
        workspace: Path,
        prepared: PreparedEnvironment,
    ) -> LockMode:
        if not request.locked:
            return "not-requested"
        if driver.lockfile_consistent(toolchain, workspace=workspace, env=prepared.env):
            return "locked"
        message = "Cargo.lock appears out of date or inconsistent; continuing with an unlocked build."
        self._log(prepared.profile, "check_lockfile", message, level="warning")
        warnings.warn(message, UnlockedBuildWarning, stacklevel=3)
        return "unlocked"

    def _trace(
        self,
        request: BuildRequest,
        toolchain: ToolchainDescriptor,
        manager: RustupManager,
        prepared: PreparedEnvironment,
        workspace: Path,
    ) -> None:
        rustc = manager.run(toolchain.channel, "rustc", "-vV")
        cargo = manager.run(toolchain.channel, "cargo", "-vV")
        try:
            user = getpass.getuser()
        except (KeyError, OSError):
            user = ""
        snapshot = {
            "whoami": user,
            "pwd": str(workspace),
            "shell": self.environ.get("SHELL", ""),
            "toolchain": toolchain.channel,
            "rustc": rustc.stdout.strip() if rustc.ok else "",
            "cargo": cargo.stdout.strip() if cargo.ok else "",
            "canonical_env_applied": prepared.sanitized,
            "keep_env": request.keep_env,
            "build_target": request.target or "native",
        }
        self._log(prepared.profile, "trace", "Build environment snapshot.", level="debug", extra=snapshot)

    def _log(
        self,
        profile: str | None,
        operation: str,
        message: str,
        *,
        level: str = "info",
        extra: dict[str, object] | None = None,
    ) -> None:
        self.logger.log(
            operation=operation,
            profile=profile,
            phase="pipeline",
            component="pipeline",
            message=message,
            level=level,
            extra=extra,
        )


def bucket_directory(
    repo_root: Path,
    request: BuildRequest,
    *,
    options: BuildOptions,
    environ: Mapping[str, str],
    runner: CommandRunner | None = None,
) -> CacheBucket:
    """Resolve the bucket for *request* without building anything."""
    active = runner or SubprocessRunner()
    return _bucket_for(
        repo_root,
        request,
        vcs=query_worktree(repo_root / request.workspace, runner=active),
        cache_home=resolve_cache_home(repo_root=repo_root, environ=environ, override=options.cache_root),
        override=options.cache_key_override,
        hasher=default_hasher_chain(active),
    )


def _bucket_for(
    repo_root: Path,
    request: BuildRequest,
    *,
    vcs: VcsInfo,
    cache_home: Path,
    override: str | None,
    hasher: HasherChain,
) -> CacheBucket:
    return resolve_bucket(
        CacheKeyInput(
            branch=branch_label(vcs),
            worktree_root=str(vcs.worktree_root),
            target=request.target,
            override=override,
        ),
        cache_root=target_cache_root(cache_home, repo_name_for(repo_root)),
        workspace=request.workspace,
        hasher=hasher,
    )
