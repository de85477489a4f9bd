import errno
import io
from collections.abc import Mapping
from pathlib import Path

import pytest

from conftest import WORKSPACE_MANIFEST, FakeRunner, fake_cargo_build
from fastbuild.cli import main, split_words
from fastbuild.errors import ValidationError
from fastbuild.process import CommandResult


@pytest.fixture
def repo(tmp_path: Path) -> Path:
    workspace = tmp_path / "repo" / "code-rs"
    (workspace / "cli").mkdir(parents=True)
    (workspace / "Cargo.toml").write_text(WORKSPACE_MANIFEST, encoding="utf-8")
    (workspace / "cli" / "Cargo.toml").write_text('[package]\nname = "code-cli"\n', encoding="utf-8")
    return tmp_path / "repo"


def _environ(tmp_path: Path) -> dict[str, str]:
    return {"PATH": "/usr/bin", "RUSTUP_TOOLCHAIN": "stable", "BUILD_FAST_CACHE_ROOT": str(tmp_path / "cache")}


def test_split_words() -> None:
    assert split_words([]) == (None, False)
    assert split_words(["perf", "run"]) == ("perf", True)
    assert split_words(["run"]) == (None, True)
    with pytest.raises(ValidationError):
        split_words(["perf", "release"])


def test_successful_build_exits_zero(tmp_path: Path, repo: Path, runner: FakeRunner) -> None:
    runner.tools.update({"rustup": "/usr/bin/rustup", "sccache": "/usr/bin/sccache"})
    runner.on("rustup", "toolchain", "list", stdout="stable-x86_64-unknown-linux-gnu (default)\n")
    runner.on("rustup", "run", "stable", "rustc", "-vV", stdout="host: x86_64-unknown-linux-gnu\n")
    runner.on("rustup", "run", "stable", "cargo", "metadata")
    runner.on("rustup", "run", "stable", "cargo", "build", handler=fake_cargo_build)
    stdout = io.StringIO()

    status = main(
        ["--repo-root", str(repo)],
        environ=_environ(tmp_path),
        runner=runner,
        stdout=stdout,
        stderr=io.StringIO(),
    )

    assert status == 0
    assert "Using rustup toolchain: stable" in stdout.getvalue()
    assert f"Build successful: {repo / 'code-rs' / 'bin' / 'code'}" in stdout.getvalue()


def test_fatal_error_prints_code_and_exits_nonzero(tmp_path: Path, repo: Path, runner: FakeRunner) -> None:
    stderr = io.StringIO()

    status = main(["--repo-root", str(repo)], environ=_environ(tmp_path), runner=runner, stderr=stderr)

    assert status == 1
    assert stderr.getvalue().startswith("ERROR [E_TOOLCHAIN]: rustup is required")


def test_missing_workspace_is_a_validation_error(tmp_path: Path, repo: Path, runner: FakeRunner) -> None:
    stderr = io.StringIO()

    status = main(
        ["--repo-root", str(repo), "--workspace", "nope"],
        environ=_environ(tmp_path),
        runner=runner,
        stderr=stderr,
    )

    assert status == 1
    assert "ERROR [E_VALIDATION]" in stderr.getvalue()


def test_run_failure_propagates_binary_status(tmp_path: Path, repo: Path, runner: FakeRunner) -> None:
    runner.tools.update({"rustup": "/usr/bin/rustup", "sccache": "/usr/bin/sccache"})
    runner.on("rustup", "toolchain", "list", stdout="stable-x86_64-unknown-linux-gnu\n")
    runner.on("rustup", "run", "stable", "rustc", "-vV", stdout="host: x86_64-unknown-linux-gnu\n")
    runner.on("rustup", "run", "stable", "cargo", "metadata")
    runner.on("rustup", "run", "stable", "cargo", "build", handler=fake_cargo_build)
    runner.on(str(repo / "code-rs" / "bin" / "code"), returncode=42)
    stderr = io.StringIO()

    status = main(
        ["--repo-root", str(repo), "run"],
        environ=_environ(tmp_path),
        runner=runner,
        stdout=io.StringIO(),
        stderr=stderr,
    )

    assert status == 42
    assert "ERROR [E_RUN]" in stderr.getvalue()


def test_os_errors_are_reported_with_a_code(tmp_path: Path, repo: Path, runner: FakeRunner) -> None:
    def disk_full(argv: tuple[str, ...], cwd: Path | None, env: Mapping[str, str]) -> CommandResult:
        raise OSError(errno.ENOSPC, "No space left on device", str(repo / "code-rs" / "bin" / "code"))

    runner.tools.update({"rustup": "/usr/bin/rustup", "sccache": "/usr/bin/sccache"})
    runner.on("rustup", "toolchain", "list", stdout="stable-x86_64-unknown-linux-gnu\n")
    runner.on("rustup", "run", "stable", "rustc", "-vV", stdout="host: x86_64-unknown-linux-gnu\n")
    runner.on("rustup", "run", "stable", "cargo", "metadata")
    runner.on("rustup", "run", "stable", "cargo", "build", handler=disk_full)
    stderr = io.StringIO()

    status = main(
        ["--repo-root", str(repo)],
        environ=_environ(tmp_path),
        runner=runner,
        stdout=io.StringIO(),
        stderr=stderr,
    )

    assert status == 1
    assert stderr.getvalue().startswith("ERROR [E_FILESYSTEM]: Filesystem operation failed: No space left on device")
    assert f"path: {repo / 'code-rs' / 'bin' / 'code'}" in stderr.getvalue()
