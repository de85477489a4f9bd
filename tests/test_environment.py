from pathlib import Path

import pytest

from conftest import FakeRunner
from fastbuild.environment import (
    DETERMINISTIC_RUSTFLAG,
    EnvironmentBuilder,
    PreparedEnvironment,
    profile_env_name,
    profile_subdir,
)
from fastbuild.errors import AccelerationUnavailableWarning, ProfileFallbackWarning
from fastbuild.models import BuildRequest

ALL_PROFILES = """[workspace]
members = ["cli"]

[profile.dev-fast]
inherits = "dev"

[profile.perf]
inherits = "release"
debug = 2

[profile.release-prod]
inherits = "release"
lto = "fat"
"""


@pytest.fixture
def manifest(tmp_path: Path) -> Path:
    path = tmp_path / "repo" / "code-rs" / "Cargo.toml"
    path.parent.mkdir(parents=True)
    path.write_text(ALL_PROFILES, encoding="utf-8")
    return path


@pytest.fixture
def sccache_runner(runner: FakeRunner) -> FakeRunner:
    runner.tools["sccache"] = "/usr/bin/sccache"
    return runner


def _prepare(
    tmp_path: Path,
    runner: FakeRunner,
    manifest: Path,
    base: dict[str, str] | None = None,
    **request_fields: object,
) -> PreparedEnvironment:
    builder = EnvironmentBuilder(
        base=base if base is not None else {},
        repo_root=tmp_path / "repo",
        cache_home=tmp_path / "cache-home",
        runner=runner,
    )
    request = BuildRequest(workspace="code-rs", binaries=("code",), **request_fields)
    return builder.prepare(
        request,
        workspace_manifest=manifest,
        target_dir=tmp_path / "bucket",
        commit_time="1700000000",
    )


def test_default_build_keeps_profile_and_points_cargo_at_bucket(
    tmp_path: Path, sccache_runner: FakeRunner, manifest: Path
) -> None:
    base = {"PATH": "/usr/bin", "RUSTFLAGS": "-C target-cpu=native"}

    prepared = _prepare(tmp_path, sccache_runner, manifest, base=base)

    assert prepared.profile == "dev-fast"
    assert prepared.env["CARGO_TARGET_DIR"] == str(tmp_path / "bucket")
    assert prepared.env["RUSTFLAGS"] == "-C target-cpu=native"
    assert prepared.env["CARGO_HOME"] == str(tmp_path / "repo" / ".cargo-home")
    assert prepared.env["CARGO_REGISTRIES_CRATES_IO_PROTOCOL"] == "sparse"
    assert "RUSTUP_HOME" not in prepared.env
    assert base == {"PATH": "/usr/bin", "RUSTFLAGS": "-C target-cpu=native"}


def test_sccache_is_wired_when_available(tmp_path: Path, sccache_runner: FakeRunner, manifest: Path) -> None:
    prepared = _prepare(tmp_path, sccache_runner, manifest)

    assert prepared.env["RUSTC_WRAPPER"] == "/usr/bin/sccache"
    assert prepared.env["SCCACHE_DIR"] == str(tmp_path / "cache-home" / "sccache")
    assert prepared.env["SCCACHE_CACHE_SIZE"] == "50G"
    assert (tmp_path / "cache-home" / "sccache").is_dir()


def test_missing_sccache_is_a_named_outcome(tmp_path: Path, runner: FakeRunner, manifest: Path) -> None:
    with pytest.warns(AccelerationUnavailableWarning):
        prepared = _prepare(tmp_path, runner, manifest)

    assert "acceleration-unavailable" in prepared.outcomes
    assert "RUSTC_WRAPPER" not in prepared.env


def test_undefined_profile_falls_back_with_warning(tmp_path: Path, sccache_runner: FakeRunner) -> None:
    manifest = tmp_path / "Cargo.toml"
    manifest.write_text("[workspace]\n", encoding="utf-8")

    with pytest.warns(ProfileFallbackWarning):
        prepared = _prepare(tmp_path, sccache_runner, manifest, profile="perf", profile_explicit=True)

    assert prepared.profile == "release"
    assert "profile-fallback" in prepared.outcomes


def test_deterministic_mode_promotes_dev_fast(tmp_path: Path, sccache_runner: FakeRunner, manifest: Path) -> None:
    prepared = _prepare(tmp_path, sccache_runner, manifest, determinism="promote-release")

    assert prepared.profile == "release-prod"
    assert prepared.env["SOURCE_DATE_EPOCH"] == "1700000000"
    assert DETERMINISTIC_RUSTFLAG in prepared.env["RUSTFLAGS"]
    assert "deterministic:promote-release" in prepared.outcomes


def test_pin_only_mode_keeps_profile(tmp_path: Path, sccache_runner: FakeRunner, manifest: Path) -> None:
    prepared = _prepare(tmp_path, sccache_runner, manifest, determinism="pin-only")

    assert prepared.profile == "dev-fast"
    assert prepared.env["SOURCE_DATE_EPOCH"] == "1700000000"
    assert prepared.env["RUSTFLAGS"] == DETERMINISTIC_RUSTFLAG


def test_clean_environment_drops_inherited_overrides(tmp_path: Path, runner: FakeRunner, manifest: Path) -> None:
    base = {
        "RUSTFLAGS": "-C opt-level=0",
        "RUSTC_WRAPPER": "/opt/wrapper",
        "CARGO_INCREMENTAL": "1",
        "MACOSX_DEPLOYMENT_TARGET": "11.0",
        "HOME": "/home/dev",
    }

    with pytest.warns(AccelerationUnavailableWarning):
        prepared = _prepare(tmp_path, runner, manifest, base=base, keep_env=False)

    assert prepared.sanitized is True
    assert prepared.env["RUSTFLAGS"] == ""
    assert prepared.env["HOME"] == "/home/dev"
    for name in ("RUSTC_WRAPPER", "CARGO_INCREMENTAL", "MACOSX_DEPLOYMENT_TARGET"):
        assert name not in prepared.env


def test_debug_symbols_switch_implicit_dev_fast_to_perf(
    tmp_path: Path, sccache_runner: FakeRunner, manifest: Path
) -> None:
    prepared = _prepare(tmp_path, sccache_runner, manifest, debug_symbols=True)

    assert prepared.profile == "perf"
    assert prepared.env["CARGO_PROFILE_RELEASE_STRIP"] == "none"
    assert "debug-symbols" in prepared.outcomes


def test_debug_symbols_force_debuginfo_on_explicit_profile(
    tmp_path: Path, sccache_runner: FakeRunner, manifest: Path
) -> None:
    prepared = _prepare(
        tmp_path,
        sccache_runner,
        manifest,
        base={"RUSTFLAGS": f"-C link-arg=-s {DETERMINISTIC_RUSTFLAG}"},
        profile="release-prod",
        profile_explicit=True,
        debug_symbols=True,
    )

    assert prepared.profile == "release-prod"
    assert prepared.env["CARGO_PROFILE_RELEASE_PROD_DEBUG"] == "2"
    assert prepared.env["CARGO_PROFILE_RELEASE_PROD_SPLIT_DEBUGINFO"] == "packed"
    assert prepared.env["RUSTFLAGS"] == "-C link-arg=-s"


def test_strict_cargo_home_overrides_inherited_value(
    tmp_path: Path, sccache_runner: FakeRunner, manifest: Path
) -> None:
    builder = EnvironmentBuilder(
        base={"CARGO_HOME": "/home/dev/.cargo"},
        repo_root=tmp_path / "repo",
        cache_home=tmp_path / "cache-home",
        runner=sccache_runner,
    )
    request = BuildRequest(workspace="code-rs", binaries=("code",))

    relaxed = builder.prepare(request, workspace_manifest=manifest, target_dir=tmp_path / "bucket")
    strict = builder.prepare(
        request,
        workspace_manifest=manifest,
        target_dir=tmp_path / "bucket",
        strict_cargo_home=True,
        enforced_cargo_home="/ci/cargo",
    )

    assert relaxed.env["CARGO_HOME"] == "/home/dev/.cargo"
    assert strict.env["CARGO_HOME"] == "/ci/cargo"


def test_profile_naming_helpers() -> None:
    assert profile_subdir("dev") == "debug"
    assert profile_subdir("dev-fast") == "dev-fast"
    assert profile_subdir("release-prod") == "release-prod"
    assert profile_env_name("release-prod") == "RELEASE_PROD"
