import hashlib
from pathlib import Path

from conftest import FakeRunner
from fastbuild.hashing import CommandHasher, HasherChain, HashlibHasher, default_hasher_chain
from fastbuild.vcs import query_worktree

DIGEST = "0123456789abcdef" * 4


def test_command_hasher_is_preferred_when_installed(runner: FakeRunner) -> None:
    runner.tools["shasum"] = "/usr/bin/shasum"
    runner.on("shasum", "-a", "256", stdout=f"{DIGEST}  -\n")

    assert default_hasher_chain(runner).hash_string("main") == DIGEST
    assert runner.calls[0].argv == ("shasum", "-a", "256")


def test_chain_falls_back_to_hashlib(runner: FakeRunner) -> None:
    assert default_hasher_chain(runner).hash_string("main") == hashlib.sha256(b"main").hexdigest()
    assert runner.calls == []


def test_malformed_command_output_is_ignored(runner: FakeRunner) -> None:
    runner.tools["sha256sum"] = "/usr/bin/sha256sum"
    runner.on("sha256sum", stdout="sha256sum: command failed\n")
    chain = HasherChain(
        hashers=(CommandHasher(name="sha256sum", argv=("sha256sum",), runner=runner), HashlibHasher()),
    )

    assert chain.hash_string("x") == hashlib.sha256(b"x").hexdigest()


def test_hash_file_reads_content(tmp_path: Path) -> None:
    path = tmp_path / "binary"
    path.write_bytes(b"\x7fELF" + b"\x00" * 4096)

    chain = HasherChain(hashers=(HashlibHasher(),))

    assert chain.hash_file(path) == hashlib.sha256(path.read_bytes()).hexdigest()


def test_query_worktree_reads_branch_and_commit(tmp_path: Path, runner: FakeRunner) -> None:
    runner.on("git", "rev-parse", "--show-toplevel", stdout="/work/repo\n")
    runner.on("git", "rev-parse", "--is-inside-work-tree", stdout="true\n")
    runner.on("git", "rev-parse", "--abbrev-ref", "HEAD", stdout="feature/x\n")
    runner.on("git", "rev-parse", "--short", "HEAD", stdout="abc1234\n")
    runner.on("git", "log", "-1", "--pretty=%ct", stdout="1700000000\n")

    info = query_worktree(tmp_path, runner=runner)

    assert info.in_repo is True
    assert info.branch_or_ref_label == "feature/x"
    assert info.worktree_root == Path("/work/repo")
    assert info.short_commit == "abc1234"
    assert info.commit_time == "1700000000"


def test_query_worktree_outside_repository(tmp_path: Path, runner: FakeRunner) -> None:
    info = query_worktree(tmp_path, runner=runner)

    assert info.in_repo is False
    assert info.worktree_root == tmp_path
