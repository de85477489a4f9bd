"""SHA-256 hasher chain used for cache-key material and artifact identity.

Command-line hashers are tried first (``shasum -a 256``, then ``sha256sum``)
so digests match what a developer gets by hand; :mod:`hashlib` is the final
fallback.
"""

from __future__ import annotations

import hashlib
from collections.abc import Sequence
from dataclasses import dataclass, field
from pathlib import Path
from typing import Protocol

from fastbuild.process import CommandRunner, SubprocessRunner

_CHUNK_SIZE = 1024 * 1024


class Hasher(Protocol):
    name: str

    def digest_bytes(self, data: bytes) -> str | None:
        """Return a hex digest of *data*, or None if unavailable."""

    def digest_file(self, path: Path) -> str | None:
        """Return a hex digest of *path*, or None if unavailable."""


@dataclass(slots=True)
class CommandHasher:
    name: str
    argv: tuple[str, ...]
    runner: CommandRunner = field(default_factory=SubprocessRunner)

    def digest_bytes(self, data: bytes) -> str | None:
        if self.runner.which(self.argv[0]) is None:
            return None
        result = self.runner.run(self.argv, stdin=data)
        return _first_word(result.stdout) if result.ok else None

    def digest_file(self, path: Path) -> str | None:
        if self.runner.which(self.argv[0]) is None:
            return None
        result = self.runner.run((*self.argv, str(path)))
        return _first_word(result.stdout) if result.ok else None


@dataclass(slots=True)
class HashlibHasher:
    name: str = "hashlib"

    def digest_bytes(self, data: bytes) -> str | None:
        return hashlib.sha256(data).hexdigest()

    def digest_file(self, path: Path) -> str | None:
        digest = hashlib.sha256()
        with path.open("rb") as handle:
            for chunk in iter(lambda: handle.read(_CHUNK_SIZE), b""):
                digest.update(chunk)
        return digest.hexdigest()


@dataclass(slots=True)
class HasherChain:
    hashers: tuple[Hasher, ...]

    def hash_string(self, value: str) -> str | None:
        data = value.encode("utf-8")
        for hasher in self.hashers:
            digest = hasher.digest_bytes(data)
            if digest:
                return digest
        return None

    def hash_file(self, path: Path) -> str | None:
        for hasher in self.hashers:
            digest = hasher.digest_file(path)
            if digest:
                return digest
        return None


def default_hasher_chain(runner: CommandRunner | None = None) -> HasherChain:
    active = runner or SubprocessRunner()
    hashers: Sequence[Hasher] = (
        CommandHasher(name="shasum", argv=("shasum", "-a", "256"), runner=active),
        CommandHasher(name="sha256sum", argv=("sha256sum",), runner=active),
        HashlibHasher(),
    )
    return HasherChain(hashers=tuple(hashers))


def _first_word(output: str) -> str | None:
    words = output.split()
    if not words:
        return None
    candidate = words[0].lower()
    if len(candidate) != 64 or any(ch not in "0123456789abcdef" for ch in candidate):
        return None
    return candidate
