"""Single-key scanners for ``rust-toolchain.toml`` and ``Cargo.toml``.

Each lookup reads one ``key = "value"`` line, optionally inside one section;
nothing else in the file is interpreted.
"""

from __future__ import annotations

from pathlib import Path


def scan_key(path: Path, key: str, *, section: str | None = None) -> str | None:
    """Return the first ``key = "value"`` in *path*, limited to *section* if given.

    Without a section every line is considered, matching how toolchain files
    put ``channel`` under ``[toolchain]``.
    """
    try:
        lines = path.read_text(encoding="utf-8").splitlines()
    except (FileNotFoundError, IsADirectoryError, UnicodeDecodeError):
        return None

    in_section = section is None
    for raw in lines:
        line = raw.strip()
        if section is not None:
            if line == section:
                in_section = True
                continue
            if in_section and line.startswith("["):
                return None
        if not in_section:
            continue
        value = _match_assignment(line, key)
        if value is not None:
            return value
    return None


def toolchain_channel(workspace: Path) -> str | None:
    return scan_key(workspace / "rust-toolchain.toml", "channel")


def package_name(manifest: Path) -> str | None:
    return scan_key(manifest, "name", section="[package]")


def bin_name(manifest: Path) -> str | None:
    return scan_key(manifest, "name", section="[[bin]]")


def defines_profile(manifest: Path, profile: str) -> bool:
    try:
        content = manifest.read_text(encoding="utf-8")
    except (FileNotFoundError, IsADirectoryError, UnicodeDecodeError):
        return False
    return f"[profile.{profile}]" in content


def _match_assignment(line: str, key: str) -> str | None:
    if not line.startswith(key):
        return None
    rest = line[len(key) :].lstrip()
    if not rest.startswith("="):
        return None
    value = rest[1:].split("#", 1)[0].strip()
    if len(value) >= 2 and value[0] == value[-1] and value[0] in "\"'":
        value = value[1:-1]
    return value or None
