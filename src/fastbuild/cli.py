"""Command-line parsing and exit-status mapping for ``python -m fastbuild``."""

from __future__ import annotations

import argparse
import dataclasses
import os
import sys
import warnings
from collections.abc import Mapping, Sequence
from pathlib import Path
from typing import Any, TextIO

from fastbuild.config import BuildOptions
from fastbuild.errors import FastbuildError, FastbuildWarning, FilesystemError, RunError, ValidationError
from fastbuild.manifest import bin_name
from fastbuild.observability import StructuredLogger, format_record
from fastbuild.pipeline import BuildPipeline, crate_prefix_for
from fastbuild.process import CommandRunner, SubprocessRunner

DEFAULT_WORKSPACE = "code-rs"
RUN_WORD = "run"


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="fastbuild", description="Fast cached cargo builds")
    parser.add_argument(
        "words",
        nargs="*",
        metavar="PROFILE|run",
        help="Cargo profile to build, and/or 'run' to execute the binary afterwards",
    )
    parser.add_argument("--target", help="Target triple (or 'android')")
    parser.add_argument("--workspace", default=DEFAULT_WORKSPACE, help="Workspace directory name")
    parser.add_argument("--repo-root", type=Path, default=None, help="Repository root (default: cwd)")
    parser.add_argument("--bin", dest="primary", default=None, help="Primary binary name")
    parser.add_argument("--android-ndk", default=None, help="Android NDK root")
    parser.add_argument("--unlocked", action="store_true", help="Do not pass --locked to cargo")
    return parser


def split_words(words: Sequence[str]) -> tuple[str | None, bool]:
    """Return (profile, run_after_build) from the positional words."""
    profile: str | None = None
    run_after_build = False
    for word in words:
        if word == RUN_WORD:
            run_after_build = True
            continue
        if profile is not None and profile != word:
            raise ValidationError(
                "Conflicting profiles requested.",
                hint="Pass at most one profile name.",
                context={"operation": "configure", "profiles": f"{profile} {word}"},
            )
        profile = word
    return profile, run_after_build


def main(
    argv: Sequence[str] | None = None,
    environ: Mapping[str, str] | None = None,
    *,
    runner: CommandRunner | None = None,
    stdout: TextIO | None = None,
    stderr: TextIO | None = None,
) -> int:
    out = stdout or sys.stdout
    err = stderr or sys.stderr
    env = dict(os.environ if environ is None else environ)
    args = build_parser().parse_args(argv)

    def emit(record: dict[str, Any]) -> None:
        # Warning records are echoed by show_warning.
        if record.get("level") == "warning":
            return
        stream = out if record.get("level") in ("info", "debug") else err
        print(format_record(record), file=stream, flush=True)

    def show_warning(
        message: Warning | str,
        category: type[Warning],
        filename: str,
        lineno: int,
        file: TextIO | None = None,
        line: str | None = None,
    ) -> None:
        print(f"WARNING: {message}", file=err, flush=True)

    with warnings.catch_warnings():
        warnings.simplefilter("always", FastbuildWarning)
        warnings.showwarning = show_warning
        try:
            options = BuildOptions.from_env(env)
            if args.android_ndk:
                options = dataclasses.replace(options, sdk_root=args.android_ndk)
            repo_root = (args.repo_root or Path.cwd()).resolve()
            workspace = repo_root / args.workspace
            primary = args.primary or bin_name(workspace / "cli" / "Cargo.toml") or crate_prefix_for(workspace)
            profile, run_after_build = split_words(args.words)
            request = options.to_request(
                workspace=args.workspace,
                primary_binary=primary,
                profile=profile,
                target=args.target,
                run_after_build=run_after_build,
                locked=not args.unlocked,
            )
            pipeline = BuildPipeline(
                repo_root=repo_root,
                options=options,
                environ=env,
                runner=runner or SubprocessRunner(),
                logger=StructuredLogger(sink=emit),
            )
            summary = pipeline.run(request)
        except RunError as exc:
            _report(exc, err)
            return exc.exit_status or 1
        except FastbuildError as exc:
            _report(exc, err)
            return 1
        except OSError as exc:
            _report(FilesystemError.from_os_error(exc), err)
            return 1
    return summary.run_status or 0


def _report(error: FastbuildError, stream: TextIO) -> None:
    print(f"ERROR [{error.code}]: {error}", file=stream, flush=True)
