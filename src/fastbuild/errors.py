"""Typed build error model with stable, machine-readable error codes."""

from __future__ import annotations

from collections.abc import Mapping
from enum import StrEnum


class ErrorCode(StrEnum):
    """Stable error identifiers reported on fatal exits."""

    VALIDATION = "E_VALIDATION"
    TOOLCHAIN = "E_TOOLCHAIN"
    CROSS_TARGET = "E_CROSS_TARGET"
    COMPILE = "E_COMPILE"
    ARTIFACT_MISSING = "E_ARTIFACT_MISSING"
    RUN = "E_RUN"
    FOREIGN_EXECUTION = "E_FOREIGN_EXECUTION"
    FILESYSTEM = "E_FILESYSTEM"


class FastbuildError(Exception):
    """Base error class that carries code, optional hint, and context."""

    code: str
    hint: str | None
    context: Mapping[str, str]

    def __init__(
        self,
        message: str,
        *,
        code: ErrorCode,
        hint: str | None = None,
        context: Mapping[str, str] | None = None,
    ) -> None:
        super().__init__(message)
        self.code = code.value
        self.hint = hint
        self.context = dict(context or {})

    def __str__(self) -> str:
        parts = [super().__str__()]
        if self.hint:
            parts.append(f"Hint: {self.hint}")
        if self.context:
            for k, v in self.context.items():
                if v:
                    parts.append(f"  {k}: {v}")
        return "\n".join(parts)

    def to_dict(self) -> dict[str, object]:
        payload: dict[str, object] = {
            "code": self.code,
            "message": str(self),
            "context": dict(self.context),
        }
        if self.hint is not None:
            payload["hint"] = self.hint
        return payload


class ValidationError(FastbuildError):
    def __init__(
        self,
        message: str,
        *,
        hint: str | None = None,
        context: Mapping[str, str] | None = None,
    ) -> None:
        super().__init__(message, code=ErrorCode.VALIDATION, hint=hint, context=context)


class ToolchainError(FastbuildError):
    def __init__(
        self,
        message: str,
        *,
        hint: str | None = None,
        context: Mapping[str, str] | None = None,
    ) -> None:
        super().__init__(message, code=ErrorCode.TOOLCHAIN, hint=hint, context=context)


class CrossTargetError(FastbuildError):
    def __init__(
        self,
        message: str,
        *,
        hint: str | None = None,
        context: Mapping[str, str] | None = None,
    ) -> None:
        super().__init__(message, code=ErrorCode.CROSS_TARGET, hint=hint, context=context)


class CompileError(FastbuildError):
    def __init__(
        self,
        message: str,
        *,
        hint: str | None = None,
        context: Mapping[str, str] | None = None,
    ) -> None:
        super().__init__(message, code=ErrorCode.COMPILE, hint=hint, context=context)


class ArtifactMissingError(FastbuildError):
    """A binary is absent right after cargo reported success.

    This points at a path-resolution defect in the publisher rather than a
    failed compile, so it carries its own code.
    """

    def __init__(
        self,
        message: str,
        *,
        hint: str | None = None,
        context: Mapping[str, str] | None = None,
    ) -> None:
        super().__init__(message, code=ErrorCode.ARTIFACT_MISSING, hint=hint, context=context)


class RunError(FastbuildError):
    exit_status: int

    def __init__(
        self,
        message: str,
        *,
        exit_status: int = 1,
        hint: str | None = None,
        context: Mapping[str, str] | None = None,
    ) -> None:
        super().__init__(message, code=ErrorCode.RUN, hint=hint, context=context)
        self.exit_status = exit_status


class ForeignExecutionError(FastbuildError):
    def __init__(
        self,
        message: str,
        *,
        hint: str | None = None,
        context: Mapping[str, str] | None = None,
    ) -> None:
        super().__init__(message, code=ErrorCode.FOREIGN_EXECUTION, hint=hint, context=context)


class FilesystemError(FastbuildError):
    """An unexpected OS-level failure, such as a full disk while publishing."""

    def __init__(
        self,
        message: str,
        *,
        hint: str | None = None,
        context: Mapping[str, str] | None = None,
    ) -> None:
        super().__init__(message, code=ErrorCode.FILESYSTEM, hint=hint, context=context)

    @classmethod
    def from_os_error(cls, error: OSError) -> FilesystemError:
        context = {"errno": str(error.errno or "")}
        if error.filename is not None:
            context["path"] = str(error.filename)
        return cls(f"Filesystem operation failed: {error.strerror or error}", context=context)


class FastbuildWarning(UserWarning):
    """Base class for recoverable conditions surfaced during a build."""


class FingerprintDriftWarning(FastbuildWarning):
    """The bucket may hold artifacts built under different settings."""


class FingerprintUnwritableWarning(FastbuildWarning):
    """The fingerprint file could not be written; the build still proceeds."""


class UnlockedBuildWarning(FastbuildWarning):
    """Cargo.lock is not consistent; the build proceeds without --locked."""


class ProfileFallbackWarning(FastbuildWarning):
    """The requested profile is not defined by the workspace manifest."""


class AccelerationUnavailableWarning(FastbuildWarning):
    """An optional build accelerator (sccache) is not installed."""


__all__ = [
    "AccelerationUnavailableWarning",
    "ArtifactMissingError",
    "CompileError",
    "CrossTargetError",
    "ErrorCode",
    "FastbuildError",
    "FastbuildWarning",
    "FilesystemError",
    "FingerprintDriftWarning",
    "FingerprintUnwritableWarning",
    "ForeignExecutionError",
    "ProfileFallbackWarning",
    "RunError",
    "ToolchainError",
    "UnlockedBuildWarning",
    "ValidationError",
]
