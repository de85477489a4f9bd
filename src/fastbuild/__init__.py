"""Fast cached cargo builds: cache buckets, toolchains, cross targets and publication."""

from .config import BuildOptions
from .errors import (
    AccelerationUnavailableWarning,
    ArtifactMissingError,
    CompileError,
    CrossTargetError,
    ErrorCode,
    FastbuildError,
    FastbuildWarning,
    FilesystemError,
    FingerprintDriftWarning,
    FingerprintUnwritableWarning,
    ForeignExecutionError,
    ProfileFallbackWarning,
    RunError,
    ToolchainError,
    UnlockedBuildWarning,
    ValidationError,
)
from .models import (
    Artifact,
    BuildRequest,
    BuildSummary,
    CacheBucket,
    CrossCompileTarget,
    EnvironmentFingerprint,
    FingerprintComparison,
    ToolchainDescriptor,
)
from .pipeline import BuildPipeline, bucket_directory

__all__ = [
    "AccelerationUnavailableWarning",
    "Artifact",
    "ArtifactMissingError",
    "BuildOptions",
    "BuildPipeline",
    "BuildRequest",
    "BuildSummary",
    "CacheBucket",
    "CompileError",
    "CrossCompileTarget",
    "CrossTargetError",
    "EnvironmentFingerprint",
    "ErrorCode",
    "FastbuildError",
    "FastbuildWarning",
    "FilesystemError",
    "FingerprintComparison",
    "FingerprintDriftWarning",
    "FingerprintUnwritableWarning",
    "ForeignExecutionError",
    "ProfileFallbackWarning",
    "RunError",
    "ToolchainDescriptor",
    "ToolchainError",
    "UnlockedBuildWarning",
    "ValidationError",
    "bucket_directory",
]
