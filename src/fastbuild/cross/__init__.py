"""Cross-compilation SDK discovery and target configuration."""

from .configure import CrossTargetConfigurator, cross_environment, env_suffix, is_cross
from .sdk import SdkDiscovery, default_ndk_discovery, matches_layout, version_key

__all__ = [
    "CrossTargetConfigurator",
    "SdkDiscovery",
    "cross_environment",
    "default_ndk_discovery",
    "env_suffix",
    "is_cross",
    "matches_layout",
    "version_key",
]
