"""Version detection for installed and development builds."""

from __future__ import annotations

import os
from importlib import metadata

# Fallback version if nothing else works
_FALLBACK_VERSION = "unknown"

_DISTRIBUTION_NAME = "screencut"


def get_version() -> str:
    """Get the current version string.

    Priority:
    1. BUILD_VERSION environment variable (set during CI/CD)
    2. Installed distribution metadata
    3. Fallback to "unknown"
    """
    build_version = os.environ.get("BUILD_VERSION")
    if build_version:
        return build_version.strip()

    try:
        return metadata.version(_DISTRIBUTION_NAME)
    except metadata.PackageNotFoundError:
        return _FALLBACK_VERSION


# Cache the version on module load
__version__ = get_version()
