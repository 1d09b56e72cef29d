"""
Version information for Order Replica Sync.

Single source of truth: pyproject.toml
Runtime access via importlib.metadata with fallback.
"""

from functools import lru_cache

# Fallback version if package metadata unavailable (dev mode)
_FALLBACK_VERSION = "0.1.0"

PACKAGE_NAME = "order-replica-sync"


@lru_cache
def get_version() -> str:
    """Get the package version from metadata or fallback."""
    try:
        from importlib.metadata import PackageNotFoundError, version

        return version(PACKAGE_NAME)
    except PackageNotFoundError:
        return _FALLBACK_VERSION


VERSION = get_version()
