"""
Skillward - Skill package manager CLI

Installs, updates, and safely uninstalls self-contained skill bundles
rooted under ``.claude/skills``, with a verified deletion engine and an
append-only audit trail.
"""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("skillward")
except PackageNotFoundError:
    __version__ = "0.4.0"

__all__ = [
    "__version__",
]
