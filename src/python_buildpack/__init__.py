"""
python buildpack: provision a Python runtime and its dependencies as a cached build step.
"""

__version__ = "0.4.0"

__all__ = [
    "config",
    "catalog",
    "version",
    "package_manager",
    "metadata",
    "cache",
    "pipeline",
    "history",
    "report",
]
