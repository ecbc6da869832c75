"""
hhinject package initialization.

This module defines the package version and exposes minimal public API.

The version is defined here to ensure consistency between packaging metadata and
runtime introspection (e.g. ``hhinject.__version__``). Update this value
whenever you bump the version in ``setup.py``.
"""

__all__ = ["__version__"]
__version__ = "1.0.0"
