# ggufscope/__init__.py
"""
ggufscope
=========

Pure-Python GGUF v3 metadata reader with incremental chunk loading, GPU-offload
ordering of the tensor directory, and per-token KV-cache estimates.
"""
from __future__ import annotations

from importlib.metadata import version as _pkg_version

__all__ = ["__version__"]

try:
    # Read version dynamically from installed package metadata
    __version__: str = _pkg_version("ggufscope")
except Exception:  # pragma: no cover - fallback for development environments
    __version__ = "0.0.0-dev"
