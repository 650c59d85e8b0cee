"""
image-checker — package root

File: src/image_checker/__init__.py
Last updated: 2026-10-19

Purpose
- Package root for the image-checker demonstration extension: mock image-check
  providers that return canned findings after a simulated delay.

Import boundary rules
- No side effects at import time (no config loading, no logging init).
- Heavy submodules (CLI, host glue) are imported lazily by their callers.
"""

__version__ = "0.1.0"

__all__ = ["__version__"]
