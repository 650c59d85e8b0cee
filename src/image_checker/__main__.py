"""Module entrypoint for ``python -m image_checker``."""

from __future__ import annotations

from image_checker.main import cli_entrypoint

if __name__ == "__main__":
    raise SystemExit(cli_entrypoint())
