"""Module entrypoint for ``python -m teamwork``."""

from __future__ import annotations

from teamwork.main import cli_entrypoint

if __name__ == "__main__":
    raise SystemExit(cli_entrypoint())
