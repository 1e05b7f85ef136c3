"""Module entrypoint for `python -m tilecp`."""

from __future__ import annotations

from tilecp.cli import main

if __name__ == "__main__":
    raise SystemExit(main())
