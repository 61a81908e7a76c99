"""Entry point for `python -m appbridge`."""

from __future__ import annotations

from appbridge.cli import app

if __name__ == "__main__":
    app()
