"""``python -m vidrelay`` runs the same entry point as the ``vidrelay`` script."""

from __future__ import annotations

from vidrelay.cli.app import cli

if __name__ == "__main__":
    cli()
