"""Module entrypoint for `python -m steer.client`."""

from __future__ import annotations

from steer.client.client import cli


if __name__ == "__main__":
    cli()
