"""Module entrypoint for `python -m termhub`."""

from termhub.cli import run

if __name__ == "__main__":
    raise SystemExit(run())
