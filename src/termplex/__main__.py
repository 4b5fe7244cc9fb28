"""Module entrypoint for `python -m termplex`."""

try:
    from .cli import run
except ImportError:
    from termplex.cli import run


if __name__ == "__main__":
    raise SystemExit(run())
