"""Allow ``python -m metascope``."""

from metascope.cli import cli

if __name__ == "__main__":
    cli()
