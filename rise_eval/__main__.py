"""CLI entry point.

Usage:
    python -m rise_eval <command> [OPTIONS]

Commands:
    metrics       List the evaluation metric catalog
    progress      Show evaluation progress for a worklist
    refresh-url   Request a fresh URL for an image asset
"""

from rise_eval.cli import cli


def main() -> None:
    """Entry point for ``python -m rise_eval``."""
    cli()


if __name__ == "__main__":
    main()
