"""CLI entry point."""

from metalprov.cli.main import main


if __name__ == "__main__":
    main()
