"""Main entry point dispatcher for metalprov commands."""

import sys


def main():
    """Dispatch to appropriate submodule based on command."""
    print("Use 'python -m metalprov.agent' to run the agent")
    print("Use 'python -m metalprov.cli' for the command-line interface")
    sys.exit(1)


if __name__ == "__main__":
    main()
