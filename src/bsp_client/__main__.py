"""CLI entry point for bsp-client."""

import sys


def main() -> int:
    """Main entry point for bsp-client CLI."""
    from bsp_client.cli import run_cli

    return run_cli(sys.argv[1:])


if __name__ == "__main__":
    sys.exit(main())
