"""Command-line interface for bsp-client.

A diagnostic front end: find a project's build server and run the
lifecycle handshake against it.
"""

from __future__ import annotations

import argparse
import asyncio
import json
from collections.abc import Sequence
from pathlib import Path

from rich.console import Console

from bsp_client import __version__
from bsp_client.config import ClientConfig, ConfigError, load_config
from bsp_client.discovery import discover
from bsp_client.engine import BuildClient
from bsp_client.errors import BSPClientError
from bsp_client.logging import setup_logging
from bsp_client.uri import path_to_uri

console = Console(stderr=True)
out = Console()


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog="bsp-client",
        description="Build Server Protocol client - discover and probe build servers",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="count",
        default=0,
        help="Increase verbosity (can be repeated)",
    )
    parser.add_argument(
        "-q", "--quiet",
        action="store_true",
        help="Suppress non-error output",
    )
    parser.add_argument(
        "--config",
        type=Path,
        help="Config file path (default: <root>/bsp-client.yaml)",
    )

    subparsers = parser.add_subparsers(dest="command", help="Command")

    discover_parser = subparsers.add_parser(
        "discover",
        help="Print the connection descriptor found under a project root",
    )
    discover_parser.add_argument("root", type=Path, help="Project root directory")

    probe_parser = subparsers.add_parser(
        "probe",
        help="Start the build server and run initialize/shutdown/exit",
    )
    probe_parser.add_argument("root", type=Path, help="Project root directory")
    probe_parser.add_argument(
        "--timeout",
        type=float,
        default=None,
        help="Seconds to wait for each reply (default: from config, else forever)",
    )

    return parser


def _apply_verbosity(config: ClientConfig, verbose: int, quiet: bool) -> None:
    if quiet:
        config.logging.verbose = 0
    elif verbose:
        config.logging.verbose = min(2 + verbose, 4)


def run_discover(root: Path) -> int:
    descriptor = discover(path_to_uri(root))
    if descriptor is None:
        console.print(f"[yellow]No BSP connection file under {root}[/yellow]")
        return 1
    out.print_json(json.dumps(descriptor.model_dump(by_alias=True, exclude_none=True)))
    return 0


async def run_probe(config: ClientConfig, root: Path, timeout: float | None, quiet: bool) -> int:
    """Discover, spawn and handshake with the build server for root.

    Returns:
        Exit code
    """
    root = root.resolve()
    root_uri = path_to_uri(root)
    descriptor = discover(root_uri)
    if descriptor is None:
        console.print(f"[red]Error: No BSP connection file under {root}[/red]")
        return 1

    if not quiet:
        console.print(f"[dim]Spawning {descriptor.name}: {' '.join(descriptor.argv)}[/dim]")

    try:
        client = await BuildClient.connect(descriptor, config, cwd=root)
    except OSError as e:
        console.print(f"[red]Error spawning build server: {e}[/red]")
        return 1

    try:
        response = await client.initialize(root_uri, timeout=timeout)
        if response.is_error:
            console.print(f"[red]build/initialize failed: {response.error}[/red]")
            return 1
        if not quiet:
            result = response.result if isinstance(response.result, dict) else {}
            console.print(f"[green]Initialized: {result.get('displayName', descriptor.name)}[/green]")
            out.print_json(json.dumps(response.result))

        await client.initialized(root_uri)
        await client.shutdown(timeout=timeout)
        await client.exit()

        notifications = await client.drain_notifications()
        server_requests = await client.drain_server_requests()
        if not quiet:
            for note in notifications:
                console.print(f"[dim]<- {note.method}[/dim]")
            console.print(
                f"[dim]{len(notifications)} notification(s), "
                f"{len(server_requests)} server request(s), "
                f"{client.unmatched_responses} unmatched response(s)[/dim]"
            )
    except BSPClientError as e:
        console.print(f"[red]Error: {e}[/red]")
        return 1
    finally:
        await client.stop()

    return 0


def run_cli(args: Sequence[str]) -> int:
    """Run the CLI with the given arguments."""
    parser = create_parser()
    parsed = parser.parse_args(args)

    if parsed.command is None:
        parser.print_help()
        return 1

    try:
        config = load_config(config_path=parsed.config, root=parsed.root)
    except ConfigError as e:
        console.print(f"[red]Error: {e}[/red]")
        return 1

    _apply_verbosity(config, parsed.verbose, parsed.quiet)
    setup_logging(config.logging)

    if parsed.command == "discover":
        try:
            return run_discover(parsed.root)
        except BSPClientError as e:
            console.print(f"[red]Error: {e}[/red]")
            return 1
    elif parsed.command == "probe":
        try:
            return asyncio.run(run_probe(config, parsed.root, parsed.timeout, parsed.quiet))
        except BSPClientError as e:
            console.print(f"[red]Error: {e}[/red]")
            return 1
    else:
        parser.print_help()
        return 1
