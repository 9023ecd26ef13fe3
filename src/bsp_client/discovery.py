"""Locate a project's BSP connection descriptor.

Build servers advertise how to launch them by writing a JSON file into
`<project root>/.bsp/`. When several are present the lexicographically
first one wins, so discovery gives the same answer on every filesystem.
"""

from __future__ import annotations

from pathlib import Path

from pydantic import ValidationError

from bsp_client.errors import DescriptorError
from bsp_client.logging import get_logger
from bsp_client.protocol.types import ConnectionDescriptor
from bsp_client.uri import uri_to_path

log = get_logger("discovery")

BSP_DIR = ".bsp"


def descriptor_candidates(root: str | Path) -> list[Path]:
    """Return `<root>/.bsp/*.json` files, sorted by name."""
    bsp_dir = uri_to_path(root) / BSP_DIR
    if not bsp_dir.is_dir():
        return []
    return sorted(p for p in bsp_dir.glob("*.json") if p.is_file())


def load_descriptor(path: Path) -> ConnectionDescriptor:
    """Parse one connection descriptor file.

    Raises:
        DescriptorError: If the file cannot be read or is not a valid descriptor.
    """
    try:
        content = path.read_bytes()
    except OSError as e:
        raise DescriptorError(f"Cannot read {path}: {e}") from e
    try:
        return ConnectionDescriptor.model_validate_json(content)
    except ValidationError as e:
        raise DescriptorError(f"Invalid connection descriptor {path}: {e}") from e


def discover(root_uri: str | Path) -> ConnectionDescriptor | None:
    """Find the connection descriptor for a project.

    Args:
        root_uri: Project root as a file:// URI or a path.

    Returns:
        The descriptor, or None when the project has none.
    """
    candidates = descriptor_candidates(root_uri)
    if not candidates:
        log.debug("No BSP connection file under %s", root_uri)
        return None
    if len(candidates) > 1:
        log.info(
            "Found %d BSP connection files, using %s",
            len(candidates),
            candidates[0].name,
        )
    return load_descriptor(candidates[0])
