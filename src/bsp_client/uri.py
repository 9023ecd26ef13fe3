"""Conversion between file:// URIs and filesystem paths."""

from __future__ import annotations

from pathlib import Path
from urllib.parse import unquote, urlparse
from urllib.request import url2pathname


def uri_to_path(uri: str | Path) -> Path:
    """Return the filesystem path for a file:// URI.

    Plain paths are accepted too and returned unchanged.
    """
    if isinstance(uri, Path):
        return uri
    parsed = urlparse(uri)
    if parsed.scheme != "file":
        return Path(uri)
    path = url2pathname(unquote(parsed.path))
    if parsed.netloc and parsed.netloc != "localhost":
        # UNC share
        path = f"//{parsed.netloc}{path}"
    return Path(path)


def path_to_uri(path: str | Path) -> str:
    """Return an absolute file:// URI for path."""
    if isinstance(path, str) and path.startswith("file://"):
        return path
    return Path(path).resolve().as_uri()
