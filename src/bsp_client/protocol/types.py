"""BSP lifecycle payload types."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class BspModel(BaseModel):
    """Base model for BSP types with populate_by_name enabled."""

    model_config = ConfigDict(populate_by_name=True)


class BuildClientCapabilities(BspModel):
    """Capabilities advertised in build/initialize."""

    language_ids: list[str] = Field(default_factory=list, alias="languageIds")


class InitializeBuildParams(BspModel):
    """Params of the build/initialize request."""

    display_name: str = Field(alias="displayName")
    version: str
    bsp_version: str = Field(alias="bspVersion")
    root_uri: str = Field(alias="rootUri")
    capabilities: BuildClientCapabilities
    data: dict[str, Any] = Field(default_factory=dict)


class TextDocumentIdentifier(BspModel):
    uri: str


class TextDocumentItem(BspModel):
    """A document with its content, as sent in document notifications."""

    uri: str
    language_id: str = Field(alias="languageId")
    version: int
    text: str


class ConnectionDescriptor(BspModel):
    """Contents of a `.bsp/<name>.json` connection file.

    Unknown fields are kept so callers can read server-specific extras.
    """

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    name: str
    argv: list[str] = Field(min_length=1)
    version: str | None = None
    bsp_version: str | None = Field(default=None, alias="bspVersion")
    languages: list[str] = Field(default_factory=list)
