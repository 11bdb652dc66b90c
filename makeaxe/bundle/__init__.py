"""Axe bundle building.

Modules:
    metadata: Descriptor model, loading and validation
    package: Bundle and checksum creation
    utils: File system and source-control helpers
"""

from __future__ import annotations

from makeaxe.bundle.metadata import (
    AxeAuthor,
    AxeManifest,
    AxeMetadata,
    load_metadata,
    migrate_legacy_author,
    read_embedded_metadata,
)
from makeaxe.bundle.package import BuildOptions, PackageResult, package, write_checksum

__all__ = [
    "AxeAuthor",
    "AxeManifest",
    "AxeMetadata",
    "BuildOptions",
    "PackageResult",
    "load_metadata",
    "migrate_legacy_author",
    "package",
    "read_embedded_metadata",
    "write_checksum",
]
