"""Axe metadata model, loading and validation.

Every resolver source directory carries a ``content/metadata.json``
descriptor naming the plugin, its version and the manifest of files that
make up the bundle. This module loads that file into an immutable
:class:`AxeMetadata`, validates it, and normalizes the deprecated
single-author fields.
"""

from __future__ import annotations

import json
import posixpath
import re
import zipfile
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import pydantic
import structlog
from pydantic import ConfigDict, Field, field_validator

from makeaxe.utils.exceptions import BundleIOError, MalformedMetadataError, MetadataNotFoundError

logger = structlog.get_logger(__name__)

CONTENT_DIR = "content"
METADATA_FILE = "metadata.json"
METADATA_PATH = f"{CONTENT_DIR}/{METADATA_FILE}"


def content_path(entry: str) -> str:
    """Resolve a manifest entry to its path inside the bundle.

    Args:
        entry: Path as written in the manifest, relative to ``content/``

    Returns:
        Normalized POSIX path such as ``content/scripts/util.js``

    Raises:
        ValueError: If the entry is absolute or escapes the content root
    """
    entry = entry.replace("\\", "/")
    if entry.startswith("/") or re.match(r"^[A-Za-z]:", entry):
        raise ValueError(f"Manifest entry '{entry}' must be a relative path")
    resolved = posixpath.normpath(posixpath.join(CONTENT_DIR, entry))
    if not resolved.startswith(CONTENT_DIR + "/"):
        raise ValueError(f"Manifest entry '{entry}' points outside the {CONTENT_DIR} directory")
    if resolved == METADATA_PATH:
        raise ValueError(f"Manifest entry '{entry}' collides with the bundle metadata file")
    return resolved


class AxeAuthor(pydantic.BaseModel):
    model_config = ConfigDict(frozen=True, extra="allow")

    name: str = ""
    email: str = ""


class AxeManifest(pydantic.BaseModel):
    """The list of files that belong in a bundle, relative to ``content/``."""

    model_config = ConfigDict(frozen=True, extra="allow")

    main: str
    scripts: List[str] = Field(default_factory=list)
    icon: str
    resources: List[str] = Field(default_factory=list)

    @field_validator("scripts", "resources", mode="before")
    @classmethod
    def validate_optional_list(cls, v: Any) -> Any:
        return [] if v is None else v

    @field_validator("main", "icon")
    @classmethod
    def validate_required_entry(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("must be a non-empty path")
        content_path(v)
        return v

    @field_validator("scripts", "resources")
    @classmethod
    def validate_entries(cls, v: List[str]) -> List[str]:
        for entry in v:
            if not entry.strip():
                raise ValueError("entries must be non-empty paths")
            content_path(entry)
        return v

    def entries(self) -> List[str]:
        """Manifest entries in declaration order: main, scripts, icon, resources."""
        return [self.main, *self.scripts, self.icon, *self.resources]


class AxeMetadata(pydantic.BaseModel):
    """Descriptor of a resolver bundle.

    Instances are frozen. Build-time fields (``timestamp``, ``revision``,
    ``bundle_version``) and the publish-time ``axe_id`` are attached by
    creating a copy with :meth:`pydantic.BaseModel.model_copy`. Keys not
    modelled here (``name``, ``website``, ``description``...) are kept
    as-is.
    """

    model_config = ConfigDict(frozen=True, extra="allow", populate_by_name=True)

    plugin_name: str = Field(alias="pluginName")
    version: str
    manifest: AxeManifest
    author: Optional[str] = None
    email: Optional[str] = None
    authors: List[AxeAuthor] = Field(default_factory=list)
    timestamp: Optional[int] = None
    revision: Optional[str] = None
    bundle_version: Optional[str] = Field(default=None, alias="bundleVersion")
    axe_id: Optional[str] = Field(default=None, alias="axeId")

    @field_validator("plugin_name")
    @classmethod
    def validate_plugin_name(cls, v: str) -> str:
        if not re.fullmatch(r"[A-Za-z0-9][A-Za-z0-9_.-]*", v):
            raise ValueError(
                "Plugin name must be non-empty, start with a letter or digit, and contain only "
                "letters, digits, dots, underscores and hyphens"
            )
        return v

    @field_validator("version")
    @classmethod
    def validate_version(cls, v: str) -> str:
        if not re.fullmatch(r"[A-Za-z0-9][A-Za-z0-9_.+-]*", v):
            raise ValueError(
                "Version must be non-empty, start with a letter or digit, and contain only "
                "letters, digits, dots, underscores, plus signs and hyphens"
            )
        return v

    @field_validator("authors", mode="before")
    @classmethod
    def validate_authors(cls, v: Any) -> Any:
        return [] if v is None else v

    @property
    def bundle_stem(self) -> str:
        """File name stem of the staged bundle, ``<pluginName>-<version>``."""
        return f"{self.plugin_name}-{self.version}"

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True, mode="json")

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), indent=2)


def parse_metadata(data: Union[str, bytes], origin: str = METADATA_PATH) -> AxeMetadata:
    """Parse and validate raw descriptor JSON.

    Args:
        data: JSON text
        origin: Where the data came from, used in error messages

    Raises:
        MalformedMetadataError: If the data is not a valid descriptor
    """
    try:
        obj = json.loads(data)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise MalformedMetadataError(f"Bad metadata file in {origin}: {e}", path=origin) from e

    if not isinstance(obj, dict):
        raise MalformedMetadataError(
            f"Bad metadata file in {origin}: expected a JSON object", path=origin
        )

    try:
        return AxeMetadata.model_validate(obj)
    except pydantic.ValidationError as e:
        raise MalformedMetadataError(
            f"Bad metadata file in {origin}: {e}",
            path=origin,
            details={"validation_errors": e.errors(include_url=False)},
        ) from e


def migrate_legacy_author(metadata: AxeMetadata) -> AxeMetadata:
    """Fold the deprecated ``author``/``email`` fields into ``authors``.

    The returned descriptor gets a one-element ``authors`` list only when
    none was supplied; the legacy fields themselves are left in place.
    """
    if not (metadata.author or metadata.email):
        return metadata

    logger.warning(
        "author and email fields are deprecated in metadata.json, replace them with an authors array",
        plugin=metadata.plugin_name,
    )
    if metadata.authors:
        return metadata

    author = AxeAuthor(name=metadata.author or "", email=metadata.email or "")
    return metadata.model_copy(update={"authors": [author]})


def load_metadata(source_dir: Union[str, Path]) -> AxeMetadata:
    """Load the descriptor of a resolver source directory.

    Args:
        source_dir: Resolver directory containing ``content/metadata.json``

    Returns:
        Validated descriptor with legacy author fields migrated

    Raises:
        MetadataNotFoundError: If the metadata file is missing or unreadable
        MalformedMetadataError: If the metadata file is not a valid descriptor
    """
    source_dir = Path(source_dir)
    metadata_path = source_dir / CONTENT_DIR / METADATA_FILE

    try:
        raw = metadata_path.read_bytes()
    except OSError as e:
        raise MetadataNotFoundError(
            f"Cannot find metadata file in {source_dir}. "
            f"Make sure {METADATA_PATH} exists and is readable.",
            path=str(metadata_path),
        ) from e

    return migrate_legacy_author(parse_metadata(raw, origin=str(metadata_path)))


def read_embedded_metadata(archive_path: Union[str, Path]) -> AxeMetadata:
    """Read the descriptor stored inside a built bundle.

    Raises:
        BundleIOError: If the archive cannot be opened
        MalformedMetadataError: If the archive has no valid descriptor
    """
    archive_path = Path(archive_path)
    try:
        with zipfile.ZipFile(archive_path, "r") as zf:
            data = zf.read(METADATA_PATH)
    except KeyError as e:
        raise MalformedMetadataError(
            f"No {METADATA_PATH} in bundle {archive_path}", path=str(archive_path)
        ) from e
    except (zipfile.BadZipFile, OSError) as e:
        raise BundleIOError(f"Cannot read bundle {archive_path}: {e}", path=str(archive_path)) from e

    return parse_metadata(data, origin=f"{archive_path}:{METADATA_PATH}")
