"""Axe bundle creation.

A bundle (``<pluginName>-<version>.axe``) is a ZIP archive holding every
file listed in the resolver's manifest under ``content/`` plus an
enriched copy of ``content/metadata.json``. An MD5 sidecar
(``<pluginName>-<version>.md5``) is written next to it.
"""

from __future__ import annotations

import os
import time
import zipfile
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Union

import structlog

from makeaxe.bundle.metadata import (
    METADATA_PATH,
    AxeManifest,
    AxeMetadata,
    content_path,
    load_metadata,
)
from makeaxe.bundle.utils import exists_file, git_revision, md5sum
from makeaxe.utils.exceptions import BundleIOError

logger = structlog.get_logger(__name__)

BUNDLE_VERSION = "2"
AXE_SUFFIX = ".axe"
CHECKSUM_SUFFIX = ".md5"


@dataclass(frozen=True)
class BuildOptions:
    """Switches for a packaging run.

    Attributes:
        release: Skip embedding the source-control revision
        force: Rebuild even if a bundle of the same name and version exists
    """

    release: bool = False
    force: bool = False


@dataclass
class PackageResult:
    """Outcome of :func:`package`.

    ``metadata`` is the enriched descriptor written into the bundle, or the
    descriptor as loaded when the build was skipped.
    """

    metadata: AxeMetadata
    archive_path: Path
    checksum_path: Optional[Path] = None
    skipped: bool = False


def checksum_path_for(archive_path: Union[str, Path]) -> Path:
    """Sidecar path matching a bundle path (``foo-1.0.axe`` -> ``foo-1.0.md5``)."""
    return Path(archive_path).with_suffix(CHECKSUM_SUFFIX)


def resolve_files(manifest: AxeManifest) -> List[str]:
    """List the bundle paths of every manifest file, in declaration order.

    A path declared more than once is kept at its first position only.
    Every copy would be read from the same source file, so the archived
    bytes are those a later copy would have written.
    """
    files: List[str] = []
    seen = set()
    for entry in manifest.entries():
        arcname = content_path(entry)
        if arcname in seen:
            logger.warning("Manifest lists a file more than once, archiving it once", path=arcname)
            continue
        seen.add(arcname)
        files.append(arcname)
    return files


def enrich_metadata(metadata: AxeMetadata, source_dir: Union[str, Path], release: bool) -> AxeMetadata:
    """Attach the build-time fields to a descriptor.

    Sets the packaging timestamp and bundle format version. Outside release
    mode the short git revision of ``source_dir`` is attached as well.
    """
    update = {
        "timestamp": int(time.time()),
        "bundle_version": BUNDLE_VERSION,
        "revision": None,
        "axe_id": None,
    }
    if not release:
        revision = git_revision(source_dir)
        if revision:
            update["revision"] = revision
        else:
            logger.warning(
                "Cannot get revision hash",
                plugin=metadata.plugin_name,
                version=metadata.version,
            )
    return metadata.model_copy(update=update)


def write_checksum(
        archive_path: Union[str, Path],
        checksum_path: Optional[Union[str, Path]] = None
) -> Optional[Path]:
    """Write the MD5 sidecar for a bundle.

    The sidecar holds a single ``<md5>\\t<bundle file name>`` line. Failure
    is not fatal to the bundle: it is logged and None is returned.

    Returns:
        Path of the written sidecar, or None if it could not be written
    """
    archive_path = Path(archive_path)
    checksum_path = Path(checksum_path) if checksum_path else checksum_path_for(archive_path)
    try:
        digest = md5sum(archive_path)
        checksum_path.write_text(f"{digest}\t{archive_path.name}", encoding="utf-8")
    except OSError as e:
        logger.warning("Could not create MD5 hash file", archive=archive_path.name, error=str(e))
        return None
    return checksum_path


def _remove_existing(path: Path) -> None:
    try:
        os.remove(path)
    except FileNotFoundError:
        pass
    except OSError as e:
        raise BundleIOError(f"Cannot remove existing bundle {path}: {e}", path=str(path)) from e


def _discard_partial(path: Path) -> None:
    try:
        os.remove(path)
    except FileNotFoundError:
        pass
    except OSError as e:
        logger.warning("Could not remove partially written bundle", path=str(path), error=str(e))


def _zip_info(arcname: str, timestamp: int) -> zipfile.ZipInfo:
    zi = zipfile.ZipInfo(arcname, date_time=time.gmtime(timestamp)[:6])
    zi.compress_type = zipfile.ZIP_DEFLATED
    zi.external_attr = (0o100644 & 0xFFFF) << 16
    return zi


def _write_archive(source_dir: Path, archive_path: Path, files: List[str], metadata: AxeMetadata) -> None:
    timestamp = metadata.timestamp or int(time.time())
    try:
        with zipfile.ZipFile(archive_path, "w", zipfile.ZIP_DEFLATED) as zf:
            for arcname in files:
                file_path = source_dir.joinpath(*arcname.split("/"))
                try:
                    body = file_path.read_bytes()
                except FileNotFoundError as e:
                    raise BundleIOError(
                        f"Manifest file {arcname} not found in {source_dir}", path=str(file_path)
                    ) from e
                except OSError as e:
                    raise BundleIOError(
                        f"Cannot read manifest file {arcname} in {source_dir}: {e}", path=str(file_path)
                    ) from e
                zf.writestr(_zip_info(arcname, timestamp), body)
            zf.writestr(_zip_info(METADATA_PATH, timestamp), metadata.to_json())
    except BundleIOError:
        _discard_partial(archive_path)
        raise
    except OSError as e:
        _discard_partial(archive_path)
        raise BundleIOError(f"Cannot write bundle {archive_path}: {e}", path=str(archive_path)) from e


def package(
        source_dir: Union[str, Path],
        dest_dir: Union[str, Path],
        release: bool = False,
        force: bool = False
) -> PackageResult:
    """Build the axe bundle of a resolver source directory.

    Args:
        source_dir: Resolver directory containing ``content/metadata.json``
        dest_dir: Directory the bundle and its checksum are written to
        release: Skip embedding the git revision in the metadata
        force: Overwrite a bundle of the same name and version

    Returns:
        The build result. If a bundle with the same name already exists
        (or its existence cannot be determined) and ``force`` is not set,
        nothing is written and the result is marked as skipped.

    Raises:
        MetadataNotFoundError: If the metadata file is missing
        MalformedMetadataError: If the metadata is invalid
        BundleIOError: If a manifest file cannot be read or the bundle cannot be written
    """
    source_dir = Path(source_dir)
    dest_dir = Path(dest_dir)

    metadata = load_metadata(source_dir)
    archive_path = dest_dir / f"{metadata.bundle_stem}{AXE_SUFFIX}"

    if not force:
        try:
            exists = exists_file(archive_path)
        except OSError:
            exists = True
        if exists:
            logger.info("Bundle already exists, skipping", archive=archive_path.name)
            checksum_path: Optional[Path] = checksum_path_for(archive_path)
            try:
                if not exists_file(checksum_path):
                    checksum_path = None
            except OSError:
                checksum_path = None
            return PackageResult(
                metadata=metadata,
                archive_path=archive_path,
                checksum_path=checksum_path,
                skipped=True,
            )

    metadata = enrich_metadata(metadata, source_dir, release)
    files = resolve_files(metadata.manifest)

    _remove_existing(archive_path)
    _write_archive(source_dir, archive_path, files, metadata)

    checksum_path = write_checksum(archive_path)
    return PackageResult(metadata=metadata, archive_path=archive_path, checksum_path=checksum_path)
