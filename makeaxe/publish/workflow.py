"""Publishing axes to a Relaxe catalog.

Each resolver directory is built into the staging (cache) directory in
release mode, checked against the catalog for an existing record of the
same plugin name and version, given a fresh UUID, renamed to
``<pluginName>-<axeId>.axe`` together with its checksum sidecar, and
finally recorded in the catalog.

The duplicate check and the insert are two separate catalog calls, so two
publishers racing on the same plugin and version can both get past the
check. makeaxe is a single-operator tool and accepts that.
"""

from __future__ import annotations

import enum
import os
import uuid
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, List, Optional, Union

import structlog

from makeaxe.bundle.metadata import AxeMetadata, read_embedded_metadata
from makeaxe.bundle.package import (
    AXE_SUFFIX,
    CHECKSUM_SUFFIX,
    checksum_path_for,
    package,
    write_checksum,
)
from makeaxe.publish.catalog import Catalog
from makeaxe.utils.exceptions import AxeError, CatalogError

logger = structlog.get_logger(__name__)


class RenameStatus(str, enum.Enum):
    """Result of moving a bundle and its sidecar to their published names."""

    COMMITTED = "committed"  # Both files renamed
    ABORTED = "aborted"  # Bundle rename failed, nothing was changed
    ROLLED_BACK = "rolled_back"  # Sidecar rename failed, both files deleted
    UNRECOVERABLE = "unrecoverable"  # Sidecar rename failed and cleanup failed too


@dataclass(frozen=True)
class RenameOutcome:
    status: RenameStatus
    error: Optional[OSError] = None
    leftovers: List[Path] = field(default_factory=list)


def _rename_no_clobber(src: Path, dst: Path) -> None:
    if os.path.lexists(dst):
        raise FileExistsError(f"Refusing to overwrite {dst}")
    os.rename(src, dst)


def commit_rename(
        archive_src: Union[str, Path],
        archive_dst: Union[str, Path],
        sidecar_src: Union[str, Path],
        sidecar_dst: Union[str, Path]
) -> RenameOutcome:
    """Rename a bundle and its checksum sidecar as one unit.

    The bundle is renamed first. If the sidecar rename then fails, the
    renamed bundle and the original sidecar are deleted so that no
    half-published pair is left behind. Existing files at either
    destination are never overwritten.

    Returns:
        The tagged outcome; ``leftovers`` lists files that could not be
        deleted when the outcome is UNRECOVERABLE
    """
    archive_src, archive_dst = Path(archive_src), Path(archive_dst)
    sidecar_src, sidecar_dst = Path(sidecar_src), Path(sidecar_dst)

    try:
        _rename_no_clobber(archive_src, archive_dst)
    except OSError as e:
        return RenameOutcome(RenameStatus.ABORTED, error=e)

    try:
        _rename_no_clobber(sidecar_src, sidecar_dst)
    except OSError as e:
        leftovers: List[Path] = []
        for path in (archive_dst, sidecar_src):
            try:
                os.remove(path)
            except FileNotFoundError:
                pass
            except OSError as cleanup_error:
                logger.warning(
                    "Could not clean up file after failed rename",
                    path=str(path),
                    error=str(cleanup_error),
                )
                leftovers.append(path)
        status = RenameStatus.UNRECOVERABLE if leftovers else RenameStatus.ROLLED_BACK
        return RenameOutcome(status, error=e, leftovers=leftovers)

    return RenameOutcome(RenameStatus.COMMITTED)


class PublishStatus(str, enum.Enum):
    PUBLISHED = "published"
    SKIPPED_DUPLICATE = "skipped_duplicate"
    FAILED = "failed"


@dataclass
class PublishOutcome:
    """What happened to one resolver directory during a publish run.

    ``inserted`` is False for a PUBLISHED outcome whose catalog insert
    failed; the renamed bundle is kept in that case.
    """

    source_dir: Path
    status: PublishStatus
    metadata: Optional[AxeMetadata] = None
    archive_path: Optional[Path] = None
    checksum_path: Optional[Path] = None
    inserted: bool = False
    reason: Optional[str] = None


class Publisher:
    """Builds resolver directories and publishes them to a Relaxe catalog.

    Attributes:
        catalog: Catalog receiving the published records
        cache_dir: Staging directory the bundles are built into
    """

    def __init__(self, catalog: Catalog, cache_dir: Union[str, Path]) -> None:
        self.catalog = catalog
        self.cache_dir = Path(cache_dir)

    def publish_all(self, source_dirs: Iterable[Union[str, Path]]) -> List[PublishOutcome]:
        """Publish each directory in turn; a failed directory never stops the run."""
        return [self.publish(source_dir) for source_dir in source_dirs]

    def _failed(self, source_dir: Path, message: str, error: Exception, **kw) -> PublishOutcome:
        logger.warning(message, directory=str(source_dir), error=str(error))
        return PublishOutcome(source_dir=source_dir, status=PublishStatus.FAILED, reason=str(error), **kw)

    def publish(self, source_dir: Union[str, Path]) -> PublishOutcome:
        """Build and publish one resolver directory.

        Args:
            source_dir: Resolver directory containing ``content/metadata.json``

        Returns:
            The outcome for this directory
        """
        source_dir = Path(source_dir)

        try:
            self.cache_dir.mkdir(parents=True, exist_ok=True)
            result = package(source_dir, self.cache_dir, release=True, force=False)
        except (AxeError, OSError) as e:
            return self._failed(source_dir, "Could not build axe for directory", e)

        metadata = result.metadata
        checksum_path = result.checksum_path
        if result.skipped:
            # A staged bundle left by an earlier run; publish what it contains.
            try:
                metadata = read_embedded_metadata(result.archive_path)
            except AxeError as e:
                return self._failed(source_dir, "Could not read staged axe", e)
            if checksum_path is None:
                checksum_path = write_checksum(result.archive_path)

        try:
            count = self.catalog.count_by_name_and_version(metadata.plugin_name, metadata.version)
        except CatalogError as e:
            return self._failed(source_dir, "Relaxe database error", e, metadata=metadata)

        if count != 0:
            logger.warning(
                "Axe is already published on Relaxe, skipping",
                axe=metadata.bundle_stem,
                directory=str(source_dir),
            )
            return PublishOutcome(
                source_dir=source_dir,
                status=PublishStatus.SKIPPED_DUPLICATE,
                metadata=metadata,
                archive_path=result.archive_path,
                checksum_path=checksum_path,
                reason=f"{metadata.bundle_stem} is already published",
            )

        metadata = metadata.model_copy(update={"axe_id": str(uuid.uuid4())})
        published_stem = f"{metadata.plugin_name}-{metadata.axe_id}"
        archive_dst = self.cache_dir / f"{published_stem}{AXE_SUFFIX}"
        sidecar_dst = self.cache_dir / f"{published_stem}{CHECKSUM_SUFFIX}"

        outcome = commit_rename(
            result.archive_path,
            archive_dst,
            checksum_path or checksum_path_for(result.archive_path),
            sidecar_dst,
        )
        if outcome.status is RenameStatus.ABORTED:
            return self._failed(source_dir, "Could not rename axe", outcome.error, metadata=metadata)
        if outcome.status is RenameStatus.ROLLED_BACK:
            return self._failed(
                source_dir, "Could not rename MD5 hash file, axe removed", outcome.error, metadata=metadata
            )
        if outcome.status is RenameStatus.UNRECOVERABLE:
            logger.warning(
                "Staging directory left inconsistent, remove these files by hand",
                files=[str(p) for p in outcome.leftovers],
            )
            return self._failed(
                source_dir, "Could not rename MD5 hash file", outcome.error, metadata=metadata
            )

        # The sidecar must name the renamed bundle.
        write_checksum(archive_dst, sidecar_dst)
        logger.info("Created axe", path=str(archive_dst))

        published = PublishOutcome(
            source_dir=source_dir,
            status=PublishStatus.PUBLISHED,
            metadata=metadata,
            archive_path=archive_dst,
            checksum_path=sidecar_dst,
        )

        logger.info("Pushing to Relaxe", axe=metadata.bundle_stem, axe_id=metadata.axe_id)
        try:
            self.catalog.insert(metadata.to_dict())
            published.inserted = True
        except CatalogError as e:
            logger.warning(
                "Could not record axe in Relaxe, the bundle is kept",
                axe=metadata.bundle_stem,
                path=str(archive_dst),
                error=str(e),
            )
            published.reason = str(e)

        return published
