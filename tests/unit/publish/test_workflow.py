"""Unit tests for the Relaxe publish workflow."""

import hashlib
import os
import uuid
from unittest import mock

import pytest
from structlog.testing import capture_logs

from makeaxe.bundle.metadata import read_embedded_metadata
from makeaxe.publish.workflow import (
    Publisher,
    PublishStatus,
    RenameStatus,
    commit_rename,
)

FIXED_ID = uuid.UUID("6f1c2b9e-3d4a-4f5b-8c7d-0e1f2a3b4c5d")


@pytest.fixture
def cache_dir(tmp_path):
    return tmp_path / "cache"


@pytest.fixture
def publisher(catalog, cache_dir):
    return Publisher(catalog, cache_dir)


@pytest.fixture
def staged_pair(tmp_path):
    archive = tmp_path / "foo-1.0.axe"
    sidecar = tmp_path / "foo-1.0.md5"
    archive.write_bytes(b"archive")
    sidecar.write_text("sum\tfoo-1.0.axe")
    return archive, sidecar


class TestCommitRename:
    """Tests for the two-phase rename of a bundle and its sidecar."""

    def test_committed(self, tmp_path, staged_pair):
        archive, sidecar = staged_pair
        new_archive, new_sidecar = tmp_path / "foo-id.axe", tmp_path / "foo-id.md5"

        outcome = commit_rename(archive, new_archive, sidecar, new_sidecar)

        assert outcome.status is RenameStatus.COMMITTED
        assert outcome.error is None
        assert new_archive.read_bytes() == b"archive"
        assert new_sidecar.is_file()
        assert not archive.exists()
        assert not sidecar.exists()

    def test_aborted_when_archive_rename_fails(self, tmp_path, staged_pair):
        archive, sidecar = staged_pair
        archive.unlink()

        outcome = commit_rename(archive, tmp_path / "foo-id.axe", sidecar, tmp_path / "foo-id.md5")

        assert outcome.status is RenameStatus.ABORTED
        assert isinstance(outcome.error, FileNotFoundError)
        assert sidecar.is_file()
        assert not (tmp_path / "foo-id.md5").exists()

    def test_never_overwrites_existing_archive(self, tmp_path, staged_pair):
        archive, sidecar = staged_pair
        taken = tmp_path / "foo-id.axe"
        taken.write_bytes(b"published")

        outcome = commit_rename(archive, taken, sidecar, tmp_path / "foo-id.md5")

        assert outcome.status is RenameStatus.ABORTED
        assert isinstance(outcome.error, FileExistsError)
        assert taken.read_bytes() == b"published"
        assert archive.is_file()

    def test_rolled_back_when_sidecar_rename_fails(self, tmp_path, staged_pair):
        """Test that a failed sidecar rename deletes the renamed bundle and the old sidecar."""
        archive, sidecar = staged_pair
        new_archive, new_sidecar = tmp_path / "foo-id.axe", tmp_path / "foo-id.md5"
        new_sidecar.write_text("someone else's sidecar")

        outcome = commit_rename(archive, new_archive, sidecar, new_sidecar)

        assert outcome.status is RenameStatus.ROLLED_BACK
        assert outcome.leftovers == []
        assert not archive.exists()
        assert not new_archive.exists()
        assert not sidecar.exists()
        assert new_sidecar.read_text() == "someone else's sidecar"

    def test_rolled_back_when_sidecar_is_missing(self, tmp_path, staged_pair):
        archive, sidecar = staged_pair
        sidecar.unlink()

        outcome = commit_rename(archive, tmp_path / "foo-id.axe", sidecar, tmp_path / "foo-id.md5")

        assert outcome.status is RenameStatus.ROLLED_BACK
        assert not (tmp_path / "foo-id.axe").exists()

    def test_unrecoverable_when_cleanup_fails(self, tmp_path, staged_pair):
        archive, sidecar = staged_pair
        new_archive, new_sidecar = tmp_path / "foo-id.axe", tmp_path / "foo-id.md5"
        new_sidecar.write_text("taken")
        real_remove = os.remove

        def remove(path):
            if str(path) == str(new_archive):
                raise PermissionError(13, "denied", str(path))
            real_remove(path)

        with mock.patch("makeaxe.publish.workflow.os.remove", side_effect=remove):
            with capture_logs() as logs:
                outcome = commit_rename(archive, new_archive, sidecar, new_sidecar)

        assert outcome.status is RenameStatus.UNRECOVERABLE
        assert outcome.leftovers == [new_archive]
        assert new_archive.is_file()
        assert not sidecar.exists()
        assert any(log.get("path") == str(new_archive) for log in logs)


class TestPublisher:
    """Tests for publishing resolver directories."""

    def test_publish(self, publisher, catalog, cache_dir, make_resolver):
        outcome = publisher.publish(make_resolver())

        assert outcome.status is PublishStatus.PUBLISHED
        assert outcome.inserted
        axe_id = outcome.metadata.axe_id
        assert uuid.UUID(axe_id).version == 4

        assert outcome.archive_path == cache_dir / f"foo-{axe_id}.axe"
        assert outcome.checksum_path == cache_dir / f"foo-{axe_id}.md5"
        assert outcome.archive_path.is_file()
        assert axe_id in outcome.archive_path.name
        assert "1.0" not in outcome.archive_path.name
        assert not (cache_dir / "foo-1.0.axe").exists()
        assert not (cache_dir / "foo-1.0.md5").exists()

        digest, name = outcome.checksum_path.read_text().split("\t")
        assert name == outcome.archive_path.name
        assert digest == hashlib.md5(outcome.archive_path.read_bytes()).hexdigest()

        assert len(catalog.records) == 1
        record = catalog.records[0]
        assert record["pluginName"] == "foo"
        assert record["version"] == "1.0"
        assert record["axeId"] == axe_id
        assert record["bundleVersion"] == "2"
        assert "timestamp" in record
        assert "revision" not in record

    def test_publish_builds_in_release_mode(self, publisher, make_resolver):
        with mock.patch("makeaxe.bundle.package.git_revision") as git_revision:
            outcome = publisher.publish(make_resolver())

        git_revision.assert_not_called()
        assert outcome.metadata.revision is None

    def test_duplicate_is_skipped(self, publisher, catalog, cache_dir, make_resolver):
        """Test that an already published name and version is neither renamed nor inserted."""
        catalog.records.append({"pluginName": "foo", "version": "1.0", "axeId": "existing"})

        with mock.patch("makeaxe.publish.workflow.commit_rename") as rename:
            with capture_logs() as logs:
                outcome = publisher.publish(make_resolver())

        rename.assert_not_called()
        assert outcome.status is PublishStatus.SKIPPED_DUPLICATE
        assert len(catalog.records) == 1
        assert sorted(p.name for p in cache_dir.iterdir()) == ["foo-1.0.axe", "foo-1.0.md5"]
        assert any(log["log_level"] == "warning" and "already published" in log["event"] for log in logs)

    def test_other_version_is_not_a_duplicate(self, publisher, catalog, make_resolver):
        catalog.records.append({"pluginName": "foo", "version": "0.9"})

        outcome = publisher.publish(make_resolver())

        assert outcome.status is PublishStatus.PUBLISHED
        assert len(catalog.records) == 2

    def test_catalog_query_failure_skips_directory(self, publisher, catalog, make_resolver):
        catalog.fail_count = True

        outcome = publisher.publish(make_resolver())

        assert outcome.status is PublishStatus.FAILED
        assert catalog.records == []

    def test_insert_failure_keeps_bundle(self, publisher, catalog, make_resolver):
        """Test that a failed insert is logged without undoing the rename."""
        catalog.fail_insert = True

        with capture_logs() as logs:
            outcome = publisher.publish(make_resolver())

        assert outcome.status is PublishStatus.PUBLISHED
        assert not outcome.inserted
        assert outcome.archive_path.is_file()
        assert outcome.checksum_path.is_file()
        assert any("Could not record axe" in log["event"] for log in logs)

    def test_build_failure(self, publisher, catalog, make_resolver):
        source = make_resolver()
        (source / "content" / "icon.png").unlink()

        outcome = publisher.publish(source)

        assert outcome.status is PublishStatus.FAILED
        assert catalog.records == []

    def test_sidecar_rename_failure_rolls_back(self, publisher, catalog, cache_dir, make_resolver):
        cache_dir.mkdir()
        (cache_dir / f"foo-{FIXED_ID}.md5").write_text("taken")

        with mock.patch("makeaxe.publish.workflow.uuid.uuid4", return_value=FIXED_ID):
            outcome = publisher.publish(make_resolver())

        assert outcome.status is PublishStatus.FAILED
        assert catalog.records == []
        assert sorted(p.name for p in cache_dir.iterdir()) == [f"foo-{FIXED_ID}.md5"]

    def test_stale_staged_bundle_is_published(self, publisher, catalog, cache_dir, make_resolver):
        """Test that a bundle left in the cache by an earlier run is published as built."""
        source = make_resolver()
        catalog.records.append({"pluginName": "foo", "version": "1.0"})
        first = publisher.publish(source)
        assert first.status is PublishStatus.SKIPPED_DUPLICATE
        staged = read_embedded_metadata(cache_dir / "foo-1.0.axe")

        catalog.records.clear()
        outcome = publisher.publish(source)

        assert outcome.status is PublishStatus.PUBLISHED
        assert outcome.metadata.timestamp == staged.timestamp
        assert catalog.records[0]["timestamp"] == staged.timestamp

    def test_publish_all_continues_after_failures(self, publisher, catalog, make_resolver, tmp_path):
        broken = tmp_path / "src" / "broken"
        (broken / "content").mkdir(parents=True)
        good = make_resolver("bar", "2.0")
        duplicate = make_resolver("foo", "1.0")
        catalog.records.append({"pluginName": "foo", "version": "1.0"})

        outcomes = publisher.publish_all([broken, duplicate, good])

        assert [o.status for o in outcomes] == [
            PublishStatus.FAILED,
            PublishStatus.SKIPPED_DUPLICATE,
            PublishStatus.PUBLISHED,
        ]
        assert [r["pluginName"] for r in catalog.records] == ["foo", "bar"]
