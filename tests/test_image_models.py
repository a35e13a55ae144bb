"""Tests for image/models.py - build request and image plan."""

from pathlib import Path

import pytest
from pydantic import ValidationError

from fat32_imagegen.errors import SourceValidationError
from fat32_imagegen.image.models import (
    BuildRequest,
    ImagePlan,
    PartitionGeometry,
    image_size_mb,
)
from fat32_imagegen.types import MIB, SourceKind


@pytest.fixture
def content_dir(tmp_path: Path) -> Path:
    directory = tmp_path / "content"
    directory.mkdir()
    (directory / "file.txt").write_text("hello")
    return directory


@pytest.fixture
def archive(tmp_path: Path) -> Path:
    path = tmp_path / "content.7z"
    path.write_bytes(b"7z\xbc\xaf\x27\x1c")
    return path


@pytest.fixture
def output_dir(tmp_path: Path) -> Path:
    directory = tmp_path / "out"
    directory.mkdir()
    return directory


class TestBuildRequestFromOptions:
    """Tests for BuildRequest.from_options."""

    def test_directory_source(self, content_dir, output_dir):
        """Directory option should produce a directory request."""
        request = BuildRequest.from_options(
            directory=content_dir, output_dir=output_dir
        )

        assert request.source_kind is SourceKind.DIRECTORY
        assert request.source_path == content_dir
        assert request.image_path == output_dir / "content.img"

    def test_archive_source(self, archive, output_dir):
        """Archive option should produce an archive request."""
        request = BuildRequest.from_options(archive=str(archive), output_dir=output_dir)

        assert request.source_kind is SourceKind.ARCHIVE
        assert request.image_name == "content.7z.img"

    def test_both_sources_rejected(self, archive, content_dir, output_dir):
        """Archive and directory together should fail before anything is created."""
        with pytest.raises(SourceValidationError) as exc_info:
            BuildRequest.from_options(
                archive=archive, directory=content_dir, output_dir=output_dir
            )

        assert "More than one input option" in exc_info.value.message
        assert list(output_dir.iterdir()) == []

    def test_no_source_rejected(self, output_dir):
        """A request without a source should be rejected."""
        with pytest.raises(SourceValidationError):
            BuildRequest.from_options(output_dir=output_dir)

    def test_missing_archive(self, tmp_path, output_dir):
        """Archive path must be an existing file."""
        with pytest.raises(SourceValidationError) as exc_info:
            BuildRequest.from_options(
                archive=tmp_path / "missing.7z", output_dir=output_dir
            )

        assert "Input archive file is not valid" in exc_info.value.message

    def test_archive_kind_mismatch(self, content_dir, output_dir):
        """A directory passed as archive should be rejected."""
        with pytest.raises(SourceValidationError):
            BuildRequest.from_options(archive=content_dir, output_dir=output_dir)

    def test_missing_directory(self, tmp_path, output_dir):
        """Directory path must exist."""
        with pytest.raises(SourceValidationError) as exc_info:
            BuildRequest.from_options(
                directory=tmp_path / "missing", output_dir=output_dir
            )

        assert "Input directory is not valid" in exc_info.value.message

    def test_missing_output_dir(self, content_dir, tmp_path):
        """Output directory must exist."""
        with pytest.raises(SourceValidationError) as exc_info:
            BuildRequest.from_options(
                directory=content_dir, output_dir=tmp_path / "nowhere"
            )

        assert "Output directory is not valid" in exc_info.value.message


class TestBuildRequest:
    """Tests for BuildRequest model behaviour."""

    def test_is_immutable(self, content_dir, output_dir):
        """Requests should be frozen."""
        request = BuildRequest.from_options(
            directory=content_dir, output_dir=output_dir
        )
        with pytest.raises(ValidationError):
            request.source_path = output_dir  # type: ignore[misc]

    def test_trailing_slash_name(self, content_dir, output_dir):
        """Trailing slashes should not change the image name."""
        request = BuildRequest.from_options(
            directory=f"{content_dir}/", output_dir=output_dir
        )
        assert request.image_name == "content.img"

    def test_current_directory_name(self, content_dir, output_dir, monkeypatch):
        """'.' should resolve to the directory's own name."""
        monkeypatch.chdir(content_dir)
        request = BuildRequest.from_options(directory=".", output_dir=output_dir)
        assert request.image_name == "content.img"


class TestImageSize:
    """Tests for image_size_mb."""

    def test_two_million_bytes(self):
        """2,000,000 bytes rounds up to 2 MiB plus 33 MiB overhead."""
        assert image_size_mb(2_000_000) == 35

    def test_empty_content(self):
        """Empty content still gets the FAT32 overhead."""
        assert image_size_mb(0) == 33

    def test_exact_megabyte(self):
        """Exact MiB multiples should not round up."""
        assert image_size_mb(MIB) == 34
        assert image_size_mb(MIB + 1) == 35

    def test_custom_overhead(self):
        """Overhead should be configurable."""
        assert image_size_mb(MIB, overhead_mb=64) == 65

    def test_negative_rejected(self):
        """Negative content sizes are invalid."""
        with pytest.raises(ValueError):
            image_size_mb(-1)


class TestImagePlan:
    """Tests for ImagePlan."""

    def test_for_content(self, tmp_path):
        """Plan should carry exact byte size and the 1 MiB offset."""
        plan = ImagePlan.for_content(tmp_path / "x.img", 2_000_000)

        assert plan.size_mb == 35
        assert plan.size_bytes == 35 * 1_048_576
        assert plan.partition_offset_sectors == 2048
        assert plan.sector_size == 512
        assert plan.partition_offset_bytes == 1_048_576


class TestPartitionGeometry:
    """Tests for PartitionGeometry."""

    def test_byte_properties(self):
        """Byte values should derive from sectors and sector size."""
        geometry = PartitionGeometry(offset_sectors=2048, size_sectors=4096)

        assert geometry.offset_bytes == 1_048_576
        assert geometry.size_bytes == 2 * 1_048_576
