"""Data model for image builds.

BuildRequest is the validated, immutable input. ImagePlan and
PartitionGeometry are derived once from it and carry the byte offset
shared by partitioning, formatting and loop attachment. LoopAttachment
and MountHandle are owned handles for the OS resources held by a build.
"""

import math
from dataclasses import dataclass
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from fat32_imagegen.errors import SourceValidationError
from fat32_imagegen.types import (
    IMAGE_OVERHEAD_MB,
    MIB,
    PARTITION_OFFSET_SECTORS,
    SECTOR_SIZE,
    SourceKind,
)

IMAGE_SUFFIX = ".img"


class BuildRequest(BaseModel):
    """Validated input for a single image build.

    Attributes:
        source_kind: Whether the content comes from an archive or a directory.
        source_path: Path to the archive file or source directory.
        output_dir: Directory receiving the image file.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    source_kind: SourceKind
    source_path: Path = Field(description="Archive file or directory with content")
    output_dir: Path = Field(description="Directory for the output image")

    @model_validator(mode="after")
    def validate_paths(self) -> "BuildRequest":
        """Validate the source matches its kind and the output directory exists."""
        if self.source_kind is SourceKind.ARCHIVE and not self.source_path.is_file():
            raise ValueError(f"Input archive file is not valid: {self.source_path}")
        if self.source_kind is SourceKind.DIRECTORY and not self.source_path.is_dir():
            raise ValueError(f"Input directory is not valid: {self.source_path}")
        if not self.output_dir.is_dir():
            raise ValueError(f"Output directory is not valid: {self.output_dir}")
        return self

    @classmethod
    def from_options(
        cls,
        *,
        archive: str | Path | None = None,
        directory: str | Path | None = None,
        output_dir: str | Path,
    ) -> "BuildRequest":
        """Build a request from mutually exclusive source options.

        Args:
            archive: Path to an input archive.
            directory: Path to an input directory.
            output_dir: Directory for the output image.

        Returns:
            Validated BuildRequest.

        Raises:
            SourceValidationError: Both or neither sources given, or a path is invalid.
        """
        if archive is not None and directory is not None:
            raise SourceValidationError("More than one input option specified")
        if archive is None and directory is None:
            raise SourceValidationError(
                "Input type is not valid: no archive or directory"
            )

        if archive is not None:
            kind, source = SourceKind.ARCHIVE, Path(archive)
        else:
            kind = SourceKind.DIRECTORY
            source = Path(directory)  # type: ignore[arg-type]

        try:
            return cls(
                source_kind=kind, source_path=source, output_dir=Path(output_dir)
            )
        except ValidationError as e:
            messages = "; ".join(
                str(err["msg"]).removeprefix("Value error, ") for err in e.errors()
            )
            raise SourceValidationError(messages) from e

    @property
    def image_name(self) -> str:
        """Image file name derived from the source basename."""
        return f"{self.source_path.resolve().name}{IMAGE_SUFFIX}"

    @property
    def image_path(self) -> Path:
        """Full path of the output image."""
        return self.output_dir / self.image_name


def image_size_mb(content_bytes: int, overhead_mb: int = IMAGE_OVERHEAD_MB) -> int:
    """Compute the image size in whole MiB for the given content.

    Args:
        content_bytes: Uncompressed content size in bytes.
        overhead_mb: Safety margin for FAT32 minimum cluster counts.

    Returns:
        ceil(content_bytes / 1 MiB) + overhead_mb.
    """
    if content_bytes < 0:
        raise ValueError(f"content_bytes must be non-negative, got {content_bytes}")
    return math.ceil(content_bytes / MIB) + overhead_mb


@dataclass(frozen=True)
class ImagePlan:
    """Size and geometry of an image, derived once per build.

    Attributes:
        image_path: Path of the image file.
        content_bytes: Bytes of source content to hold.
        size_mb: Image size in MiB.
        partition_offset_sectors: First sector of the FAT32 partition.
        sector_size: Logical sector size in bytes.
    """

    image_path: Path
    content_bytes: int
    size_mb: int
    partition_offset_sectors: int = PARTITION_OFFSET_SECTORS
    sector_size: int = SECTOR_SIZE

    @classmethod
    def for_content(
        cls,
        image_path: Path,
        content_bytes: int,
        overhead_mb: int = IMAGE_OVERHEAD_MB,
    ) -> "ImagePlan":
        """Plan an image large enough for ``content_bytes``."""
        return cls(
            image_path=image_path,
            content_bytes=content_bytes,
            size_mb=image_size_mb(content_bytes, overhead_mb),
        )

    @property
    def size_bytes(self) -> int:
        return self.size_mb * MIB

    @property
    def partition_offset_bytes(self) -> int:
        return self.partition_offset_sectors * self.sector_size


@dataclass(frozen=True)
class PartitionGeometry:
    """Byte-exact placement of the single FAT32 partition.

    Attributes:
        offset_sectors: First sector of the partition.
        size_sectors: Length of the partition in sectors.
        sector_size: Logical sector size in bytes.
    """

    offset_sectors: int
    size_sectors: int
    sector_size: int = SECTOR_SIZE

    @property
    def offset_bytes(self) -> int:
        return self.offset_sectors * self.sector_size

    @property
    def size_bytes(self) -> int:
        return self.size_sectors * self.sector_size


@dataclass
class LoopAttachment:
    """A loop device bound to an image at a byte offset.

    Attributes:
        device_path: Loop device node (e.g., '/dev/loop3').
        image_path: Backing image file.
        offset_bytes: Offset of the partition within the image.
        released: Whether the binding has been detached.
    """

    device_path: str
    image_path: Path
    offset_bytes: int
    released: bool = False


@dataclass
class MountHandle:
    """A loop device mounted on a scoped temporary directory.

    Attributes:
        device_path: Mounted loop device node.
        mount_dir: Temporary mount directory owned by the build.
        released: Whether the mount has been unmounted.
    """

    device_path: str
    mount_dir: Path
    released: bool = False


__all__ = [
    "IMAGE_SUFFIX",
    "BuildRequest",
    "ImagePlan",
    "LoopAttachment",
    "MountHandle",
    "PartitionGeometry",
    "image_size_mb",
]
