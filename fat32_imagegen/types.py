"""Shared type definitions for fat32_imagegen.

This module contains enums and constants shared across subpackages
to avoid circular imports.
"""

from enum import Enum

MIB = 1024 * 1024

# Fixed geometry: images are synthetic, so no sector size detection
SECTOR_SIZE = 512
PARTITION_OFFSET_SECTORS = 2048

# Suggested minimum number of clusters for 32 bit FAT
IMAGE_OVERHEAD_MB = 33


class SourceKind(str, Enum):
    """Kind of content source for an image."""

    ARCHIVE = "archive"
    DIRECTORY = "directory"


class OverwritePolicy(str, Enum):
    """Behaviour when the output image file already exists."""

    OVERWRITE = "overwrite"
    REJECT = "reject"


class BuildStage(str, Enum):
    """Stage reached by an image build.

    Members are declared in execution order.
    """

    VALIDATED = "validated"
    SIZED = "sized"
    ALLOCATED = "allocated"
    PARTITIONED = "partitioned"
    FORMATTED = "formatted"
    ATTACHED = "attached"
    MOUNTED = "mounted"
    POPULATED = "populated"
    UNMOUNTED = "unmounted"
    DETACHED = "detached"
    DONE = "done"

    @property
    def order(self) -> int:
        """Position of this stage in the build sequence."""
        return list(BuildStage).index(self)

    def next(self) -> "BuildStage":
        """Return the stage that follows this one.

        Raises:
            ValueError: If called on DONE.
        """
        stages = list(BuildStage)
        if self is BuildStage.DONE:
            raise ValueError("DONE is the final build stage")
        return stages[self.order + 1]


__all__ = [
    "IMAGE_OVERHEAD_MB",
    "MIB",
    "PARTITION_OFFSET_SECTORS",
    "SECTOR_SIZE",
    "BuildStage",
    "OverwritePolicy",
    "SourceKind",
]
