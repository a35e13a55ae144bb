"""FAT32 image building.

This module handles:
- Content sizing for archives and directory trees
- Preallocated image files with an MSDOS partition table
- FAT32 formatting at the partition offset
- Loop device attachment and scoped mounting
- Population and reverse-order cleanup on failure
"""

from fat32_imagegen.image.allocate import allocate_image
from fat32_imagegen.image.builder import BuildResult, ImageBuilder
from fat32_imagegen.image.format import format_filesystem
from fat32_imagegen.image.loop import LoopDeviceManager
from fat32_imagegen.image.models import (
    BuildRequest,
    ImagePlan,
    LoopAttachment,
    MountHandle,
    PartitionGeometry,
    image_size_mb,
)
from fat32_imagegen.image.mount import MountSession
from fat32_imagegen.image.partition import write_partition_table
from fat32_imagegen.image.populate import populate
from fat32_imagegen.image.sizing import (
    ArchiveEntry,
    estimate_content_bytes,
    list_archive_entries,
)

__all__ = [
    # Models
    "BuildRequest",
    "ImagePlan",
    "LoopAttachment",
    "MountHandle",
    "PartitionGeometry",
    "image_size_mb",
    # Stages
    "ArchiveEntry",
    "LoopDeviceManager",
    "MountSession",
    "allocate_image",
    "estimate_content_bytes",
    "format_filesystem",
    "list_archive_entries",
    "populate",
    "write_partition_table",
    # Orchestration
    "BuildResult",
    "ImageBuilder",
]
