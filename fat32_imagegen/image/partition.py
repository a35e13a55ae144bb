"""Partition table writing.

Writes an MSDOS disklabel with a single primary FAT32 partition that
starts at a fixed sector and extends to the end of the image, and
returns the geometry shared by formatting and loop attachment.
"""

import logging
from pathlib import Path

from fat32_imagegen.errors import PartitionWriteFailedError
from fat32_imagegen.image.models import PartitionGeometry
from fat32_imagegen.runner import CommandRunner
from fat32_imagegen.types import PARTITION_OFFSET_SECTORS, SECTOR_SIZE

logger = logging.getLogger(__name__)


def compose_parted_commands(image_path: Path, offset_sectors: int) -> list[list[str]]:
    """Compose the parted commands creating the label and the partition.

    Args:
        image_path: Image file to partition.
        offset_sectors: First sector of the partition.

    Returns:
        Commands to run in order.
    """
    return [
        ["parted", "-s", str(image_path), "mklabel", "msdos"],
        [
            "parted",
            "-s",
            str(image_path),
            "unit",
            "s",
            "mkpart",
            "primary",
            "fat32",
            f"{offset_sectors}s",
            "100%",
        ],
    ]


def write_partition_table(
    image_path: Path,
    size_bytes: int,
    runner: CommandRunner,
    *,
    offset_sectors: int = PARTITION_OFFSET_SECTORS,
    sector_size: int = SECTOR_SIZE,
) -> PartitionGeometry:
    """Write the partition table into an allocated image.

    Args:
        image_path: Image file to partition.
        size_bytes: Length of the image.
        runner: Command runner.
        offset_sectors: First sector of the partition.
        sector_size: Logical sector size in bytes.

    Returns:
        PartitionGeometry of the FAT32 partition.

    Raises:
        PartitionWriteFailedError: Image too small or parted failed.
    """
    total_sectors = size_bytes // sector_size
    if total_sectors <= offset_sectors:
        raise PartitionWriteFailedError(
            f"Image of {size_bytes} bytes is too small for a partition "
            f"starting at sector {offset_sectors}"
        )

    for cmd in compose_parted_commands(image_path, offset_sectors):
        runner.check(cmd, PartitionWriteFailedError)

    geometry = PartitionGeometry(
        offset_sectors=offset_sectors,
        size_sectors=total_sectors - offset_sectors,
        sector_size=sector_size,
    )
    logger.info(
        "Partitioned %s: FAT32 at sector %d (%d bytes), %d sectors",
        image_path,
        geometry.offset_sectors,
        geometry.offset_bytes,
        geometry.size_sectors,
    )
    return geometry


__all__ = ["compose_parted_commands", "write_partition_table"]
