"""FAT32 formatting inside the partition region of an image.

mkfs.fat writes the filesystem directly into the image file at the
partition's sector offset, so the partition never has to be exposed as
a separate block device for formatting.
"""

import logging
from pathlib import Path

from fat32_imagegen.errors import FormatFailedError
from fat32_imagegen.image.models import PartitionGeometry
from fat32_imagegen.runner import CommandRunner

logger = logging.getLogger(__name__)

# mkfs.fat counts BLOCK-COUNT in 1 KiB blocks
MKFS_BLOCK_SIZE = 1024


def compose_mkfs_command(image_path: Path, geometry: PartitionGeometry) -> list[str]:
    """Compose the mkfs.fat command for the partition described by ``geometry``."""
    return [
        "mkfs.fat",
        "-F",
        "32",
        "-S",
        str(geometry.sector_size),
        "--offset",
        str(geometry.offset_sectors),
        str(image_path),
        str(geometry.size_bytes // MKFS_BLOCK_SIZE),
    ]


def format_filesystem(
    image_path: Path,
    geometry: PartitionGeometry,
    runner: CommandRunner,
) -> None:
    """Create a FAT32 filesystem at the partition offset of an image.

    Args:
        image_path: Partitioned image file.
        geometry: Partition geometry returned by the partition step.
        runner: Command runner.

    Raises:
        FormatFailedError: mkfs.fat reported an error (e.g., too few clusters).
    """
    logger.info(
        "Formatting FAT32 in %s at sector %d (sector size %d)",
        image_path,
        geometry.offset_sectors,
        geometry.sector_size,
    )
    result = runner.check(compose_mkfs_command(image_path, geometry), FormatFailedError)
    if result.stdout:
        logger.debug("mkfs.fat output:\n%s", result.stdout.strip())


__all__ = ["MKFS_BLOCK_SIZE", "compose_mkfs_command", "format_filesystem"]
