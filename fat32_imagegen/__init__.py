"""FAT32 Image Generator - build partitioned FAT32 disk images.

This package sizes, allocates, partitions, formats and populates a FAT32
disk image from a 7-Zip compatible archive or a directory tree, releasing
loop devices and mount points on every exit path.
"""

__version__ = "0.1.0"
__all__ = ["__version__"]
