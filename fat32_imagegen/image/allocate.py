"""Image file allocation.

Creates the backing image file at its exact final length with every
block reserved up front, so later writes through the loop device cannot
fail with ENOSPC.
"""

import errno
import logging
import os
from pathlib import Path

from fat32_imagegen.errors import AllocationFailedError, ImageExistsError
from fat32_imagegen.types import OverwritePolicy

logger = logging.getLogger(__name__)

IMAGE_FILE_MODE = 0o644


def allocate_image(
    image_path: Path,
    size_bytes: int,
    *,
    overwrite_policy: OverwritePolicy = OverwritePolicy.OVERWRITE,
) -> Path:
    """Create a preallocated image file of exactly ``size_bytes``.

    An existing file at ``image_path`` is truncated and replaced unless
    the policy is REJECT. A partially allocated file is left in place
    on failure.

    Args:
        image_path: Path of the image to create.
        size_bytes: Exact length of the image.
        overwrite_policy: Behaviour when the image already exists.

    Returns:
        Path to the allocated image.

    Raises:
        ImageExistsError: Image exists and the policy is REJECT.
        AllocationFailedError: Space could not be reserved.
    """
    if size_bytes <= 0:
        raise AllocationFailedError(f"Invalid image size: {size_bytes} bytes")

    if overwrite_policy is OverwritePolicy.REJECT:
        flags = os.O_RDWR | os.O_CREAT | os.O_EXCL
    else:
        flags = os.O_RDWR | os.O_CREAT | os.O_TRUNC
        if image_path.exists():
            logger.warning("Overwriting existing image: %s", image_path)

    logger.info("Allocating image %s (%d bytes)", image_path, size_bytes)

    try:
        fd = os.open(image_path, flags, IMAGE_FILE_MODE)
    except FileExistsError as e:
        logger.error("Refusing to overwrite existing image: %s", image_path)
        raise ImageExistsError(str(image_path)) from e
    except OSError as e:
        logger.error("Cannot create image %s: %s", image_path, e)
        raise AllocationFailedError(
            f"Cannot create image {image_path}: {e.strerror}"
        ) from e

    try:
        os.posix_fallocate(fd, 0, size_bytes)
        os.fsync(fd)
    except OSError as e:
        if e.errno == errno.ENOSPC:
            message = (
                f"Not enough space to allocate {size_bytes} bytes for {image_path}"
            )
        else:
            message = f"Cannot preallocate {image_path}: {e.strerror}"
        logger.error(message)
        raise AllocationFailedError(message) from e
    finally:
        os.close(fd)

    return image_path


__all__ = ["IMAGE_FILE_MODE", "allocate_image"]
