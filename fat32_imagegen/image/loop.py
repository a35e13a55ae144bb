"""Loop device management for image builds.

This module handles:
- Querying a free loop device
- Binding a loop device to an image at the partition byte offset
- Releasing the binding, tolerating devices that are already released

A build holds exactly one LoopAttachment and must release it after the
mount that uses it has been released.
"""

import logging
from pathlib import Path

from fat32_imagegen.errors import (
    CleanupFailedError,
    CommandExecutionError,
    LoopAttachFailedError,
)
from fat32_imagegen.image.models import LoopAttachment
from fat32_imagegen.runner import CommandRunner

logger = logging.getLogger(__name__)

DEFAULT_SYSFS_BLOCK = Path("/sys/block")


class LoopDeviceManager:
    """Acquire and release loop devices for one build.

    Attributes:
        runner: Command runner used for losetup.
        sysfs_block: sysfs directory with per-device loop information.
    """

    def __init__(
        self,
        runner: CommandRunner,
        sysfs_block: Path = DEFAULT_SYSFS_BLOCK,
    ) -> None:
        self.runner = runner
        self.sysfs_block = sysfs_block

    def find_free_device(self) -> str:
        """Return the name of a currently unused loop device.

        The answer is only a snapshot: another process may claim the
        device before it is bound. ``attach`` therefore selects and binds
        in a single losetup call.

        Raises:
            LoopAttachFailedError: No free loop device exists.
        """
        result = self.runner.check(["losetup", "-f"], LoopAttachFailedError)
        device = result.stdout.strip()
        if not device:
            raise LoopAttachFailedError("losetup did not report a free loop device")
        return device

    def attach(self, image_path: Path, offset_bytes: int) -> LoopAttachment:
        """Bind a free loop device to ``image_path`` starting at ``offset_bytes``.

        I/O on the returned device maps onto the partition's filesystem
        region, not onto the whole image.

        Args:
            image_path: Formatted image file.
            offset_bytes: Byte offset of the partition in the image.

        Returns:
            LoopAttachment owning the binding.

        Raises:
            LoopAttachFailedError: No free device or the bind was rejected.
        """
        result = self.runner.check(
            [
                "losetup",
                "--find",
                "--show",
                "--offset",
                str(offset_bytes),
                str(image_path),
            ],
            LoopAttachFailedError,
            admin=True,
        )
        device = result.stdout.strip()
        if not device:
            raise LoopAttachFailedError(
                f"losetup did not report the loop device bound to {image_path}"
            )

        logger.info(
            "Attached %s to %s at offset %d", device, image_path, offset_bytes
        )
        return LoopAttachment(
            device_path=device, image_path=image_path, offset_bytes=offset_bytes
        )

    def backing_file(self, device_path: str) -> Path | None:
        """Return the file backing a loop device, or None if unbound."""
        backing = self.sysfs_block / Path(device_path).name / "loop" / "backing_file"
        try:
            return Path(backing.read_text().strip())
        except OSError:
            return None

    def is_bound(self, attachment: LoopAttachment) -> bool:
        """Check whether the attachment's device still backs onto its image."""
        backing = self.backing_file(attachment.device_path)
        if backing is None:
            return False
        return backing.resolve() == attachment.image_path.resolve()

    def detach(self, attachment: LoopAttachment) -> None:
        """Release a loop device binding.

        Calling this on an already released attachment, or on a device
        that is no longer bound to the image, is a no-op.

        Args:
            attachment: Attachment to release.

        Raises:
            CleanupFailedError: The device is still bound after losetup -d.
        """
        if attachment.released:
            logger.debug("Loop device %s already detached", attachment.device_path)
            return

        try:
            result = self.runner.run_as_admin(["losetup", "-d", attachment.device_path])
        except CommandExecutionError as e:
            raise CleanupFailedError(e.message, command=e.command) from e

        if result.returncode != 0:
            if self.is_bound(attachment):
                raise CleanupFailedError(
                    f"Failed to detach {attachment.device_path}: "
                    f"{result.stderr.strip()}",
                    command=f"losetup -d {attachment.device_path}",
                    exit_code=result.returncode,
                    stderr=result.stderr,
                )
            logger.debug(
                "Loop device %s was not bound to %s",
                attachment.device_path,
                attachment.image_path,
            )

        attachment.released = True
        logger.info("Detached %s", attachment.device_path)


__all__ = ["DEFAULT_SYSFS_BLOCK", "LoopDeviceManager"]
