"""Mount session for the attached image filesystem.

Each build mounts its loop device on a freshly created, uniquely named
temporary directory and removes that directory after unmounting. An
unmount failure is reported; failing to remove the directory is only
logged.
"""

import logging
import os
import tempfile
from pathlib import Path

from fat32_imagegen.errors import (
    CommandExecutionError,
    MountFailedError,
    UnmountFailedError,
)
from fat32_imagegen.image.models import LoopAttachment, MountHandle
from fat32_imagegen.runner import CommandRunner

logger = logging.getLogger(__name__)

MOUNT_DIR_PREFIX = "fat32_image."
DEFAULT_PROC_MOUNTS = Path("/proc/mounts")


def _unescape_mount_path(path: str) -> str:
    """Decode the octal escapes used by /proc/mounts (e.g. '\\040' for space)."""
    return (
        path.replace("\\040", " ")
        .replace("\\011", "\t")
        .replace("\\012", "\n")
        .replace("\\134", "\\")
    )


class MountSession:
    """Mount and unmount loop devices on scoped temporary directories.

    Attributes:
        runner: Command runner used for mount/umount.
        tmp_dir: Parent of mount directories (system default if None).
        proc_mounts: Mount table used to check mount state.
    """

    def __init__(
        self,
        runner: CommandRunner,
        tmp_dir: Path | None = None,
        proc_mounts: Path = DEFAULT_PROC_MOUNTS,
    ) -> None:
        self.runner = runner
        self.tmp_dir = tmp_dir
        self.proc_mounts = proc_mounts

    def is_mounted(self, mount_dir: Path) -> bool:
        """Check whether ``mount_dir`` is a mount point in the mount table."""
        target = str(mount_dir.resolve())
        try:
            with self.proc_mounts.open() as f:
                for line in f:
                    parts = line.split()
                    if len(parts) >= 2 and _unescape_mount_path(parts[1]) == target:
                        return True
        except OSError:
            logger.warning(
                "Could not read %s, assuming %s is mounted", self.proc_mounts, target
            )
            return True
        return False

    def mount(self, attachment: LoopAttachment) -> MountHandle:
        """Mount the attachment's device on a new temporary directory.

        Args:
            attachment: Live loop attachment.

        Returns:
            MountHandle owning the mount and its directory.

        Raises:
            MountFailedError: No valid filesystem, insufficient privilege,
                or the attachment was already released.
        """
        if attachment.released:
            raise MountFailedError(
                f"Loop device {attachment.device_path} is no longer attached"
            )

        try:
            mount_dir = Path(
                tempfile.mkdtemp(prefix=MOUNT_DIR_PREFIX, dir=self.tmp_dir)
            )
        except OSError as e:
            raise MountFailedError(f"Cannot create mount directory: {e}") from e

        try:
            self.runner.check(
                ["mount", "-t", "vfat", attachment.device_path, str(mount_dir)],
                MountFailedError,
                admin=True,
            )
        except MountFailedError:
            self._remove_mount_dir(mount_dir)
            raise

        logger.info("Mounted %s on %s", attachment.device_path, mount_dir)
        return MountHandle(device_path=attachment.device_path, mount_dir=mount_dir)

    def unmount(self, handle: MountHandle) -> None:
        """Flush and unmount, then remove the mount directory.

        Calling this on an already released handle is a no-op; a
        directory that is no longer mounted is only removed.

        Args:
            handle: Mount to release.

        Raises:
            UnmountFailedError: The directory is still mounted after umount.
        """
        if handle.released:
            logger.debug("%s already unmounted", handle.mount_dir)
            return

        os.sync()
        try:
            result = self.runner.run_as_admin(["umount", str(handle.mount_dir)])
        except CommandExecutionError as e:
            raise UnmountFailedError(e.message, command=e.command) from e

        if result.returncode != 0:
            if self.is_mounted(handle.mount_dir):
                raise UnmountFailedError(
                    f"Failed to unmount {handle.mount_dir}: {result.stderr.strip()}",
                    command=f"umount {handle.mount_dir}",
                    exit_code=result.returncode,
                    stderr=result.stderr,
                )
            logger.debug("%s was not mounted", handle.mount_dir)

        handle.released = True
        logger.info("Unmounted %s", handle.mount_dir)
        self._remove_mount_dir(handle.mount_dir)

    def _remove_mount_dir(self, mount_dir: Path) -> None:
        try:
            mount_dir.rmdir()
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning("Could not remove mount directory %s: %s", mount_dir, e)


__all__ = ["DEFAULT_PROC_MOUNTS", "MOUNT_DIR_PREFIX", "MountSession"]
