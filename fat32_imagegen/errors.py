"""Error definitions for image builds.

Each build step reports a typed failure carrying a stable error code,
the external command that failed (if any) and its exit status, so the
orchestrator can surface which stage and which tool went wrong.
"""

from typing import Any

# Error code constants
VALIDATION_ERROR = "validation"
SOURCE_UNREADABLE = "source_unreadable"
ALLOCATION_FAILED = "allocation_failed"
IMAGE_EXISTS = "image_exists"
PARTITION_WRITE_FAILED = "partition_write_failed"
FORMAT_FAILED = "format_failed"
LOOP_ATTACH_FAILED = "loop_attach_failed"
MOUNT_FAILED = "mount_failed"
UNMOUNT_FAILED = "unmount_failed"
POPULATE_FAILED = "populate_failed"
CAPACITY_EXCEEDED = "capacity_exceeded"
CLEANUP_FAILED = "cleanup_failed"
EXECUTION_ERROR = "execution_error"


class ImageBuildError(Exception):
    """Base exception for image build failures.

    Attributes:
        message: Human-readable error message.
        error_code: Stable error code for programmatic handling.
        command: Command line of the failing tool, if any.
        exit_code: Exit status of the failing tool, if any.
        stderr: Captured standard error of the failing tool, if any.
    """

    error_code = "image_build_error"

    def __init__(
        self,
        message: str,
        *,
        command: str | None = None,
        exit_code: int | None = None,
        stderr: str | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.command = command
        self.exit_code = exit_code
        self.stderr = stderr

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        result: dict[str, Any] = {
            "code": self.error_code,
            "message": self.message,
        }
        if self.command is not None:
            result["command"] = self.command
        if self.exit_code is not None:
            result["exit_code"] = self.exit_code
        return result


class SourceValidationError(ImageBuildError):
    """Build request is malformed (sources, paths)."""

    error_code = VALIDATION_ERROR


class SourceUnreadableError(ImageBuildError):
    """Source archive or directory could not be listed or scanned."""

    error_code = SOURCE_UNREADABLE


class AllocationFailedError(ImageBuildError):
    """Image file could not be created or preallocated."""

    error_code = ALLOCATION_FAILED


class ImageExistsError(AllocationFailedError):
    """Output image exists and the overwrite policy rejects replacing it."""

    error_code = IMAGE_EXISTS

    def __init__(self, image_path: str) -> None:
        super().__init__(
            f"Output image already exists: {image_path}. "
            "Remove it or use the overwrite policy to replace it."
        )
        self.image_path = image_path


class PartitionWriteFailedError(ImageBuildError):
    """Partition table could not be written."""

    error_code = PARTITION_WRITE_FAILED


class FormatFailedError(ImageBuildError):
    """FAT32 filesystem could not be created."""

    error_code = FORMAT_FAILED


class LoopAttachFailedError(ImageBuildError):
    """No loop device could be bound to the image."""

    error_code = LOOP_ATTACH_FAILED


class MountFailedError(ImageBuildError):
    """Loop device could not be mounted."""

    error_code = MOUNT_FAILED


class UnmountFailedError(ImageBuildError):
    """A live mount could not be unmounted."""

    error_code = UNMOUNT_FAILED


class PopulateFailedError(ImageBuildError):
    """Source content could not be copied into the image."""

    error_code = POPULATE_FAILED


class CapacityExceededError(PopulateFailedError):
    """Image filesystem ran out of space while populating."""

    error_code = CAPACITY_EXCEEDED


class CleanupFailedError(ImageBuildError):
    """Releasing a loop device or mount directory failed (non-fatal)."""

    error_code = CLEANUP_FAILED


class CommandExecutionError(ImageBuildError):
    """External tool could not be started or timed out."""

    error_code = EXECUTION_ERROR


__all__ = [
    "ALLOCATION_FAILED",
    "CAPACITY_EXCEEDED",
    "CLEANUP_FAILED",
    "EXECUTION_ERROR",
    "FORMAT_FAILED",
    "IMAGE_EXISTS",
    "LOOP_ATTACH_FAILED",
    "MOUNT_FAILED",
    "PARTITION_WRITE_FAILED",
    "POPULATE_FAILED",
    "SOURCE_UNREADABLE",
    "UNMOUNT_FAILED",
    "VALIDATION_ERROR",
    "AllocationFailedError",
    "CapacityExceededError",
    "CleanupFailedError",
    "CommandExecutionError",
    "FormatFailedError",
    "ImageBuildError",
    "ImageExistsError",
    "LoopAttachFailedError",
    "MountFailedError",
    "PartitionWriteFailedError",
    "PopulateFailedError",
    "SourceUnreadableError",
    "SourceValidationError",
    "UnmountFailedError",
]
