"""Population of the mounted image filesystem.

Archives are extracted with their relative paths into the mount root;
directories have their contents (not the directory itself) copied
recursively, following symbolic links since FAT32 cannot store them.
Running out of space on the image is reported as CapacityExceeded.
"""

import logging
import shlex
from pathlib import Path

from fat32_imagegen.errors import (
    CapacityExceededError,
    CommandExecutionError,
    PopulateFailedError,
)
from fat32_imagegen.image.models import BuildRequest
from fat32_imagegen.runner import STDERR_TAIL, CommandRunner
from fat32_imagegen.types import SourceKind

logger = logging.getLogger(__name__)

# Tool messages indicating the target filesystem is full
_NO_SPACE_MARKERS = (
    "no space left on device",
    "not enough space",
)


def compose_extract_command(
    archive: Path, mount_dir: Path, archive_tool: str = "7z"
) -> list[str]:
    """Compose the command extracting ``archive`` into ``mount_dir``."""
    return [archive_tool, "x", "-y", f"-o{mount_dir}", str(archive)]


def compose_copy_command(source_dir: Path, mount_dir: Path) -> list[str]:
    """Compose the command copying the contents of ``source_dir``."""
    # "<dir>/." copies the contents, dotfiles included
    return ["cp", "-r", "--dereference", f"{source_dir}/.", f"{mount_dir}/"]


def _is_out_of_space(output: str) -> bool:
    lowered = output.lower()
    return any(marker in lowered for marker in _NO_SPACE_MARKERS)


def run_populate_command(
    cmd: list[str],
    runner: CommandRunner,
    timeout: int | None = None,
) -> None:
    """Run a privileged extraction/copy command.

    Raises:
        CapacityExceededError: The tool reported the image is full.
        PopulateFailedError: Any other failure.
    """
    cmd_str = shlex.join(cmd)
    try:
        result = runner.run_as_admin(cmd, timeout=timeout)
    except CommandExecutionError as e:
        raise PopulateFailedError(e.message, command=e.command) from e

    if result.returncode == 0:
        return

    output = f"{result.stderr}\n{result.stdout}".strip()
    detail = output[-STDERR_TAIL:]
    if _is_out_of_space(output):
        logger.error("Image filesystem is full while running %s", cmd[0])
        raise CapacityExceededError(
            f"Image ran out of space; content size was underestimated: {detail}",
            command=cmd_str,
            exit_code=result.returncode,
            stderr=result.stderr,
        )
    raise PopulateFailedError(
        f"{cmd[0]} failed with exit code {result.returncode}: {detail}",
        command=cmd_str,
        exit_code=result.returncode,
        stderr=result.stderr,
    )


def populate(
    request: BuildRequest,
    mount_dir: Path,
    runner: CommandRunner,
    *,
    archive_tool: str = "7z",
    timeout: int | None = None,
) -> None:
    """Copy the request's source content into the mounted filesystem.

    Args:
        request: Validated build request.
        mount_dir: Mount point of the image filesystem.
        runner: Command runner.
        archive_tool: 7-Zip compatible executable.
        timeout: Timeout for the copy in seconds.

    Raises:
        CapacityExceededError: The image filesystem filled up.
        PopulateFailedError: Extraction or copy failed.
    """
    if request.source_kind is SourceKind.ARCHIVE:
        cmd = compose_extract_command(request.source_path, mount_dir, archive_tool)
    else:
        cmd = compose_copy_command(request.source_path, mount_dir)

    logger.info(
        "Populating %s from %s %s",
        mount_dir,
        request.source_kind.value,
        request.source_path,
    )
    run_populate_command(cmd, runner, timeout=timeout)


__all__ = [
    "compose_copy_command",
    "compose_extract_command",
    "populate",
    "run_populate_command",
]
