"""Content size estimation for image builds.

This module handles:
- Summing apparent file sizes of a directory tree
- Listing archive entries with their uncompressed sizes
- Dispatching on the request's source kind

Sizes are exact content bytes, not disk-block rounded, and archives
are measured by their unpacked size since the image holds extracted
content.
"""

from __future__ import annotations

import logging
import os
import stat
from dataclasses import dataclass
from pathlib import Path

from fat32_imagegen.errors import SourceUnreadableError
from fat32_imagegen.image.models import BuildRequest
from fat32_imagegen.runner import CommandRunner
from fat32_imagegen.types import SourceKind

logger = logging.getLogger(__name__)

# Separator between the archive header block and the entry blocks in `7z l -slt`
_SLT_SEPARATOR = "----------"


@dataclass
class ArchiveEntry:
    """An entry from an archive listing.

    Attributes:
        path: Relative path inside the archive.
        size_bytes: Uncompressed size (0 for folders).
        is_dir: Whether the entry is a folder.
    """

    path: str
    size_bytes: int
    is_dir: bool = False


def _scan_directory(directory: str, ancestors: frozenset[tuple[int, int]]) -> int:
    total = 0
    try:
        with os.scandir(directory) as it:
            entries = list(it)
    except OSError as e:
        raise SourceUnreadableError(f"Cannot scan {directory}: {e.strerror}") from e

    for entry in entries:
        try:
            st = entry.stat()
        except FileNotFoundError:
            logger.warning("Skipping dangling symlink: %s", entry.path)
            continue
        except OSError as e:
            raise SourceUnreadableError(
                f"Cannot stat {entry.path}: {e.strerror}"
            ) from e

        if not stat.S_ISDIR(st.st_mode):
            total += st.st_size
            continue

        key = (st.st_dev, st.st_ino)
        if key in ancestors:
            # Link back to a directory on the current path
            logger.warning("Skipping symlink loop: %s", entry.path)
            continue
        total += _scan_directory(entry.path, ancestors | {key})

    return total


def directory_content_bytes(root: Path) -> int:
    """Sum the apparent sizes of all files below ``root``.

    Symbolic links are followed, matching how the directory is copied
    into the image: a directory reachable through several links is
    counted once per path. Links back to an ancestor directory are
    skipped.

    Args:
        root: Directory to scan.

    Returns:
        Total bytes of file content.

    Raises:
        SourceUnreadableError: If any part of the tree cannot be read.
    """
    try:
        st = os.stat(root)
    except OSError as e:
        raise SourceUnreadableError(f"Cannot scan {root}: {e.strerror}") from e

    total = _scan_directory(str(root), frozenset({(st.st_dev, st.st_ino)}))
    logger.debug("Directory %s holds %d bytes", root, total)
    return total


def parse_archive_listing(output: str) -> list[ArchiveEntry]:
    """Parse the technical listing printed by ``7z l -slt``.

    Args:
        output: Standard output of the listing command.

    Returns:
        Archive entries in listing order.
    """
    _, sep, body = output.partition(_SLT_SEPARATOR)
    if not sep:
        return []

    entries: list[ArchiveEntry] = []
    for block in body.strip().split("\n\n"):
        fields: dict[str, str] = {}
        for line in block.splitlines():
            key, eq, value = line.partition(" = ")
            if eq:
                fields[key.strip()] = value.strip()

        path = fields.get("Path")
        if not path:
            continue

        attributes = fields.get("Attributes", "")
        is_dir = fields.get("Folder") == "+" or attributes.startswith("D")
        size_str = fields.get("Size", "")
        size_bytes = int(size_str) if size_str.isdigit() else 0
        entries.append(ArchiveEntry(path=path, size_bytes=size_bytes, is_dir=is_dir))

    return entries


def list_archive_entries(
    archive: Path,
    runner: CommandRunner,
    archive_tool: str = "7z",
) -> list[ArchiveEntry]:
    """List the entries of an archive.

    Args:
        archive: Path to the archive.
        runner: Command runner.
        archive_tool: 7-Zip compatible executable.

    Returns:
        Archive entries.

    Raises:
        SourceUnreadableError: If the archive cannot be listed.
    """
    result = runner.check(
        [archive_tool, "l", "-slt", str(archive)],
        SourceUnreadableError,
    )
    entries = parse_archive_listing(result.stdout)
    logger.debug("Archive %s lists %d entries", archive, len(entries))
    return entries


def archive_content_bytes(
    archive: Path,
    runner: CommandRunner,
    archive_tool: str = "7z",
) -> int:
    """Sum the uncompressed sizes of all file entries in an archive."""
    entries = list_archive_entries(archive, runner, archive_tool)
    return sum(entry.size_bytes for entry in entries if not entry.is_dir)


def estimate_content_bytes(
    request: BuildRequest,
    runner: CommandRunner,
    archive_tool: str = "7z",
) -> int:
    """Compute the bytes of content a build will place in the image.

    Args:
        request: Validated build request.
        runner: Command runner used for archive listing.
        archive_tool: 7-Zip compatible executable.

    Returns:
        Non-negative content size in bytes.

    Raises:
        SourceUnreadableError: If the source cannot be listed or scanned.
    """
    if request.source_kind is SourceKind.ARCHIVE:
        content_bytes = archive_content_bytes(request.source_path, runner, archive_tool)
    else:
        content_bytes = directory_content_bytes(request.source_path)

    logger.info(
        "Content size of %s %s: %d bytes",
        request.source_kind.value,
        request.source_path,
        content_bytes,
    )
    return content_bytes


__all__ = [
    "ArchiveEntry",
    "archive_content_bytes",
    "directory_content_bytes",
    "estimate_content_bytes",
    "list_archive_entries",
    "parse_archive_listing",
]
