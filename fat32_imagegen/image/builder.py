"""Image build orchestration.

This module sequences the build stages:

    validated -> sized -> allocated -> partitioned -> formatted ->
    attached -> mounted -> populated -> unmounted -> detached -> done

Each transition is driven by one component call. The loop attachment
and the mount are registered on an ExitStack as soon as they are
acquired, so on any failure they are released in reverse order (unmount
before detach) before the failure is reported. The image file is never
deleted; a failed build leaves it in place for inspection. Failed steps
are not retried.
"""

import logging
from contextlib import ExitStack
from dataclasses import asdict, dataclass, field
from typing import Any

from fat32_imagegen.config import Settings, get_settings
from fat32_imagegen.errors import ImageBuildError, ImageExistsError
from fat32_imagegen.image.allocate import allocate_image
from fat32_imagegen.image.format import format_filesystem
from fat32_imagegen.image.loop import LoopDeviceManager
from fat32_imagegen.image.models import (
    BuildRequest,
    ImagePlan,
    LoopAttachment,
    MountHandle,
)
from fat32_imagegen.image.mount import MountSession
from fat32_imagegen.image.partition import write_partition_table
from fat32_imagegen.image.populate import populate
from fat32_imagegen.image.sizing import estimate_content_bytes
from fat32_imagegen.runner import CommandRunner
from fat32_imagegen.types import BuildStage, OverwritePolicy, SourceKind

logger = logging.getLogger(__name__)


@dataclass
class BuildResult:
    """Result of an image build.

    Attributes:
        success: Whether the build reached DONE.
        stage: Last stage completed.
        image_path: Path of the output image.
        source_kind: Kind of content source.
        content_bytes: Bytes of source content (once sized).
        size_bytes: Length of the image file (once sized).
        partition_offset_bytes: Offset of the FAT32 partition (once partitioned).
        loop_device: Loop device used (once attached).
        failed_stage: Stage that was being entered when the build failed.
        error_code: Error code if the build failed.
        error_message: Error message if the build failed.
        command: Failing tool command line, if any.
        exit_code: Failing tool exit status, if any.
        cleanup_errors: Non-fatal errors raised while releasing resources.
    """

    success: bool
    stage: BuildStage
    image_path: str
    source_kind: SourceKind
    content_bytes: int | None = None
    size_bytes: int | None = None
    partition_offset_bytes: int | None = None
    loop_device: str | None = None
    failed_stage: BuildStage | None = None
    error_code: str | None = None
    error_message: str | None = None
    command: str | None = None
    exit_code: int | None = None
    cleanup_errors: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        data = asdict(self)
        data["stage"] = self.stage.value
        data["source_kind"] = self.source_kind.value
        data["failed_stage"] = self.failed_stage.value if self.failed_stage else None
        return data


class ImageBuilder:
    """Build FAT32 images from archives or directories.

    Attributes:
        settings: Application settings.
        runner: Command runner shared by all stages.
        loop_manager: Loop device manager.
        mount_session: Mount session.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        *,
        runner: CommandRunner | None = None,
        loop_manager: LoopDeviceManager | None = None,
        mount_session: MountSession | None = None,
    ) -> None:
        self.settings = settings if settings is not None else get_settings()
        self.runner = runner or CommandRunner.from_settings(self.settings)
        self.loop_manager = loop_manager or LoopDeviceManager(self.runner)
        self.mount_session = mount_session or MountSession(
            self.runner, tmp_dir=self.settings.tmp_dir
        )

    def plan(self, request: BuildRequest) -> ImagePlan:
        """Size the image for a request without creating anything.

        Raises:
            SourceUnreadableError: If the source cannot be listed or scanned.
        """
        content_bytes = estimate_content_bytes(
            request, self.runner, self.settings.archive_tool
        )
        return ImagePlan.for_content(
            request.image_path, content_bytes, self.settings.overhead_mb
        )

    def build(self, request: BuildRequest) -> BuildResult:
        """Run a complete build.

        Args:
            request: Validated build request.

        Returns:
            BuildResult; on failure it names the failing stage and tool.
            Unexpected exceptions propagate after resources are released.
        """
        result = BuildResult(
            success=False,
            stage=BuildStage.VALIDATED,
            image_path=str(request.image_path),
            source_kind=request.source_kind,
        )
        logger.info(
            "Building %s from %s %s",
            request.image_path,
            request.source_kind.value,
            request.source_path,
        )

        try:
            with ExitStack() as stack:
                self._run_stages(request, result, stack)
        except ImageBuildError as e:
            return self._fail(request, result, e)

        self._advance(result, BuildStage.DONE)
        result.success = True
        logger.info("Image ready: %s (%d bytes)", result.image_path, result.size_bytes)
        return result

    def _run_stages(
        self, request: BuildRequest, result: BuildResult, stack: ExitStack
    ) -> None:
        plan = self.plan(request)
        result.content_bytes = plan.content_bytes
        result.size_bytes = plan.size_bytes
        self._advance(result, BuildStage.SIZED)

        allocate_image(
            plan.image_path,
            plan.size_bytes,
            overwrite_policy=OverwritePolicy(self.settings.overwrite_policy),
        )
        self._advance(result, BuildStage.ALLOCATED)

        geometry = write_partition_table(
            plan.image_path,
            plan.size_bytes,
            self.runner,
            offset_sectors=plan.partition_offset_sectors,
            sector_size=plan.sector_size,
        )
        result.partition_offset_bytes = geometry.offset_bytes
        self._advance(result, BuildStage.PARTITIONED)

        format_filesystem(plan.image_path, geometry, self.runner)
        self._advance(result, BuildStage.FORMATTED)

        attachment = self.loop_manager.attach(plan.image_path, geometry.offset_bytes)
        stack.callback(self._release_loop, attachment, result)
        result.loop_device = attachment.device_path
        self._advance(result, BuildStage.ATTACHED)

        handle = self.mount_session.mount(attachment)
        stack.callback(self._release_mount, handle, result)
        self._advance(result, BuildStage.MOUNTED)

        populate(
            request,
            handle.mount_dir,
            self.runner,
            archive_tool=self.settings.archive_tool,
            timeout=self.settings.populate_timeout,
        )
        self._advance(result, BuildStage.POPULATED)

        self.mount_session.unmount(handle)
        self._advance(result, BuildStage.UNMOUNTED)

        # Mount is already released; this detaches the loop device
        stack.close()
        self._advance(result, BuildStage.DETACHED)

    def _advance(self, result: BuildResult, stage: BuildStage) -> None:
        result.stage = stage
        logger.debug("Build stage: %s", stage.value)

    def _release_mount(self, handle: MountHandle, result: BuildResult) -> None:
        try:
            self.mount_session.unmount(handle)
        except ImageBuildError as e:
            logger.warning("Cleanup failed: %s", e.message)
            result.cleanup_errors.append(e.message)

    def _release_loop(self, attachment: LoopAttachment, result: BuildResult) -> None:
        try:
            self.loop_manager.detach(attachment)
        except ImageBuildError as e:
            logger.warning("Cleanup failed: %s", e.message)
            result.cleanup_errors.append(e.message)

    def _fail(
        self, request: BuildRequest, result: BuildResult, error: ImageBuildError
    ) -> BuildResult:
        result.failed_stage = result.stage.next()
        result.error_code = error.error_code
        result.error_message = error.message
        result.command = error.command
        result.exit_code = error.exit_code

        logger.error(
            "Build failed at stage %s: %s", result.failed_stage.value, error.message
        )
        if (
            not isinstance(error, ImageExistsError)
            and result.failed_stage.order >= BuildStage.ALLOCATED.order
            and request.image_path.exists()
        ):
            logger.warning(
                "Image left in place for inspection (not a valid build): %s",
                request.image_path,
            )
        return result


__all__ = ["BuildResult", "ImageBuilder"]
