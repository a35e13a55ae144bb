"""Smoke tests for the CLI.

These tests verify CLI behaviour without requiring root privileges,
loop devices or external tools.
"""

import json
from pathlib import Path
from unittest.mock import patch

import pytest
from typer.testing import CliRunner

from fat32_imagegen import __version__
from fat32_imagegen.cli import app
from fat32_imagegen.image.builder import BuildResult
from fat32_imagegen.types import BuildStage, SourceKind

runner = CliRunner()


@pytest.fixture
def source_dir(tmp_path: Path) -> Path:
    source = tmp_path / "content"
    source.mkdir()
    with open(source / "data.bin", "wb") as f:
        f.truncate(2_000_000)
    return source


@pytest.fixture
def output_dir(tmp_path: Path) -> Path:
    output = tmp_path / "out"
    output.mkdir()
    return output


class TestCLIHelp:
    """Test CLI help and version commands."""

    def test_help_returns_zero(self) -> None:
        """CLI --help should return exit code 0."""
        result = runner.invoke(app, ["--help"])
        assert result.exit_code == 0
        assert "FAT32 Image Generator" in result.stdout

    def test_version_flag(self) -> None:
        """CLI --version should print version and exit 0."""
        result = runner.invoke(app, ["--version"])
        assert result.exit_code == 0
        assert __version__ in result.stdout

    def test_build_help(self) -> None:
        """build --help should list the source options."""
        result = runner.invoke(app, ["build", "--help"])
        assert result.exit_code == 0
        assert "--archive" in result.stdout
        assert "--directory" in result.stdout


class TestCLIConfig:
    """Test CLI config command."""

    def test_config_command_shows_all_settings(self) -> None:
        """CLI config should show all configuration fields."""
        result = runner.invoke(app, ["config"])
        assert result.exit_code == 0
        assert "Paths:" in result.stdout
        assert "Operational:" in result.stdout
        assert "Tools:" in result.stdout
        assert "Timeouts (seconds):" in result.stdout
        assert "Temp directory" in result.stdout
        assert "Overwrite policy" in result.stdout
        assert "Overhead (MiB)" in result.stdout
        assert "Sudo command" in result.stdout
        assert "Archive tool" in result.stdout
        assert "Populate timeout" in result.stdout

    def test_config_json(self) -> None:
        """CLI config --json should output JSON."""
        with patch.dict("os.environ", {"FAT32_IMG_ARCHIVE_TOOL": "7za"}):
            result = runner.invoke(app, ["config", "--json"])
        assert result.exit_code == 0
        data = json.loads(result.stdout)
        assert data["archive_tool"] == "7za"
        assert data["overhead_mb"] == 33
        assert data["overwrite_policy"] == "overwrite"

    def test_invalid_env_setting(self) -> None:
        """Invalid environment settings should exit 1 with a message."""
        with patch.dict("os.environ", {"FAT32_IMG_OVERHEAD_MB": "10"}):
            result = runner.invoke(app, ["config"])

        assert result.exit_code == 1
        assert "Invalid configuration" in result.stdout
        assert "overhead_mb" in result.stdout
        assert result.exception is None or isinstance(result.exception, SystemExit)

    def test_config_shows_unbounded_populate_timeout(self) -> None:
        """Populate timeout is unset by default."""
        result = runner.invoke(app, ["config"])
        assert result.exit_code == 0
        assert "(none)" in result.stdout


class TestCLIBuildValidation:
    """Test input validation in the build command."""

    def test_both_sources(self, tmp_path, source_dir, output_dir) -> None:
        """Giving an archive and a directory should fail without side effects."""
        archive = tmp_path / "content.7z"
        archive.write_bytes(b"7z")

        result = runner.invoke(
            app,
            [
                "build",
                "-a",
                str(archive),
                "-d",
                str(source_dir),
                "-o",
                str(output_dir),
            ],
        )

        assert result.exit_code == 1
        assert "More than one input option" in result.stdout
        assert list(output_dir.iterdir()) == []

    def test_no_source(self, output_dir) -> None:
        """Missing source should fail."""
        result = runner.invoke(app, ["build", "-o", str(output_dir)])
        assert result.exit_code == 1
        assert "Input type is not valid" in result.stdout

    def test_missing_output_dir_json(self, source_dir, tmp_path) -> None:
        """Validation errors have a stable JSON shape."""
        result = runner.invoke(
            app,
            [
                "build",
                "-d",
                str(source_dir),
                "-o",
                str(tmp_path / "missing"),
                "--json",
            ],
        )

        assert result.exit_code == 1
        data = json.loads(result.stdout)
        assert data["success"] is False
        assert data["code"] == "validation"
        assert "Output directory is not valid" in data["message"]


class TestCLIBuildDryRun:
    """Test build --dry-run."""

    def test_dry_run_json(self, source_dir, output_dir) -> None:
        """Dry run should report the image plan and create nothing."""
        result = runner.invoke(
            app,
            ["build", "-d", str(source_dir), "-o", str(output_dir), "-n", "--json"],
        )

        assert result.exit_code == 0
        data = json.loads(result.stdout)
        assert data["dry_run"] is True
        assert data["content_bytes"] == 2_000_000
        assert data["size_mb"] == 35
        assert data["size_bytes"] == 35 * 1024 * 1024
        assert data["partition_offset_bytes"] == 1048576
        assert data["image_path"] == str(output_dir / "content.img")
        assert list(output_dir.iterdir()) == []

    def test_dry_run_text(self, source_dir, output_dir) -> None:
        """Dry run text output should name the image."""
        result = runner.invoke(
            app, ["build", "-d", str(source_dir), "-o", str(output_dir), "--dry-run"]
        )

        assert result.exit_code == 0
        assert "Dry-run plan" in result.stdout
        assert "35 MiB" in result.stdout


class TestCLIBuild:
    """Test build with the builder mocked out."""

    def _result(self, output_dir: Path, **kwargs) -> BuildResult:
        defaults = {
            "success": True,
            "stage": BuildStage.DONE,
            "image_path": str(output_dir / "content.img"),
            "source_kind": SourceKind.DIRECTORY,
            "content_bytes": 2_000_000,
            "size_bytes": 35 * 1024 * 1024,
            "partition_offset_bytes": 1048576,
            "loop_device": "/dev/loop7",
        }
        defaults.update(kwargs)
        return BuildResult(**defaults)

    def test_success(self, source_dir, output_dir) -> None:
        """Successful build exits 0."""
        with patch(
            "fat32_imagegen.image.builder.ImageBuilder.build",
            return_value=self._result(output_dir),
        ):
            result = runner.invoke(
                app, ["build", "-d", str(source_dir), "-o", str(output_dir)]
            )

        assert result.exit_code == 0
        assert "Image built" in result.stdout

    def test_failure(self, source_dir, output_dir) -> None:
        """Failed build names the stage and exits 1."""
        failed = self._result(
            output_dir,
            success=False,
            stage=BuildStage.MOUNTED,
            failed_stage=BuildStage.POPULATED,
            error_code="populate_failed",
            error_message="cp failed with exit code 1",
            command="cp -r --dereference src/. mnt/",
            exit_code=1,
        )
        with patch(
            "fat32_imagegen.image.builder.ImageBuilder.build", return_value=failed
        ):
            result = runner.invoke(
                app, ["build", "-d", str(source_dir), "-o", str(output_dir)]
            )

        assert result.exit_code == 1
        assert "Build failed at stage populated" in result.stdout
        assert "cp failed with exit code 1" in result.stdout

    def test_failure_json(self, source_dir, output_dir) -> None:
        """Failed build JSON carries the stage and error code."""
        failed = self._result(
            output_dir,
            success=False,
            stage=BuildStage.ALLOCATED,
            failed_stage=BuildStage.PARTITIONED,
            error_code="partition_write_failed",
            error_message="parted failed with exit code 1",
        )
        with patch(
            "fat32_imagegen.image.builder.ImageBuilder.build", return_value=failed
        ):
            result = runner.invoke(
                app, ["build", "-d", str(source_dir), "-o", str(output_dir), "--json"]
            )

        assert result.exit_code == 1
        data = json.loads(result.stdout)
        assert data["success"] is False
        assert data["failed_stage"] == "partitioned"
        assert data["error_code"] == "partition_write_failed"

    def test_no_overwrite_flag(self, source_dir, output_dir) -> None:
        """--no-overwrite switches the builder to the reject policy."""
        args = ["build", "-d", str(source_dir), "-o", str(output_dir), "--no-overwrite"]
        with patch("fat32_imagegen.image.builder.ImageBuilder") as mock_builder:
            mock_builder.return_value.build.return_value = self._result(output_dir)
            result = runner.invoke(app, args)

        assert result.exit_code == 0
        settings = mock_builder.call_args.args[0]
        assert settings.overwrite_policy == "reject"
