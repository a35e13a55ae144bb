"""Thin CLI wrapper for fat32_imagegen.

This module provides the command-line interface using Typer.
All business logic is delegated to core modules.
"""

import json
import logging
from pathlib import Path
from typing import Annotated, Any

import typer
from pydantic import ValidationError
from rich.console import Console
from rich.logging import RichHandler

from fat32_imagegen import __version__
from fat32_imagegen.config import Settings, get_settings, print_settings_json

app = typer.Typer(
    name="fat32-imagegen",
    help="FAT32 Image Generator - build FAT32 disk images from archives or directories",
    no_args_is_help=True,
)
console = Console()


def _configure_logging(level: str) -> None:
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
    )


def _print_json(data: Any) -> None:
    console.print(
        json.dumps(data, indent=2), markup=False, highlight=False, soft_wrap=True
    )


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"fat32-imagegen version {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Annotated[
        bool | None,
        typer.Option(
            "--version",
            "-V",
            help="Show version and exit",
            callback=version_callback,
            is_eager=True,
        ),
    ] = None,
) -> None:
    """FAT32 Image Generator - build FAT32 disk images from archives or directories."""
    try:
        settings = get_settings()
    except ValidationError as e:
        problems = "; ".join(
            f"{'.'.join(str(part) for part in err['loc'])}: {err['msg']}"
            for err in e.errors()
        )
        console.print(
            f"Invalid configuration: {problems}",
            style="red",
            markup=False,
            soft_wrap=True,
        )
        raise typer.Exit(code=1) from None
    _configure_logging(settings.log_level)


@app.command()
def config(
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output as JSON"),
    ] = False,
) -> None:
    """Show effective configuration."""
    settings = get_settings()
    if json_output:
        console.print(print_settings_json(settings), markup=False, soft_wrap=True)
        return

    tmp_dir_display = str(settings.tmp_dir) if settings.tmp_dir else "(system default)"
    console.print("[bold]Effective Configuration:[/bold]")
    console.print()
    console.print("[bold]Paths:[/bold]")
    console.print(f"  Temp directory:      {tmp_dir_display}")
    console.print()
    console.print("[bold]Operational:[/bold]")
    console.print(f"  Log level:           {settings.log_level}")
    console.print(f"  Overwrite policy:    {settings.overwrite_policy}")
    console.print(f"  Overhead (MiB):      {settings.overhead_mb}")
    console.print()
    console.print("[bold]Tools:[/bold]")
    console.print(f"  Sudo command:        {settings.sudo_command or '(disabled)'}")
    console.print(f"  Archive tool:        {settings.archive_tool}")
    console.print()
    console.print("[bold]Timeouts (seconds):[/bold]")
    console.print(f"  Command timeout:     {settings.command_timeout}")
    console.print(f"  Populate timeout:    {settings.populate_timeout or '(none)'}")


def _effective_settings(overwrite: bool | None) -> Settings:
    settings = get_settings()
    if overwrite is None:
        return settings
    policy = "overwrite" if overwrite else "reject"
    return settings.model_copy(update={"overwrite_policy": policy})


@app.command()
def build(
    output: Annotated[
        Path,
        typer.Option("--output", "-o", help="Output directory for the image"),
    ],
    archive: Annotated[
        Path | None,
        typer.Option("--archive", "-a", help="Input 7zip archive with image content"),
    ] = None,
    directory: Annotated[
        Path | None,
        typer.Option("--directory", "-d", help="Input directory with image content"),
    ] = None,
    overwrite: Annotated[
        bool | None,
        typer.Option(
            "--overwrite/--no-overwrite",
            help="Replace or refuse an existing image (default from settings)",
        ),
    ] = None,
    dry_run: Annotated[
        bool,
        typer.Option("--dry-run", "-n", help="Show the image plan without building"),
    ] = False,
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output as JSON"),
    ] = False,
) -> None:
    """Build a FAT32 image from an archive or a directory.

    The image is written to OUTPUT/<source name>.img. Loop device,
    mount and copy steps run through the configured sudo command.
    """
    from fat32_imagegen.errors import ImageBuildError, SourceValidationError
    from fat32_imagegen.image.builder import ImageBuilder
    from fat32_imagegen.image.models import BuildRequest

    try:
        request = BuildRequest.from_options(
            archive=archive, directory=directory, output_dir=output
        )
    except SourceValidationError as e:
        if json_output:
            _print_json({"success": False, **e.to_dict()})
        else:
            console.print(f"[red]Invalid input: {e.message}[/red]")
        raise typer.Exit(code=1) from None

    builder = ImageBuilder(_effective_settings(overwrite))

    if dry_run:
        try:
            plan = builder.plan(request)
        except ImageBuildError as e:
            if json_output:
                _print_json({"success": False, **e.to_dict()})
            else:
                console.print(f"[red]Planning failed: {e.message}[/red]")
            raise typer.Exit(code=1) from None

        if json_output:
            _print_json(
                {
                    "success": True,
                    "dry_run": True,
                    "image_path": str(plan.image_path),
                    "content_bytes": plan.content_bytes,
                    "size_mb": plan.size_mb,
                    "size_bytes": plan.size_bytes,
                    "partition_offset_bytes": plan.partition_offset_bytes,
                }
            )
        else:
            console.print("[green]✓ Dry-run plan[/green]")
            console.print(f"  Image:            {plan.image_path}")
            console.print(f"  Content bytes:    {plan.content_bytes}")
            console.print(f"  Image size:       {plan.size_mb} MiB")
            console.print(f"  Partition offset: {plan.partition_offset_bytes} bytes")
        return

    result = builder.build(request)

    if json_output:
        _print_json(result.to_dict())
    elif result.success:
        console.print("[green]✓ Image built[/green]")
        console.print(f"  Image:         {result.image_path}")
        console.print(f"  Size:          {result.size_bytes} bytes")
        console.print(f"  Content bytes: {result.content_bytes}")
    else:
        failed_stage = result.failed_stage.value if result.failed_stage else "unknown"
        console.print(f"[red]✗ Build failed at stage {failed_stage}[/red]")
        console.print(f"  Error: {result.error_message}", markup=False)
        if result.command:
            console.print(f"  Command: {result.command}", markup=False)

    if not json_output:
        for message in result.cleanup_errors:
            console.print(f"Cleanup warning: {message}", style="yellow", markup=False)

    if not result.success:
        raise typer.Exit(code=1)


__all__ = ["app"]
