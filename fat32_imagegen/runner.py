"""External tool execution for image builds.

This module handles:
- Running partitioning, formatting, loop, mount and copy tools
- Prefixing privileged commands with the configured escalation command
- Translating non-zero exit codes into typed build errors

Privilege escalation is applied per command, only for the steps that
need it (attach, mount, unmount, detach, privileged copy/extraction).
"""

from __future__ import annotations

import logging
import os
import shlex
import subprocess
from collections.abc import Sequence
from typing import TYPE_CHECKING

from fat32_imagegen.errors import CommandExecutionError, ImageBuildError

if TYPE_CHECKING:
    from fat32_imagegen.config import Settings

logger = logging.getLogger(__name__)

# Number of stderr characters kept in error messages
STDERR_TAIL = 500


def _tail(text: str | None) -> str:
    if not text:
        return ""
    return text.strip()[-STDERR_TAIL:]


class CommandRunner:
    """Run external tools with optional privilege escalation.

    Attributes:
        sudo_command: Escalation prefix (e.g. 'sudo'); empty disables it.
        timeout: Default timeout in seconds (None = no timeout).
    """

    def __init__(self, sudo_command: str = "sudo", timeout: int | None = None) -> None:
        self.sudo_command = sudo_command
        self.timeout = timeout

    @classmethod
    def from_settings(cls, settings: Settings) -> CommandRunner:
        """Create a runner from application settings."""
        return cls(sudo_command=settings.sudo_command, timeout=settings.command_timeout)

    def admin_prefix(self) -> list[str]:
        """Return the command prefix used for privileged steps.

        No prefix is used when escalation is disabled or when already root.
        """
        if not self.sudo_command or os.geteuid() == 0:
            return []
        return shlex.split(self.sudo_command)

    def run(
        self,
        cmd: Sequence[str],
        *,
        timeout: int | None = None,
    ) -> subprocess.CompletedProcess[str]:
        """Run a command and capture its output.

        Args:
            cmd: Command as list of strings.
            timeout: Timeout in seconds (defaults to the runner timeout).

        Returns:
            Completed process; a non-zero exit code is not an error here.

        Raises:
            CommandExecutionError: If the command cannot be started or times out.
        """
        effective_timeout = timeout if timeout is not None else self.timeout
        return self._execute(cmd, effective_timeout)

    def run_as_admin(
        self,
        cmd: Sequence[str],
        *,
        timeout: int | None = None,
    ) -> subprocess.CompletedProcess[str]:
        """Run a command with elevated privileges.

        The runner default timeout is not applied: killing the escalation
        command on expiry leaves its privileged child running. Only an
        explicit ``timeout`` bounds the call.
        """
        return self._execute([*self.admin_prefix(), *cmd], timeout)

    def _execute(
        self, cmd: Sequence[str], timeout: int | None
    ) -> subprocess.CompletedProcess[str]:
        cmd = [str(part) for part in cmd]
        cmd_str = shlex.join(cmd)

        logger.debug("Running: %s", cmd_str)

        try:
            result = subprocess.run(
                cmd,
                capture_output=True,
                text=True,
                stdin=subprocess.DEVNULL,
                timeout=timeout,
                check=False,
            )
        except subprocess.TimeoutExpired as e:
            message = f"{cmd[0]} timed out after {timeout} seconds"
            logger.error(message)
            raise CommandExecutionError(message, command=cmd_str) from e
        except OSError as e:
            message = f"Failed to execute {cmd[0]}: {e}"
            logger.error(message)
            raise CommandExecutionError(message, command=cmd_str) from e

        logger.debug("%s exited with code %d", cmd[0], result.returncode)
        return result

    def check(
        self,
        cmd: Sequence[str],
        error_cls: type[ImageBuildError],
        *,
        admin: bool = False,
        timeout: int | None = None,
    ) -> subprocess.CompletedProcess[str]:
        """Run a command and raise ``error_cls`` if it fails.

        Args:
            cmd: Command as list of strings.
            error_cls: Build error raised on failure.
            admin: Whether the command needs elevated privileges.
            timeout: Timeout in seconds.

        Returns:
            Completed process of the successful command.

        Raises:
            ImageBuildError: ``error_cls`` with command, exit code and stderr.
        """
        tool = str(cmd[0])
        try:
            if admin:
                result = self.run_as_admin(cmd, timeout=timeout)
            else:
                result = self.run(cmd, timeout=timeout)
        except CommandExecutionError as e:
            raise error_cls(e.message, command=e.command) from e

        if result.returncode != 0:
            stderr = _tail(result.stderr) or _tail(result.stdout)
            message = f"{tool} failed with exit code {result.returncode}"
            if stderr:
                message = f"{message}: {stderr}"
            raise error_cls(
                message,
                command=shlex.join(result.args),
                exit_code=result.returncode,
                stderr=result.stderr,
            )
        return result


__all__ = ["STDERR_TAIL", "CommandRunner"]
