"""
Remote command execution on cluster hosts.
"""

import asyncio
from abc import ABC, abstractmethod
from typing import List, Optional

from ..config import get_settings
from ..exceptions import RemoteCommandError, RemoteCommandTimeoutError
from ..utils.logging import get_logger

logger = get_logger(__name__)


class RemoteCommandExecutor(ABC):
    """Runs shell commands on a remote host and returns their output."""

    @abstractmethod
    async def execute(self, host: str, command: str, user: Optional[str] = None,
                      key_file: Optional[str] = None, timeout: Optional[float] = None) -> str:
        """Run ``command`` on ``host``.

        Args:
            host: Target host
            command: Shell command line
            user: Remote user
            key_file: SSH private key path
            timeout: Seconds before the call is abandoned

        Returns:
            Standard output of the command

        Raises:
            RemoteCommandTimeoutError: If the command exceeds its timeout
            RemoteCommandError: If the command cannot run or exits non-zero
        """


class SSHCommandExecutor(RemoteCommandExecutor):
    """Executes commands through the OpenSSH client in batch mode."""

    def __init__(self, ssh_binary: Optional[str] = None, port: Optional[int] = None,
                 connect_timeout: Optional[int] = None, default_timeout: Optional[float] = None):
        remote = get_settings().remote
        self.ssh_binary = ssh_binary or remote.ssh_binary
        self.port = port or remote.ssh_port
        self.connect_timeout = connect_timeout or remote.connect_timeout
        self.default_timeout = default_timeout or remote.command_timeout

    def build_command(self, host: str, command: str, user: Optional[str] = None,
                      key_file: Optional[str] = None) -> List[str]:
        """Build the ssh argument vector for a remote command."""
        cmd = [
            self.ssh_binary,
            "-o", "BatchMode=yes",
            "-o", "StrictHostKeyChecking=no",
            "-o", f"ConnectTimeout={self.connect_timeout}",
            "-p", str(self.port),
        ]
        if key_file:
            cmd.extend(["-i", key_file])
        cmd.append(f"{user}@{host}" if user else host)
        cmd.append(command)
        return cmd

    async def execute(self, host: str, command: str, user: Optional[str] = None,
                      key_file: Optional[str] = None, timeout: Optional[float] = None) -> str:
        timeout = timeout or self.default_timeout
        cmd = self.build_command(host, command, user=user, key_file=key_file)

        logger.debug(f"Running remote command on {host}: {command}")

        try:
            process = await asyncio.create_subprocess_exec(
                *cmd,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE
            )
        except FileNotFoundError as e:
            raise RemoteCommandError(
                host=host,
                command=command,
                exit_code=-1,
                stderr=f"{self.ssh_binary} command not found",
                cause=e
            )

        try:
            stdout, stderr = await asyncio.wait_for(process.communicate(), timeout=timeout)
        except asyncio.TimeoutError:
            raise RemoteCommandTimeoutError(host=host, command=command, timeout_seconds=timeout)
        finally:
            # Also reached when the caller cancels us
            if process.returncode is None:
                await self._kill(process)

        if process.returncode != 0:
            error_msg = stderr.decode(errors="replace") if stderr else "Unknown error"
            raise RemoteCommandError(
                host=host,
                command=command,
                exit_code=process.returncode,
                stderr=error_msg
            )

        output = stdout.decode(errors="replace") if stdout else ""
        logger.debug(f"Command output from {host}: {output.strip()}")
        return output

    @staticmethod
    async def _kill(process: asyncio.subprocess.Process) -> None:
        try:
            process.kill()
        except ProcessLookupError:
            # Exited on its own after the returncode check
            pass
        await process.wait()
