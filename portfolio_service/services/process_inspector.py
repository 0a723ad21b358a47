"""
Platform-specific listener enumeration and process termination.

The POSIX inspector asks ``lsof`` for every TCP listener and the Windows
inspector parses ``netstat -ano``. Both match the port number exactly and
never report the calling process.
"""
import logging
import os
import signal
import subprocess
import sys
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable, Iterable, List, Optional

from ..security.errors import PortProbeError, ProcessTerminationError

COMMAND_TIMEOUT_SECONDS = 10


@dataclass(frozen=True)
class ProcessHandle:
    """An OS process found holding a port."""
    pid: int


class PlatformProcessInspector(ABC):
    """Capability interface for finding and killing port owners."""

    def __init__(self, runner: Callable[..., subprocess.CompletedProcess] = subprocess.run,
                 own_pid: Optional[int] = None):
        self.runner = runner
        self.own_pid = own_pid if own_pid is not None else os.getpid()
        self.logger = logging.getLogger(__name__)

    @abstractmethod
    def _listener_pids(self, port: int) -> Iterable[int]:
        """Yield PIDs of processes listening on exactly ``port``."""

    @abstractmethod
    def terminate(self, handle: ProcessHandle) -> None:
        """
        Forcibly terminate a process.

        Raises:
            ProcessTerminationError: If the process could not be killed
        """

    def is_listening(self, port: int) -> bool:
        """
        Check for an active listener on the port, the caller's own process included.

        Raises:
            PortProbeError: If listeners cannot be enumerated
        """
        return any(True for _ in self._listener_pids(port))

    def find_port_owners(self, port: int) -> List[ProcessHandle]:
        """
        List processes listening on the port, excluding the caller.

        Raises:
            PortProbeError: If listeners cannot be enumerated
        """
        pids = sorted({pid for pid in self._listener_pids(port) if pid > 0 and pid != self.own_pid})
        return [ProcessHandle(pid=pid) for pid in pids]

    def _run(self, command: List[str]) -> subprocess.CompletedProcess:
        try:
            return self.runner(
                command,
                capture_output=True,
                text=True,
                check=False,
                timeout=COMMAND_TIMEOUT_SECONDS,
            )
        except (OSError, subprocess.SubprocessError) as e:
            raise PortProbeError(f"Failed to run {command[0]}: {e}") from e


def parse_port(address: str) -> Optional[int]:
    """Port number of an address such as ``*:8080``, ``[::1]:443`` or ``0.0.0.0:80``."""
    _, sep, port = address.rpartition(':')
    if not sep or not port.isdigit():
        return None
    return int(port)


class PosixProcessInspector(PlatformProcessInspector):
    """Linux/macOS inspector backed by ``lsof`` and ``kill``."""

    def _listener_pids(self, port: int) -> Iterable[int]:
        result = self._run(["lsof", "-nP", "-iTCP", "-sTCP:LISTEN", "-Fpn"])

        # lsof exits 1 with no output when nothing matches
        if result.returncode != 0 and (result.stdout.strip() or result.stderr.strip()):
            raise PortProbeError(
                f"lsof exited with {result.returncode}: {result.stderr.strip()}"
            )

        current_pid = None
        for line in result.stdout.splitlines():
            if line.startswith('p'):
                current_pid = int(line[1:]) if line[1:].isdigit() else None
            elif line.startswith('n') and current_pid is not None:
                if parse_port(line[1:]) == port:
                    yield current_pid

    def terminate(self, handle: ProcessHandle) -> None:
        self.logger.info(f"Killing process {handle.pid}")
        try:
            os.kill(handle.pid, signal.SIGKILL)
        except OSError as e:
            raise ProcessTerminationError(handle.pid, str(e)) from e


class WindowsProcessInspector(PlatformProcessInspector):
    """Windows inspector backed by ``netstat -ano`` and ``taskkill``."""

    def _listener_pids(self, port: int) -> Iterable[int]:
        result = self._run(["netstat", "-ano"])
        if result.returncode != 0:
            raise PortProbeError(
                f"netstat exited with {result.returncode}: {result.stderr.strip()}"
            )

        for line in result.stdout.splitlines():
            parts = line.split()
            # Proto  Local Address  Foreign Address  State  PID
            if len(parts) < 5 or not parts[0].upper().startswith('TCP'):
                continue
            if parts[3].upper() != 'LISTENING':
                continue
            if parse_port(parts[1]) == port and parts[-1].isdigit():
                yield int(parts[-1])

    def terminate(self, handle: ProcessHandle) -> None:
        self.logger.info(f"Killing process {handle.pid}")
        try:
            result = self.runner(
                ["taskkill", "/F", "/PID", str(handle.pid)],
                capture_output=True,
                text=True,
                check=False,
                timeout=COMMAND_TIMEOUT_SECONDS,
            )
        except (OSError, subprocess.SubprocessError) as e:
            raise ProcessTerminationError(handle.pid, str(e)) from e

        if result.returncode != 0:
            raise ProcessTerminationError(handle.pid, result.stderr.strip() or result.stdout.strip())


def select_process_inspector(platform: Optional[str] = None, **kwargs) -> PlatformProcessInspector:
    """Pick the inspector for the running (or given) platform."""
    platform = platform or sys.platform
    if platform.startswith('win'):
        return WindowsProcessInspector(**kwargs)
    return PosixProcessInspector(**kwargs)
