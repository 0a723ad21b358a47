"""
Port probing and reclamation for server startup.
"""
import logging
import time
from dataclasses import dataclass, field
from typing import Callable, List, Optional

from ..security.errors import PortProbeError, ProcessTerminationError
from .process_inspector import PlatformProcessInspector, select_process_inspector


@dataclass
class PortReclamationResult:
    """Outcome of one free_port pass."""
    port: int
    freed: bool
    attempts: int = 0
    terminated_pids: List[int] = field(default_factory=list)
    warning: Optional[str] = None


class PortProbe:
    """Checks whether a TCP port currently has an active listener."""

    def __init__(self, inspector: Optional[PlatformProcessInspector] = None):
        self.inspector = inspector or select_process_inspector()
        self.logger = logging.getLogger(__name__)

    def is_bound(self, port: int) -> bool:
        """
        Check whether ``port`` has a listener.

        Enumeration failures are reported as "not bound".
        """
        try:
            return self.inspector.is_listening(port)
        except PortProbeError as e:
            self.logger.debug(f"Port probe for {port} failed, assuming free: {e}")
            return False


class ProcessReaper:
    """Frees a port by killing whatever processes listen on it."""

    def __init__(self, inspector: Optional[PlatformProcessInspector] = None,
                 probe: Optional[PortProbe] = None,
                 sleep: Callable[[float], None] = time.sleep):
        self.inspector = inspector or select_process_inspector()
        self.probe = probe or PortProbe(self.inspector)
        self.sleep = sleep
        self.logger = logging.getLogger(__name__)

    def free_port(self, port: int, max_retries: int = 3, delay_ms: int = 500) -> PortReclamationResult:
        """
        Make sure nothing listens on ``port``.

        Args:
            port: TCP port to reclaim
            max_retries: Number of kill-and-wait rounds
            delay_ms: Pause after each round

        Returns:
            PortReclamationResult; ``freed`` is False if the port is still bound
        """
        result = PortReclamationResult(port=port, freed=False)

        for attempt in range(1, max_retries + 1):
            if not self.probe.is_bound(port):
                result.freed = True
                return result

            result.attempts = attempt
            self.logger.info(f"Port {port} is in use. Attempt {attempt}/{max_retries} to free it...")

            try:
                owners = self.inspector.find_port_owners(port)
            except PortProbeError as e:
                self.logger.debug(f"Could not list owners of port {port}: {e}")
                owners = []

            for handle in owners:
                try:
                    self.inspector.terminate(handle)
                    result.terminated_pids.append(handle.pid)
                except ProcessTerminationError as e:
                    # The process may have exited between enumeration and kill
                    self.logger.debug(f"Ignoring termination failure: {e}")

            self.sleep(delay_ms / 1000.0)

        if self.probe.is_bound(port):
            result.warning = f"Port {port} may still be in use after {max_retries} attempts"
            self.logger.warning(result.warning)
        else:
            result.freed = True

        return result
