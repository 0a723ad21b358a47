"""
Error taxonomy for the transport-security bootstrap.

Parse, probe and termination errors are resolved where they occur. Only
issuance errors, non-retryable bind errors and exhausted address-in-use
retries reach the caller, and only as a failed bootstrap result.
"""
from typing import Optional


class TransportBootstrapError(Exception):
    """Base class for all bootstrap errors."""


class CertificateReadError(TransportBootstrapError):
    """A certificate or key file exists but could not be read."""

    def __init__(self, path: str, reason: str):
        self.path = path
        self.reason = reason
        super().__init__(f"Failed to read {path}: {reason}")


class CertificateParseError(TransportBootstrapError):
    """Certificate PEM could not be decoded. Triggers renewal."""


class CertificateIssuanceError(TransportBootstrapError):
    """A new key pair or certificate could not be generated or persisted."""


class PortProbeError(TransportBootstrapError):
    """Listening sockets could not be enumerated."""


class ProcessTerminationError(TransportBootstrapError):
    """A process bound to the port could not be terminated."""

    def __init__(self, pid: int, reason: str):
        self.pid = pid
        self.reason = reason
        super().__init__(f"Failed to terminate PID {pid}: {reason}")


class BindError(TransportBootstrapError):
    """Binding the listener failed."""

    def __init__(self, port: int, message: str, errno: Optional[int] = None):
        self.port = port
        self.errno = errno
        super().__init__(message)


class BindAddressInUseError(BindError):
    """The port is held by another listener."""


class BindOtherError(BindError):
    """Any bind failure other than address-in-use (permissions, bad certificate)."""
