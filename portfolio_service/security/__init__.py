"""
Security package for TLS certificate management.
"""
from .models import CertificateMaterial, CertificateInfo
from .errors import (
    TransportBootstrapError,
    CertificateReadError,
    CertificateParseError,
    CertificateIssuanceError,
    PortProbeError,
    ProcessTerminationError,
    BindError,
    BindAddressInUseError,
    BindOtherError,
)
from .certificates import (
    CertificateValidator,
    CertificateIssuer,
    CertificateStore,
    CertificateLifecycleManager,
)

__all__ = [
    'CertificateMaterial',
    'CertificateInfo',
    'TransportBootstrapError',
    'CertificateReadError',
    'CertificateParseError',
    'CertificateIssuanceError',
    'PortProbeError',
    'ProcessTerminationError',
    'BindError',
    'BindAddressInUseError',
    'BindOtherError',
    'CertificateValidator',
    'CertificateIssuer',
    'CertificateStore',
    'CertificateLifecycleManager',
]
