"""
Security models for TLS certificate management.
"""
from dataclasses import dataclass
from datetime import datetime, timedelta


@dataclass(frozen=True)
class CertificateMaterial:
    """A PEM-encoded private key and its certificate."""
    private_key_pem: str
    certificate_pem: str
    not_before: datetime
    not_after: datetime

    @property
    def validity(self) -> timedelta:
        return self.not_after - self.not_before


@dataclass
class CertificateInfo:
    """Information about a certificate."""
    subject: str
    issuer: str
    serial_number: str
    not_before: datetime
    not_after: datetime
    is_valid: bool
    fingerprint: str
