"""
TLS certificate lifecycle: validation, self-signed issuance, PEM storage.
"""
import ipaddress
import logging
import os
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Callable, List, Optional

from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.x509.oid import ExtendedKeyUsageOID, NameOID

from ..models.config import CertificateConfig
from .errors import CertificateIssuanceError, CertificateParseError, CertificateReadError
from .models import CertificateInfo, CertificateMaterial

MIN_KEY_SIZE = 2048


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(moment: datetime) -> datetime:
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc)


def _load_certificate(certificate_pem: str) -> x509.Certificate:
    try:
        return x509.load_pem_x509_certificate(certificate_pem.encode())
    except (ValueError, TypeError, AttributeError) as e:
        raise CertificateParseError(f"Unreadable certificate: {e}") from e


class CertificateValidator:
    """Decides whether a stored certificate is still usable."""

    def __init__(self):
        self.logger = logging.getLogger(__name__)

    def parse_validity(self, certificate_pem: str) -> tuple[datetime, datetime]:
        """
        Return the certificate's (not_before, not_after) in UTC.

        Raises:
            CertificateParseError: If the PEM cannot be decoded
        """
        cert = _load_certificate(certificate_pem)
        return cert.not_valid_before_utc, cert.not_valid_after_utc

    def is_renewal_needed(self, certificate_pem: str, now: datetime, threshold_days: int) -> bool:
        """
        Check whether the certificate must be replaced.

        Renewal is needed when the certificate cannot be parsed, has already
        expired, or expires within ``threshold_days``.
        """
        try:
            _, not_after = self.parse_validity(certificate_pem)
        except CertificateParseError as e:
            self.logger.warning(f"Certificate could not be parsed, renewal required: {e}")
            return True

        now = _as_utc(now)
        if not_after <= now:
            return True
        return (not_after - now) <= timedelta(days=threshold_days)

    def days_remaining(self, certificate_pem: str, now: datetime) -> Optional[int]:
        """Whole days until expiry, or None if the certificate is unreadable."""
        try:
            _, not_after = self.parse_validity(certificate_pem)
        except CertificateParseError:
            return None
        return (not_after - _as_utc(now)).days

    def describe(self, certificate_pem: str, now: Optional[datetime] = None) -> CertificateInfo:
        """Extract information from a certificate."""
        cert = _load_certificate(certificate_pem)
        now = _as_utc(now or utc_now())
        not_before = cert.not_valid_before_utc
        not_after = cert.not_valid_after_utc

        return CertificateInfo(
            subject=cert.subject.rfc4514_string(),
            issuer=cert.issuer.rfc4514_string(),
            serial_number=str(cert.serial_number),
            not_before=not_before,
            not_after=not_after,
            is_valid=not_before <= now <= not_after,
            fingerprint=cert.fingerprint(hashes.SHA256()).hex(),
        )


class CertificateIssuer:
    """Generates a fresh RSA key pair and a self-signed server certificate."""

    def __init__(self):
        self.logger = logging.getLogger(__name__)

    def issue(self, config: CertificateConfig, now: Optional[datetime] = None) -> CertificateMaterial:
        """
        Issue a new self-signed certificate.

        Args:
            config: Subject, SAN and validity settings
            now: Start of the validity window (defaults to the current time)

        Returns:
            CertificateMaterial with PEM-encoded key and certificate

        Raises:
            CertificateIssuanceError: If key generation or signing fails
        """
        # X.509 validity has second resolution
        not_before = _as_utc(now or utc_now()).replace(microsecond=0)
        not_after = not_before + timedelta(days=config.validity_days)

        try:
            private_key = rsa.generate_private_key(
                public_exponent=65537,
                key_size=max(config.key_size, MIN_KEY_SIZE),
            )

            name = x509.Name([
                x509.NameAttribute(NameOID.COUNTRY_NAME, config.subject_country),
                x509.NameAttribute(NameOID.ORGANIZATION_NAME, config.subject_organization),
                x509.NameAttribute(NameOID.COMMON_NAME, config.subject_common_name),
            ])

            serial_number = config.serial_number or x509.random_serial_number()

            cert = x509.CertificateBuilder().subject_name(
                name
            ).issuer_name(
                name
            ).public_key(
                private_key.public_key()
            ).serial_number(
                serial_number
            ).not_valid_before(
                not_before
            ).not_valid_after(
                not_after
            ).add_extension(
                x509.BasicConstraints(ca=False, path_length=None),
                critical=True,
            ).add_extension(
                x509.KeyUsage(
                    digital_signature=True,
                    content_commitment=False,
                    key_encipherment=True,
                    data_encipherment=False,
                    key_agreement=False,
                    key_cert_sign=False,
                    crl_sign=False,
                    encipher_only=False,
                    decipher_only=False,
                ),
                critical=True,
            ).add_extension(
                x509.ExtendedKeyUsage([ExtendedKeyUsageOID.SERVER_AUTH]),
                critical=False,
            ).add_extension(
                x509.SubjectAlternativeName(self._subject_alt_names(config)),
                critical=False,
            ).sign(private_key, hashes.SHA256())

            key_pem = private_key.private_bytes(
                encoding=serialization.Encoding.PEM,
                format=serialization.PrivateFormat.PKCS8,
                encryption_algorithm=serialization.NoEncryption(),
            ).decode()
            cert_pem = cert.public_bytes(serialization.Encoding.PEM).decode()
        except Exception as e:
            raise CertificateIssuanceError(f"Failed to issue self-signed certificate: {e}") from e

        self.logger.info(
            f"Issued self-signed certificate for {config.subject_common_name} "
            f"(serial {serial_number}, valid until {cert.not_valid_after_utc.isoformat()})"
        )

        return CertificateMaterial(
            private_key_pem=key_pem,
            certificate_pem=cert_pem,
            not_before=cert.not_valid_before_utc,
            not_after=cert.not_valid_after_utc,
        )

    def _subject_alt_names(self, config: CertificateConfig) -> List[x509.GeneralName]:
        """Map SAN strings to IP or DNS general names."""
        names: List[x509.GeneralName] = []
        for entry in config.subject_alt_names or (config.subject_common_name,):
            entry = entry.strip()
            if not entry:
                continue
            try:
                names.append(x509.IPAddress(ipaddress.ip_address(entry)))
            except ValueError:
                names.append(x509.DNSName(entry))
        if not names:
            names.append(x509.DNSName(config.subject_common_name))
        return names


class CertificateStore:
    """Reads and writes the PEM key/certificate pair in the configured directory."""

    def __init__(self):
        self.logger = logging.getLogger(__name__)

    @staticmethod
    def key_path(config: CertificateConfig) -> Path:
        return Path(config.directory) / config.key_filename

    @staticmethod
    def cert_path(config: CertificateConfig) -> Path:
        return Path(config.directory) / config.cert_filename

    def load(self, config: CertificateConfig) -> Optional[CertificateMaterial]:
        """
        Load the stored pair.

        Returns:
            CertificateMaterial, or None if either file is missing

        Raises:
            CertificateReadError: If a file exists but cannot be read
            CertificateParseError: If the certificate cannot be decoded
        """
        key_path = self.key_path(config)
        cert_path = self.cert_path(config)

        if not key_path.is_file() or not cert_path.is_file():
            self.logger.debug(f"No stored certificate pair in {config.directory}")
            return None

        key_pem = self._read(key_path)
        cert_pem = self._read(cert_path)

        cert = _load_certificate(cert_pem)
        return CertificateMaterial(
            private_key_pem=key_pem,
            certificate_pem=cert_pem,
            not_before=cert.not_valid_before_utc,
            not_after=cert.not_valid_after_utc,
        )

    def persist(self, config: CertificateConfig, material: CertificateMaterial) -> None:
        """Write both PEM files, creating the directory if needed."""
        directory = Path(config.directory)
        directory.mkdir(parents=True, exist_ok=True)

        key_path = self.key_path(config)
        cert_path = self.cert_path(config)

        key_path.write_text(material.private_key_pem, encoding='utf-8')
        os.chmod(key_path, 0o600)
        cert_path.write_text(material.certificate_pem, encoding='utf-8')

        self.logger.info(f"Persisted certificate to {cert_path} and key to {key_path}")

    def _read(self, path: Path) -> str:
        try:
            return path.read_text(encoding='utf-8')
        except (OSError, UnicodeDecodeError) as e:
            raise CertificateReadError(str(path), str(e)) from e


class CertificateLifecycleManager:
    """Acquires a usable certificate: reuse the stored one or issue a replacement."""

    def __init__(
        self,
        config: CertificateConfig,
        validator: Optional[CertificateValidator] = None,
        issuer: Optional[CertificateIssuer] = None,
        store: Optional[CertificateStore] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.config = config
        self.validator = validator or CertificateValidator()
        self.issuer = issuer or CertificateIssuer()
        self.store = store or CertificateStore()
        self.clock = clock
        self.logger = logging.getLogger(__name__)
        self.last_renewed = False

    @property
    def key_path(self) -> Path:
        return self.store.key_path(self.config)

    @property
    def cert_path(self) -> Path:
        return self.store.cert_path(self.config)

    def acquire(self, now: Optional[datetime] = None) -> CertificateMaterial:
        """
        Return a certificate that satisfies the renewal threshold.

        A stored certificate that is still valid is returned unchanged.
        Otherwise a new one is issued and persisted.

        Raises:
            CertificateIssuanceError: If a replacement cannot be issued or written
        """
        now = _as_utc(now or self.clock())
        self.last_renewed = False

        try:
            existing = self.store.load(self.config)
        except (CertificateReadError, CertificateParseError) as e:
            self.logger.warning(f"Stored certificate unusable, renewal triggered: {e}")
            existing = None

        if existing is not None:
            threshold = self.config.renewal_threshold_days
            if not self.validator.is_renewal_needed(existing.certificate_pem, now, threshold):
                days_left = self.validator.days_remaining(existing.certificate_pem, now)
                self.logger.info(
                    f"TLS certificate valid until {existing.not_after.isoformat()} "
                    f"({days_left} days remaining)"
                )
                return existing
            self.logger.info(
                f"TLS certificate expires {existing.not_after.isoformat()}, "
                f"within {threshold} day threshold; renewal triggered"
            )
        else:
            self.logger.info(f"No usable TLS certificate in {self.config.directory}; renewal triggered")

        return self.renew(now)

    def renew(self, now: Optional[datetime] = None) -> CertificateMaterial:
        """Issue and persist a new certificate regardless of the stored one."""
        material = self.issuer.issue(self.config, now or self.clock())
        try:
            self.store.persist(self.config, material)
        except OSError as e:
            raise CertificateIssuanceError(f"Failed to persist certificate: {e}") from e

        self.last_renewed = True
        self.logger.info(
            f"New TLS certificate valid until {material.not_after.isoformat()} "
            f"({material.validity.days} days)"
        )
        return material
