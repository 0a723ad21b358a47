"""
Tests for certificate validation, issuance, storage and lifecycle management.
"""
import os
import shutil
import stat
import tempfile
import unittest
from datetime import datetime, timedelta, timezone
from unittest.mock import Mock, patch

from cryptography import x509
from cryptography.hazmat.primitives import serialization
from cryptography.x509.oid import ExtendedKeyUsageOID, NameOID

from portfolio_service.models.config import CertificateConfig
from portfolio_service.security.certificates import (
    CertificateIssuer,
    CertificateLifecycleManager,
    CertificateStore,
    CertificateValidator,
)
from portfolio_service.security.errors import CertificateIssuanceError, CertificateParseError
from portfolio_service.security.models import CertificateMaterial


def _issue_with_remaining(config: CertificateConfig, days_remaining: int, now: datetime) -> CertificateMaterial:
    """Issue a certificate that expires ``days_remaining`` days after ``now``."""
    issued_at = now - timedelta(days=config.validity_days - days_remaining)
    return CertificateIssuer().issue(config, now=issued_at)


class TestCertificateValidator(unittest.TestCase):
    """Test cases for CertificateValidator."""

    @classmethod
    def setUpClass(cls):
        cls.now = datetime.now(timezone.utc).replace(microsecond=0)
        cls.config = CertificateConfig(validity_days=365, renewal_threshold_days=30)
        cls.material = CertificateIssuer().issue(cls.config, now=cls.now)

    def setUp(self):
        self.validator = CertificateValidator()

    def test_fresh_certificate_needs_no_renewal(self):
        """Test a certificate with a full validity window is kept."""
        self.assertFalse(self.validator.is_renewal_needed(self.material.certificate_pem, self.now, 30))

    def test_renewal_needed_at_threshold_boundary(self):
        """Test renewal is required when exactly threshold days remain."""
        at_boundary = self.material.not_after - timedelta(days=30)
        self.assertTrue(self.validator.is_renewal_needed(self.material.certificate_pem, at_boundary, 30))

    def test_no_renewal_just_outside_threshold(self):
        """Test renewal is not required one second before the threshold is reached."""
        before_boundary = self.material.not_after - timedelta(days=30, seconds=1)
        self.assertFalse(self.validator.is_renewal_needed(self.material.certificate_pem, before_boundary, 30))

    def test_expired_certificate_needs_renewal(self):
        """Test an expired certificate is flagged even with a zero threshold."""
        after_expiry = self.material.not_after + timedelta(seconds=1)
        self.assertTrue(self.validator.is_renewal_needed(self.material.certificate_pem, after_expiry, 0))
        self.assertTrue(self.validator.is_renewal_needed(self.material.certificate_pem, self.material.not_after, 0))

    def test_unparseable_certificate_needs_renewal(self):
        """Test garbage PEM is treated as invalid."""
        self.assertTrue(self.validator.is_renewal_needed("not a certificate", self.now, 30))
        self.assertTrue(self.validator.is_renewal_needed("", self.now, 30))

    def test_naive_now_is_treated_as_utc(self):
        """Test a naive datetime is compared as UTC."""
        naive_now = self.now.replace(tzinfo=None)
        self.assertFalse(self.validator.is_renewal_needed(self.material.certificate_pem, naive_now, 30))

    def test_days_remaining(self):
        """Test days remaining is reported for the expiry log."""
        self.assertEqual(self.validator.days_remaining(self.material.certificate_pem, self.now), 365)
        self.assertIsNone(self.validator.days_remaining("garbage", self.now))

    def test_parse_validity_raises_on_garbage(self):
        """Test parse errors surface as CertificateParseError."""
        with self.assertRaises(CertificateParseError):
            self.validator.parse_validity("-----BEGIN CERTIFICATE-----\nabc\n-----END CERTIFICATE-----\n")

    def test_describe(self):
        """Test certificate info extraction."""
        info = self.validator.describe(self.material.certificate_pem, self.now)

        self.assertIn("CN=localhost", info.subject)
        self.assertEqual(info.subject, info.issuer)
        self.assertTrue(info.is_valid)
        self.assertEqual(len(info.fingerprint), 64)


class TestCertificateIssuer(unittest.TestCase):
    """Test cases for CertificateIssuer."""

    def setUp(self):
        self.config = CertificateConfig(
            subject_common_name="portfolio.local",
            subject_organization="Test Org",
            subject_country="BE",
            subject_alt_names=("portfolio.local", "127.0.0.1", "::1"),
        )
        self.issuer = CertificateIssuer()

    def test_issue_builds_self_signed_certificate(self):
        """Test subject equals issuer and both carry the configured name."""
        material = self.issuer.issue(self.config)
        cert = x509.load_pem_x509_certificate(material.certificate_pem.encode())

        self.assertEqual(cert.subject, cert.issuer)
        self.assertEqual(cert.subject.get_attributes_for_oid(NameOID.COMMON_NAME)[0].value, "portfolio.local")
        self.assertEqual(cert.subject.get_attributes_for_oid(NameOID.ORGANIZATION_NAME)[0].value, "Test Org")
        self.assertEqual(cert.subject.get_attributes_for_oid(NameOID.COUNTRY_NAME)[0].value, "BE")

    def test_issue_sets_validity_window(self):
        """Test the window length equals validity_days."""
        now = datetime(2026, 1, 15, 12, 30, 45, 999, tzinfo=timezone.utc)
        material = self.issuer.issue(self.config, now=now)

        self.assertEqual(material.not_before, now.replace(microsecond=0))
        self.assertEqual(material.not_after - material.not_before, timedelta(days=365))
        self.assertGreater(material.not_after, material.not_before)

    def test_issue_adds_required_extensions(self):
        """Test basic constraints, key usage, EKU and SAN extensions."""
        material = self.issuer.issue(self.config)
        cert = x509.load_pem_x509_certificate(material.certificate_pem.encode())

        basic = cert.extensions.get_extension_for_class(x509.BasicConstraints).value
        self.assertFalse(basic.ca)

        usage = cert.extensions.get_extension_for_class(x509.KeyUsage).value
        self.assertTrue(usage.digital_signature)
        self.assertTrue(usage.key_encipherment)
        self.assertFalse(usage.key_cert_sign)

        eku = cert.extensions.get_extension_for_class(x509.ExtendedKeyUsage).value
        self.assertIn(ExtendedKeyUsageOID.SERVER_AUTH, list(eku))

        san = cert.extensions.get_extension_for_class(x509.SubjectAlternativeName).value
        self.assertEqual(san.get_values_for_type(x509.DNSName), ["portfolio.local"])
        self.assertEqual([str(ip) for ip in san.get_values_for_type(x509.IPAddress)], ["127.0.0.1", "::1"])

    def test_issue_uses_sha256_and_rsa_2048(self):
        """Test signature hash and minimum key size."""
        material = self.issuer.issue(CertificateConfig(key_size=1024))
        cert = x509.load_pem_x509_certificate(material.certificate_pem.encode())
        key = serialization.load_pem_private_key(material.private_key_pem.encode(), password=None)

        self.assertEqual(cert.signature_hash_algorithm.name, "sha256")
        self.assertGreaterEqual(key.key_size, 2048)
        self.assertEqual(
            key.public_key().public_numbers(),
            cert.public_key().public_numbers(),
        )

    def test_each_issue_produces_distinct_key_pair(self):
        """Test issuance is non-deterministic."""
        first = self.issuer.issue(self.config)
        second = self.issuer.issue(self.config)

        self.assertNotEqual(first.private_key_pem, second.private_key_pem)
        self.assertNotEqual(first.certificate_pem, second.certificate_pem)

    def test_serial_number_random_by_default(self):
        """Test serial numbers differ between issuances when not configured."""
        first = x509.load_pem_x509_certificate(self.issuer.issue(self.config).certificate_pem.encode())
        second = x509.load_pem_x509_certificate(self.issuer.issue(self.config).certificate_pem.encode())
        self.assertNotEqual(first.serial_number, second.serial_number)

    def test_configured_serial_number(self):
        """Test a configured serial number is used as is."""
        config = CertificateConfig(serial_number=4242)
        cert = x509.load_pem_x509_certificate(self.issuer.issue(config).certificate_pem.encode())
        self.assertEqual(cert.serial_number, 4242)

    def test_empty_san_falls_back_to_common_name(self):
        """Test the common name is used when no SAN entries are configured."""
        config = CertificateConfig(subject_common_name="fallback.local", subject_alt_names=())
        cert = x509.load_pem_x509_certificate(self.issuer.issue(config).certificate_pem.encode())
        san = cert.extensions.get_extension_for_class(x509.SubjectAlternativeName).value
        self.assertEqual(san.get_values_for_type(x509.DNSName), ["fallback.local"])

    @patch('portfolio_service.security.certificates.rsa.generate_private_key')
    def test_issue_wraps_failures(self, mock_generate):
        """Test key generation failures raise CertificateIssuanceError."""
        mock_generate.side_effect = ValueError("no entropy")

        with self.assertRaises(CertificateIssuanceError) as cm:
            self.issuer.issue(self.config)
        self.assertIn("no entropy", str(cm.exception))


class TestCertificateStore(unittest.TestCase):
    """Test cases for CertificateStore."""

    def setUp(self):
        self.temp_dir = tempfile.mkdtemp()
        self.config = CertificateConfig(directory=os.path.join(self.temp_dir, "nested", "Certificate"))
        self.store = CertificateStore()

    def tearDown(self):
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def test_load_returns_none_when_directory_missing(self):
        """Test absent files produce None."""
        self.assertIsNone(self.store.load(self.config))

    def test_persist_creates_directory_and_files(self):
        """Test persist writes both PEM files into a new directory."""
        material = CertificateIssuer().issue(self.config)
        self.store.persist(self.config, material)

        key_path = os.path.join(self.config.directory, "server.key")
        cert_path = os.path.join(self.config.directory, "server.crt")
        self.assertTrue(os.path.isfile(key_path))
        self.assertTrue(os.path.isfile(cert_path))

        with open(cert_path) as f:
            self.assertEqual(f.read(), material.certificate_pem)
        with open(key_path) as f:
            self.assertEqual(f.read(), material.private_key_pem)

        if os.name == 'posix':
            self.assertEqual(stat.S_IMODE(os.stat(key_path).st_mode), 0o600)

    def test_load_round_trip(self):
        """Test persisted material loads back unchanged."""
        material = CertificateIssuer().issue(self.config)
        self.store.persist(self.config, material)

        self.assertEqual(self.store.load(self.config), material)

    def test_load_returns_none_when_key_missing(self):
        """Test a half pair is treated as absent and left alone."""
        material = CertificateIssuer().issue(self.config)
        self.store.persist(self.config, material)
        os.remove(os.path.join(self.config.directory, "server.key"))

        self.assertIsNone(self.store.load(self.config))
        self.assertTrue(os.path.isfile(os.path.join(self.config.directory, "server.crt")))

    def test_load_raises_parse_error_for_corrupt_certificate(self):
        """Test a corrupt certificate raises CertificateParseError."""
        os.makedirs(self.config.directory)
        with open(os.path.join(self.config.directory, "server.key"), 'w') as f:
            f.write("key")
        with open(os.path.join(self.config.directory, "server.crt"), 'w') as f:
            f.write("corrupt")

        with self.assertRaises(CertificateParseError):
            self.store.load(self.config)


class TestCertificateLifecycleManager(unittest.TestCase):
    """Test cases for CertificateLifecycleManager."""

    def setUp(self):
        self.temp_dir = tempfile.mkdtemp()
        self.config = CertificateConfig(
            directory=os.path.join(self.temp_dir, "Certificate"),
            validity_days=365,
            renewal_threshold_days=30,
        )
        self.now = datetime.now(timezone.utc)

    def tearDown(self):
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def _read(self, filename):
        with open(os.path.join(self.config.directory, filename)) as f:
            return f.read()

    def test_acquire_creates_files_in_empty_directory(self):
        """Test first acquisition issues a 365-day certificate and writes both files."""
        manager = CertificateLifecycleManager(self.config)

        material = manager.acquire()

        self.assertTrue(manager.last_renewed)
        self.assertTrue(manager.key_path.is_file())
        self.assertTrue(manager.cert_path.is_file())
        self.assertEqual(material.not_after - material.not_before, timedelta(days=365))
        self.assertEqual(self._read("server.crt"), material.certificate_pem)

    def test_acquire_twice_returns_identical_material(self):
        """Test a still-valid certificate is never regenerated."""
        manager = CertificateLifecycleManager(self.config)

        first = manager.acquire()
        second = manager.acquire()

        self.assertEqual(first.certificate_pem, second.certificate_pem)
        self.assertEqual(first.private_key_pem, second.private_key_pem)
        self.assertFalse(manager.last_renewed)

    def test_acquire_renews_certificate_inside_threshold(self):
        """Test a certificate with 10 days left is replaced."""
        store = CertificateStore()
        expiring = _issue_with_remaining(self.config, 10, self.now)
        store.persist(self.config, expiring)

        manager = CertificateLifecycleManager(self.config)
        renewed = manager.acquire(now=self.now)

        self.assertTrue(manager.last_renewed)
        self.assertNotEqual(renewed.certificate_pem, expiring.certificate_pem)
        self.assertNotEqual(renewed.private_key_pem, expiring.private_key_pem)
        self.assertEqual(self._read("server.crt"), renewed.certificate_pem)
        self.assertGreater(renewed.not_after, expiring.not_after)

    def test_acquire_keeps_certificate_outside_threshold(self):
        """Test a certificate with 31 days left is kept."""
        store = CertificateStore()
        valid = _issue_with_remaining(self.config, 31, self.now)
        store.persist(self.config, valid)

        issuer = Mock(wraps=CertificateIssuer())
        manager = CertificateLifecycleManager(self.config, issuer=issuer)

        self.assertEqual(manager.acquire(now=self.now), valid)
        issuer.issue.assert_not_called()

    def test_acquire_replaces_corrupt_certificate(self):
        """Test an unreadable stored certificate triggers renewal."""
        os.makedirs(self.config.directory)
        with open(os.path.join(self.config.directory, "server.key"), 'w') as f:
            f.write("stale key")
        with open(os.path.join(self.config.directory, "server.crt"), 'w') as f:
            f.write("corrupt certificate")

        manager = CertificateLifecycleManager(self.config)
        material = manager.acquire()

        self.assertTrue(manager.last_renewed)
        self.assertEqual(self._read("server.crt"), material.certificate_pem)

    def test_acquire_uses_injected_clock(self):
        """Test the clock decides whether the stored certificate is expiring."""
        manager = CertificateLifecycleManager(self.config)
        first = manager.acquire()

        later = CertificateLifecycleManager(self.config, clock=lambda: first.not_after - timedelta(days=5))
        second = later.acquire()

        self.assertTrue(later.last_renewed)
        self.assertNotEqual(first.certificate_pem, second.certificate_pem)

    def test_persist_failure_raises_issuance_error(self):
        """Test a write failure means no certificate is available."""
        store = Mock(wraps=CertificateStore())
        store.persist.side_effect = PermissionError("read-only filesystem")
        manager = CertificateLifecycleManager(self.config, store=store)

        with self.assertRaises(CertificateIssuanceError):
            manager.acquire()

    def test_issuance_failure_propagates(self):
        """Test issuer failures are not swallowed by acquire."""
        issuer = Mock()
        issuer.issue.side_effect = CertificateIssuanceError("boom")
        manager = CertificateLifecycleManager(self.config, issuer=issuer)

        with self.assertRaises(CertificateIssuanceError):
            manager.acquire()
        self.assertFalse(manager.last_renewed)

    def test_renew_always_issues(self):
        """Test renew replaces even a valid certificate."""
        manager = CertificateLifecycleManager(self.config)
        first = manager.acquire()
        second = manager.renew()

        self.assertNotEqual(first.certificate_pem, second.certificate_pem)
        self.assertEqual(self._read("server.crt"), second.certificate_pem)


if __name__ == '__main__':
    unittest.main()
