"""
Configuration data models for the portfolio service.
"""
from dataclasses import dataclass, field
from typing import Optional, Tuple


@dataclass(frozen=True)
class CertificateConfig:
    """Where the TLS key pair lives and how it is issued and renewed."""
    directory: str = "Certificate"
    key_filename: str = "server.key"
    cert_filename: str = "server.crt"
    validity_days: int = 365
    renewal_threshold_days: int = 30
    subject_common_name: str = "localhost"
    subject_organization: str = "Portfolio Service"
    subject_country: str = "US"
    subject_alt_names: Tuple[str, ...] = ("localhost", "127.0.0.1")
    key_size: int = 2048
    # None means a random serial for every issuance
    serial_number: Optional[int] = None


@dataclass(frozen=True)
class BootstrapConfig:
    """Listener address and retry bounds for server startup."""
    listen_port: int
    listen_host: str = "0.0.0.0"
    max_bind_retries: int = 3
    retry_delay_ms: int = 1000
    port_clear_retries: int = 3
    port_clear_delay_ms: int = 500


@dataclass
class Config:
    """Main configuration class containing all application settings."""

    # Database settings
    database_path: str = "data/portfolio.db"

    # Server settings
    listen_host: str = "0.0.0.0"
    listen_port: int = 5085
    max_bind_retries: int = 3
    retry_delay_ms: int = 1000
    port_clear_retries: int = 3
    port_clear_delay_ms: int = 500

    # TLS settings
    cert_directory: str = "Certificate"
    key_filename: str = "server.key"
    cert_filename: str = "server.crt"
    validity_days: int = 365
    renewal_threshold_days: int = 30
    subject_common_name: str = "localhost"
    subject_organization: str = "Portfolio Service"
    subject_country: str = "US"
    subject_alt_names: Tuple[str, ...] = field(default_factory=lambda: ("localhost", "127.0.0.1"))
    key_size: int = 2048
    serial_number: Optional[int] = None

    # Content settings
    auto_seed: bool = True

    # Application settings
    log_level: str = "INFO"
    log_file_path: str = "logs/portfolio.log"

    def __post_init__(self):
        """Validate configuration after initialization."""
        if isinstance(self.subject_alt_names, list):
            self.subject_alt_names = tuple(self.subject_alt_names)
        self._validate_types()

    def _validate_types(self):
        """Ensure all configuration values have correct types."""
        if not isinstance(self.listen_port, int) or not (1 <= self.listen_port <= 65535):
            raise ValueError("listen_port must be an integer between 1 and 65535")

        if not isinstance(self.max_bind_retries, int) or self.max_bind_retries < 1:
            raise ValueError("max_bind_retries must be a positive integer")

        if not isinstance(self.port_clear_retries, int) or self.port_clear_retries < 1:
            raise ValueError("port_clear_retries must be a positive integer")

        for name in ("retry_delay_ms", "port_clear_delay_ms", "renewal_threshold_days"):
            value = getattr(self, name)
            if not isinstance(value, int) or value < 0:
                raise ValueError(f"{name} must be a non-negative integer")

        if not isinstance(self.validity_days, int) or self.validity_days <= 0:
            raise ValueError("validity_days must be a positive integer")

        if not isinstance(self.key_size, int) or self.key_size < 2048:
            raise ValueError("key_size must be at least 2048 bits")

        if len(self.subject_country) != 2:
            raise ValueError("subject_country must be a two-letter country code")

        if self.serial_number is not None and self.serial_number <= 0:
            raise ValueError("serial_number must be a positive integer")

        if self.log_level not in ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]:
            raise ValueError("log_level must be one of: DEBUG, INFO, WARNING, ERROR, CRITICAL")

    def certificate_config(self) -> CertificateConfig:
        """Build the immutable certificate settings for the lifecycle manager."""
        return CertificateConfig(
            directory=self.cert_directory,
            key_filename=self.key_filename,
            cert_filename=self.cert_filename,
            validity_days=self.validity_days,
            renewal_threshold_days=self.renewal_threshold_days,
            subject_common_name=self.subject_common_name,
            subject_organization=self.subject_organization,
            subject_country=self.subject_country,
            subject_alt_names=tuple(self.subject_alt_names),
            key_size=self.key_size,
            serial_number=self.serial_number,
        )

    def bootstrap_config(self, host: Optional[str] = None, port: Optional[int] = None) -> BootstrapConfig:
        """Build the immutable bootstrap settings, optionally overriding the address."""
        return BootstrapConfig(
            listen_port=port if port is not None else self.listen_port,
            listen_host=host if host is not None else self.listen_host,
            max_bind_retries=self.max_bind_retries,
            retry_delay_ms=self.retry_delay_ms,
            port_clear_retries=self.port_clear_retries,
            port_clear_delay_ms=self.port_clear_delay_ms,
        )


@dataclass
class ConfigValidationError:
    """Represents a configuration validation error."""
    field: str
    message: str
    severity: str = "error"  # error, warning

    def __str__(self):
        return f"{self.severity.upper()}: {self.field} - {self.message}"


@dataclass
class ConfigValidationResult:
    """Result of configuration validation."""
    is_valid: bool
    errors: list[ConfigValidationError]
    warnings: list[ConfigValidationError]

    def __post_init__(self):
        """Separate errors and warnings."""
        all_issues = self.errors + self.warnings
        self.errors = [e for e in all_issues if e.severity == "error"]
        self.warnings = [e for e in all_issues if e.severity == "warning"]

    def has_errors(self) -> bool:
        return len(self.errors) > 0

    def has_warnings(self) -> bool:
        return len(self.warnings) > 0

    def get_error_summary(self) -> str:
        """Get a formatted summary of all errors and warnings."""
        lines = []

        if self.errors:
            lines.append("Configuration Errors:")
            for error in self.errors:
                lines.append(f"  - {error}")

        if self.warnings:
            lines.append("Configuration Warnings:")
            for warning in self.warnings:
                lines.append(f"  - {warning}")

        return "\n".join(lines) if lines else "Configuration is valid"
