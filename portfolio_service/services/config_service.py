"""
Configuration service for loading and validating application settings.
"""
import configparser
import logging
import os
from typing import Any, Dict, Optional

from ..models.config import Config, ConfigValidationError, ConfigValidationResult

# property key -> (Config field, type); both "section.key" and bare keys are accepted
CONFIG_MAPPING = {
    # Database settings
    "database.path": ("database_path", str),
    "database_path": ("database_path", str),

    # Server settings
    "server.host": ("listen_host", str),
    "listen_host": ("listen_host", str),
    "server.port": ("listen_port", int),
    "listen_port": ("listen_port", int),
    "server.max_bind_retries": ("max_bind_retries", int),
    "max_bind_retries": ("max_bind_retries", int),
    "server.retry_delay_ms": ("retry_delay_ms", int),
    "retry_delay_ms": ("retry_delay_ms", int),
    "server.port_clear_retries": ("port_clear_retries", int),
    "port_clear_retries": ("port_clear_retries", int),
    "server.port_clear_delay_ms": ("port_clear_delay_ms", int),
    "port_clear_delay_ms": ("port_clear_delay_ms", int),

    # TLS settings
    "tls.cert_directory": ("cert_directory", str),
    "cert_directory": ("cert_directory", str),
    "tls.key_filename": ("key_filename", str),
    "key_filename": ("key_filename", str),
    "tls.cert_filename": ("cert_filename", str),
    "cert_filename": ("cert_filename", str),
    "tls.validity_days": ("validity_days", int),
    "validity_days": ("validity_days", int),
    "tls.renewal_threshold_days": ("renewal_threshold_days", int),
    "renewal_threshold_days": ("renewal_threshold_days", int),
    "tls.common_name": ("subject_common_name", str),
    "tls.organization": ("subject_organization", str),
    "tls.country": ("subject_country", str),
    "tls.subject_alt_names": ("subject_alt_names", tuple),
    "subject_alt_names": ("subject_alt_names", tuple),
    "tls.key_size": ("key_size", int),
    "tls.serial_number": ("serial_number", int),

    # Content settings
    "content.auto_seed": ("auto_seed", bool),
    "auto_seed": ("auto_seed", bool),

    # Application settings
    "app.log_level": ("log_level", str),
    "log_level": ("log_level", str),
    "app.log_file_path": ("log_file_path", str),
    "log_file_path": ("log_file_path", str),
}

DEFAULT_CONFIG_CONTENT = """# Portfolio Service Configuration File

[database]
path = data/portfolio.db

[server]
host = 0.0.0.0
port = 5085
max_bind_retries = 3
retry_delay_ms = 1000
port_clear_retries = 3
port_clear_delay_ms = 500

[tls]
cert_directory = Certificate
key_filename = server.key
cert_filename = server.crt
validity_days = 365
renewal_threshold_days = 30
common_name = localhost
organization = Portfolio Service
country = US
subject_alt_names = localhost, 127.0.0.1
# leave empty for a random serial on every issuance
serial_number =

[content]
auto_seed = true

[app]
log_level = INFO
log_file_path = logs/portfolio.log
"""


class ConfigService:
    """Service for loading and validating application configuration."""

    def __init__(self, config_path: Optional[str] = None):
        self.logger = logging.getLogger(__name__)
        self._config = None
        if config_path:
            self._config = self.load_config(config_path)

    def get_config(self) -> Config:
        """
        Get the loaded configuration.

        Raises:
            ValueError: If no configuration has been loaded
        """
        if self._config is None:
            raise ValueError("No configuration loaded. Call load_config() first.")
        return self._config

    def load_config(self, config_path: str) -> Config:
        """
        Load configuration from a property file.

        Args:
            config_path: Path to the configuration file

        Returns:
            Config object with loaded settings

        Raises:
            FileNotFoundError: If config file doesn't exist
            ValueError: If config file is invalid or has validation errors
        """
        if not os.path.exists(config_path):
            raise FileNotFoundError(f"Configuration file not found: {config_path}")

        config_data = self._load_config_file(config_path)
        config = self._create_config_from_data(config_data)

        validation_result = self.validate_config(config)

        if validation_result.has_errors():
            raise ValueError(f"Configuration validation failed:\n{validation_result.get_error_summary()}")

        if validation_result.has_warnings():
            self.logger.warning(f"Configuration warnings:\n{validation_result.get_error_summary()}")

        self._config = config
        return config

    def _load_config_file(self, config_path: str) -> Dict[str, Any]:
        """Flatten the property file into ``section.key`` entries."""
        config_parser = configparser.ConfigParser()

        try:
            config_parser.read(config_path)
        except configparser.Error as e:
            raise ValueError(f"Failed to parse configuration file: {e}")

        config_data = {}
        for section in config_parser.sections():
            for key, value in config_parser.items(section):
                config_data[f"{section}.{key}"] = value

        for key, value in config_parser.defaults().items():
            config_data.setdefault(key, value)

        return config_data

    def _create_config_from_data(self, config_data: Dict[str, Any]) -> Config:
        config_kwargs = {}

        for config_key, raw_value in config_data.items():
            if config_key not in CONFIG_MAPPING:
                continue
            field_name, field_type = CONFIG_MAPPING[config_key]
            try:
                if field_type == bool:
                    value = self._parse_bool(raw_value)
                elif field_type == int:
                    # empty optional integers (serial_number) fall back to the default
                    if raw_value is None or not str(raw_value).strip():
                        continue
                    value = int(raw_value)
                elif field_type == tuple:
                    value = tuple(item.strip() for item in str(raw_value).split(',') if item.strip())
                else:
                    value = str(raw_value) if raw_value is not None else None

                config_kwargs[field_name] = value
            except (ValueError, TypeError) as e:
                raise ValueError(f"Invalid value for {config_key}: {raw_value} ({e})")

        return Config(**config_kwargs)

    def _parse_bool(self, value: Any) -> bool:
        if isinstance(value, bool):
            return value
        if isinstance(value, str):
            return value.lower() in ("true", "yes", "1", "on", "enabled")
        return bool(value)

    def validate_config(self, config: Config) -> ConfigValidationResult:
        """
        Validate configuration settings.

        Args:
            config: Configuration object to validate

        Returns:
            ConfigValidationResult with validation results
        """
        errors = []
        warnings = []

        if config.renewal_threshold_days >= config.validity_days:
            errors.append(ConfigValidationError(
                "renewal_threshold_days",
                "Renewal threshold must be shorter than the certificate validity, "
                "otherwise every startup issues a new certificate"
            ))

        if not config.key_filename or not config.cert_filename:
            errors.append(ConfigValidationError(
                "cert_filename",
                "Both key_filename and cert_filename are required"
            ))
        elif config.key_filename == config.cert_filename:
            errors.append(ConfigValidationError(
                "cert_filename",
                "key_filename and cert_filename must differ"
            ))

        if not config.subject_alt_names:
            warnings.append(ConfigValidationError(
                "subject_alt_names",
                "No subject alternative names configured; the common name will be used",
                "warning"
            ))

        if config.serial_number is not None:
            warnings.append(ConfigValidationError(
                "serial_number",
                "A fixed serial number is reused for every certificate renewal",
                "warning"
            ))

        if config.database_path:
            db_dir = os.path.dirname(config.database_path)
            if db_dir and not os.path.exists(db_dir):
                warnings.append(ConfigValidationError(
                    "database_path",
                    f"Database directory does not exist: {db_dir}",
                    "warning"
                ))

        if config.listen_port < 1024:
            warnings.append(ConfigValidationError(
                "listen_port",
                "Ports below 1024 usually require elevated privileges",
                "warning"
            ))

        all_issues = errors + warnings
        return ConfigValidationResult(
            is_valid=len(errors) == 0,
            errors=all_issues,
            warnings=[]
        )

    def create_default_config_file(self, config_path: str) -> None:
        """Write a default configuration file."""
        config_dir = os.path.dirname(config_path)
        if config_dir:
            os.makedirs(config_dir, exist_ok=True)

        with open(config_path, 'w') as f:
            f.write(DEFAULT_CONFIG_CONTENT)

        self.logger.info(f"Created default configuration file: {config_path}")
