"""
Main application entry point for the portfolio service.
Handles initialization, the HTTPS bootstrap and graceful shutdown.
"""

import argparse
import logging
import os
import signal
import sys
import threading
from typing import Optional

from .app import PortfolioFlaskApp
from .models.database import DatabaseManager
from .security.certificates import CertificateLifecycleManager, CertificateValidator
from .security.errors import CertificateParseError
from .services.bootstrap_service import BootstrapResult, ServerBootstrapper
from .services.config_service import ConfigService
from .services.content_service import ContentService
from .services.logging_service import LoggingService


class PortfolioApplication:
    """Wires the services together and keeps the process alive."""

    def __init__(self, config_path: Optional[str] = None):
        """
        Args:
            config_path: Path to configuration file (optional)
        """
        self.config_path = config_path or self._get_default_config_path()
        self.logger = logging.getLogger(__name__)
        self.config_service = None
        self.config = None
        self.logging_service = None
        self.db_manager = None
        self.content_service = None
        self.flask_app = None
        self.certificate_manager = None
        self.bootstrapper = None
        self.bootstrap_result: Optional[BootstrapResult] = None

        self._shutdown_event = threading.Event()
        self._serve_thread: Optional[threading.Thread] = None
        self._is_running = False

    def _get_default_config_path(self) -> str:
        possible_paths = [
            "config/portfolio.properties",
            "portfolio.properties",
            os.path.expanduser("~/.portfolio_service/portfolio.properties"),
        ]

        for path in possible_paths:
            if os.path.exists(path):
                return path

        return possible_paths[0]

    def _setup_signal_handlers(self):
        """Translate SIGINT/SIGTERM into a shutdown request."""
        def signal_handler(signum, frame):
            self.logger.info(f"Received {signal.Signals(signum).name} signal, initiating graceful shutdown...")
            self._shutdown_event.set()

        signal.signal(signal.SIGINT, signal_handler)
        signal.signal(signal.SIGTERM, signal_handler)

    def initialize(self) -> bool:
        """
        Initialize all application components.

        Returns:
            True if initialization successful, False otherwise
        """
        try:
            if not self._load_configuration():
                return False

            self.logging_service = LoggingService(self.config)
            self.logger.info("Starting portfolio service initialization...")

            if not self._initialize_database():
                return False

            self.flask_app = PortfolioFlaskApp(self.config_service, self.content_service, self.logging_service)

            self.certificate_manager = CertificateLifecycleManager(self.config.certificate_config())

            self.logger.info("Portfolio service initialized successfully")
            self._is_running = True
            return True

        except Exception as e:
            self.logger.error(f"Failed to initialize application: {str(e)}", exc_info=True)
            return False

    def _load_configuration(self) -> bool:
        self.config_service = ConfigService()

        if not os.path.exists(self.config_path):
            self.logger.warning(f"Configuration file not found: {self.config_path}")
            self.config_service.create_default_config_file(self.config_path)
            self.logger.info(f"Default configuration created at: {self.config_path}")

        try:
            self.config = self.config_service.load_config(self.config_path)
        except (OSError, ValueError) as e:
            self.logger.error(f"Failed to load configuration: {str(e)}")
            return False

        self.logger.info(f"Configuration loaded from: {self.config_path}")
        return True

    def _initialize_database(self) -> bool:
        try:
            self.db_manager = DatabaseManager(self.config.database_path)
            self.db_manager.create_tables()
            self.content_service = ContentService(self.db_manager)

            if self.config.auto_seed:
                self.content_service.seed_if_empty()

            self.logger.info(f"Database initialized: {self.db_manager.database_url}")
            return True

        except Exception as e:
            self.logger.error(f"Failed to initialize database: {str(e)}")
            return False

    def run(self, host: Optional[str] = None, port: Optional[int] = None) -> BootstrapResult:
        """
        Bootstrap the HTTPS listener and block until shutdown is requested.

        A failed bootstrap is logged and the process stays up without a listener.
        """
        if not self._is_running:
            raise RuntimeError("Application not initialized. Call initialize() first.")

        self._setup_signal_handlers()

        self.bootstrapper = ServerBootstrapper(
            app=self.flask_app.get_app(),
            config=self.config.bootstrap_config(host=host, port=port),
            certificate_manager=self.certificate_manager,
            logging_service=self.logging_service,
        )
        self.flask_app.bootstrapper = self.bootstrapper

        self.bootstrap_result = self.bootstrapper.start()

        if self.bootstrap_result.success:
            self._serve_thread = threading.Thread(
                target=self.bootstrapper.serve_forever,
                name="https-listener",
                daemon=True,
            )
            self._serve_thread.start()
        else:
            self.logger.error(
                f"Running without a listener: {self.bootstrap_result.error_message}. "
                "The process stays up until it receives SIGTERM or SIGINT."
            )

        try:
            while not self._shutdown_event.wait(timeout=1.0):
                pass
        finally:
            self.shutdown()

        return self.bootstrap_result

    def request_shutdown(self):
        self._shutdown_event.set()

    def shutdown(self):
        """Perform graceful shutdown of the application."""
        if not self._is_running:
            return

        self.logger.info("Initiating graceful shutdown...")
        self._shutdown_event.set()
        self._is_running = False

        if self.bootstrapper:
            try:
                self.bootstrapper.shutdown()
            except Exception as e:
                self.logger.error(f"Error stopping listener: {str(e)}")

        if self._serve_thread:
            self._serve_thread.join(timeout=5)

        if self.db_manager:
            self.db_manager.close()
            self.logger.info("Database connections closed")

        self.logger.info("Graceful shutdown completed")

    def is_running(self) -> bool:
        return self._is_running

    def get_status(self) -> dict:
        status = {
            'running': self._is_running,
            'config_path': self.config_path,
            'database_path': self.config.database_path if self.config else None,
            'listen_port': self.config.listen_port if self.config else None,
            'bootstrap_state': self.bootstrapper.state.value if self.bootstrapper else None,
        }

        if self.certificate_manager:
            status['certificate_path'] = str(self.certificate_manager.cert_path)
            status['certificate'] = self._describe_certificate()

        return status

    def _describe_certificate(self) -> Optional[dict]:
        """Summary of the stored certificate, or None if there is none yet."""
        cert_path = self.certificate_manager.cert_path
        if not cert_path.is_file():
            return None
        try:
            info = CertificateValidator().describe(cert_path.read_text(encoding='utf-8'))
        except (OSError, CertificateParseError) as e:
            self.logger.warning(f"Could not read certificate {cert_path}: {e}")
            return None
        return {
            'subject': info.subject,
            'not_after': info.not_after.isoformat(),
            'is_valid': info.is_valid,
            'fingerprint': info.fingerprint,
        }


def main(argv=None):
    """Command line entry point."""
    parser = argparse.ArgumentParser(description='Portfolio Service')
    parser.add_argument('--config', '-c', help='Configuration file path')
    parser.add_argument('--host', help='Host to bind to (uses config if not specified)')
    parser.add_argument('--port', type=int, help='Port to bind to (uses config if not specified)')
    parser.add_argument('--check-config', action='store_true', help='Check configuration and exit')
    parser.add_argument('--renew-certificate', action='store_true',
                        help='Issue a new self-signed certificate and exit')

    args = parser.parse_args(argv)

    app = PortfolioApplication(config_path=args.config)

    if not app.initialize():
        print("Failed to initialize application")
        return 1

    try:
        if args.check_config:
            status = app.get_status()
            print("Configuration check passed")
            print(f"Config path: {status['config_path']}")
            print(f"Database path: {status['database_path']}")
            print(f"Listen port: {status['listen_port']}")
            print(f"Certificate: {status['certificate_path']}")
            certificate = status['certificate']
            if certificate:
                print(f"Certificate valid until: {certificate['not_after']} (SHA-256 {certificate['fingerprint']})")
            else:
                print("Certificate: none yet, one is issued on first start")
            return 0

        if args.renew_certificate:
            try:
                material = app.certificate_manager.renew()
            except Exception as e:
                print(f"Certificate renewal failed: {str(e)}")
                return 1
            print(f"New certificate written to {app.certificate_manager.cert_path}")
            print(f"Valid until {material.not_after.isoformat()}")
            return 0
    finally:
        if args.check_config or args.renew_certificate:
            app.shutdown()

    app.run(host=args.host, port=args.port)
    return 0


if __name__ == '__main__':
    sys.exit(main())
