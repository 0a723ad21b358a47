"""
Resilient HTTPS listener startup.

Clears the port, makes sure a usable certificate is on disk, then binds the
WSGI application to a TLS socket. Address-in-use failures are retried after
another reclamation pass; every other failure ends the sequence. The caller
always gets a BootstrapResult back, never an exception.
"""
import errno
import logging
import socket
import ssl
import time
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Callable, List, Optional

from werkzeug.serving import BaseWSGIServer, make_server

from ..models.config import BootstrapConfig
from ..security.certificates import CertificateLifecycleManager
from ..security.errors import BindAddressInUseError, BindOtherError, CertificateIssuanceError
from ..security.models import CertificateMaterial
from .port_service import PortReclamationResult, ProcessReaper

ADDRESS_IN_USE_ERRNOS = {errno.EADDRINUSE, getattr(errno, 'WSAEADDRINUSE', 10048)}
LISTEN_BACKLOG = 128


class BootstrapState(Enum):
    IDLE = "idle"
    CLEARING_PORT = "clearing_port"
    ACQUIRING_CERTIFICATE = "acquiring_certificate"
    BINDING = "binding"
    LISTENING = "listening"
    RETRYING = "retrying"
    FAILED = "failed"


@dataclass
class BootstrapResult:
    """Outcome of ServerBootstrapper.start()."""
    success: bool
    state: BootstrapState
    port: int
    listener: Optional[BaseWSGIServer] = None
    material: Optional[CertificateMaterial] = None
    certificate_renewed: bool = False
    bind_attempts: int = 0
    reclamation_passes: List[PortReclamationResult] = field(default_factory=list)
    error_message: Optional[str] = None

    @property
    def reclamation_attempts(self) -> int:
        """Kill-and-wait rounds across all passes; zero when the port was always free."""
        return sum(p.attempts for p in self.reclamation_passes)


def create_ssl_context(cert_path: Path, key_path: Path) -> ssl.SSLContext:
    """Server-side TLS context for the stored key pair."""
    context = ssl.SSLContext(ssl.PROTOCOL_TLS_SERVER)
    context.minimum_version = ssl.TLSVersion.TLSv1_2
    context.load_cert_chain(certfile=str(cert_path), keyfile=str(key_path))
    return context


def bind_tls_listener(app, config: BootstrapConfig, cert_path: Path, key_path: Path) -> BaseWSGIServer:
    """
    Bind ``app`` to an HTTPS listener.

    The socket is bound here rather than inside werkzeug so that the errno of
    a failed bind is visible; werkzeug receives the bound descriptor.

    Raises:
        BindAddressInUseError: If another listener holds the port
        BindOtherError: For any other bind or TLS setup failure
    """
    host, port = config.listen_host, config.listen_port

    try:
        ssl_context = create_ssl_context(cert_path, key_path)
    except (OSError, ssl.SSLError) as e:
        raise BindOtherError(port, f"Invalid TLS certificate or key: {e}") from e

    family = socket.AF_INET6 if ':' in host else socket.AF_INET
    sock = socket.socket(family, socket.SOCK_STREAM)
    try:
        try:
            if hasattr(socket, 'SO_REUSEADDR') and not hasattr(socket, 'SO_EXCLUSIVEADDRUSE'):
                sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            sock.bind((host, port))
            sock.listen(LISTEN_BACKLOG)
        except OSError as e:
            if e.errno in ADDRESS_IN_USE_ERRNOS:
                raise BindAddressInUseError(port, f"Port {port} is already in use", e.errno) from e
            raise BindOtherError(port, f"Failed to bind {host}:{port}: {e}", e.errno) from e

        try:
            # make_server duplicates the descriptor
            return make_server(host, port, app, threaded=True, ssl_context=ssl_context, fd=sock.fileno())
        except (OSError, ssl.SSLError) as e:
            raise BindOtherError(port, f"Failed to start listener on {host}:{port}: {e}") from e
    finally:
        sock.close()


ListenerBinder = Callable[[object, BootstrapConfig, Path, Path], BaseWSGIServer]


class ServerBootstrapper:
    """Drives the port-clear, certificate, bind sequence for one listener."""

    def __init__(
        self,
        app,
        config: BootstrapConfig,
        certificate_manager: CertificateLifecycleManager,
        reaper: Optional[ProcessReaper] = None,
        binder: ListenerBinder = bind_tls_listener,
        sleep: Callable[[float], None] = time.sleep,
        logging_service=None,
    ):
        """
        Args:
            app: WSGI application to serve
            config: Listener address and retry bounds
            certificate_manager: Supplies the TLS key pair
            reaper: Port reclamation (platform default if None)
            binder: Creates the listener; replaced in tests
            sleep: Delay function used between bind retries
            logging_service: Optional LoggingService for error tracking
        """
        self.app = app
        self.config = config
        self.certificate_manager = certificate_manager
        self.reaper = reaper or ProcessReaper(sleep=sleep)
        self.binder = binder
        self.sleep = sleep
        self.logging_service = logging_service
        self.logger = logging.getLogger(__name__)

        self.state = BootstrapState.IDLE
        self.history: List[BootstrapState] = [BootstrapState.IDLE]
        self.listener: Optional[BaseWSGIServer] = None
        self._serving = False

    def _transition(self, state: BootstrapState):
        self.logger.debug(f"Bootstrap state {self.state.value} -> {state.value}")
        self.state = state
        self.history.append(state)

    def _clear_port(self) -> PortReclamationResult:
        return self.reaper.free_port(
            self.config.listen_port,
            max_retries=self.config.port_clear_retries,
            delay_ms=self.config.port_clear_delay_ms,
        )

    def start(self) -> BootstrapResult:
        """
        Run the startup sequence.

        Returns:
            BootstrapResult in state LISTENING on success, FAILED otherwise
        """
        port = self.config.listen_port
        result = BootstrapResult(success=False, state=self.state, port=port)

        if self.state is not BootstrapState.IDLE:
            result.error_message = f"Bootstrap already ran (state {self.state.value})"
            self.logger.error(result.error_message)
            result.state = self.state
            return result

        try:
            self._transition(BootstrapState.CLEARING_PORT)
            self.logger.info(f"Ensuring port {port} is free...")
            result.reclamation_passes.append(self._clear_port())

            self._transition(BootstrapState.ACQUIRING_CERTIFICATE)
            try:
                result.material = self.certificate_manager.acquire()
            except CertificateIssuanceError as e:
                return self._fail(result, f"No TLS certificate available: {e}", e)
            result.certificate_renewed = self.certificate_manager.last_renewed

            while True:
                self._transition(BootstrapState.BINDING)
                result.bind_attempts += 1
                try:
                    self.listener = self.binder(
                        self.app,
                        self.config,
                        self.certificate_manager.cert_path,
                        self.certificate_manager.key_path,
                    )
                    break
                except BindAddressInUseError as e:
                    self._transition(BootstrapState.RETRYING)
                    if result.bind_attempts >= self.config.max_bind_retries:
                        return self._fail(
                            result,
                            f"Port {port} still in use after {result.bind_attempts} bind attempts",
                            e,
                        )
                    delay = self.config.retry_delay_ms / 1000.0
                    self.logger.warning(
                        f"Port {port} still in use. Retrying in {delay:g} seconds... "
                        f"({result.bind_attempts}/{self.config.max_bind_retries})"
                    )
                    result.reclamation_passes.append(self._clear_port())
                    self.sleep(delay)
                except BindOtherError as e:
                    return self._fail(result, f"Failed to bind port {port}: {e}", e)

        except Exception as e:
            self.logger.exception("Unexpected error during server bootstrap")
            return self._fail(result, f"Unexpected bootstrap error: {e}", e)

        self._transition(BootstrapState.LISTENING)
        result.success = True
        result.state = self.state
        result.listener = self.listener
        self.logger.info(f"Server is listening on https://{self.config.listen_host}:{port}")
        return result

    def _fail(self, result: BootstrapResult, message: str, error: Optional[Exception] = None) -> BootstrapResult:
        self._transition(BootstrapState.FAILED)
        result.success = False
        result.state = self.state
        result.error_message = message

        self.logger.error(
            f"Server bootstrap failed: {message}",
            extra={
                'extra_data': {
                    'event': 'bootstrap_failed',
                    'port': result.port,
                    'bind_attempts': result.bind_attempts,
                    'reclamation_attempts': result.reclamation_attempts,
                    'error_type': type(error).__name__ if error else None,
                    'states': [s.value for s in self.history],
                }
            }
        )
        if self.logging_service and error is not None:
            self.logging_service.track_error(error, {'port': result.port, 'stage': 'bootstrap'})
        return result

    def serve_forever(self):
        """Serve requests on the bound listener until shutdown() is called."""
        if not self.listener:
            raise RuntimeError("Server not started")
        self._serving = True
        try:
            self.listener.serve_forever()
        finally:
            self._serving = False

    def shutdown(self):
        """Stop serving and release the socket."""
        if self.listener:
            # socketserver.shutdown blocks unless serve_forever is running
            if self._serving:
                self.listener.shutdown()
            self.listener.server_close()
            self.listener = None
