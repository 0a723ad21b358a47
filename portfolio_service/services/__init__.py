"""
Services package for the portfolio service.
"""

from .config_service import ConfigService
from .content_service import ContentService
from .port_service import PortProbe, ProcessReaper, PortReclamationResult
from .process_inspector import (
    ProcessHandle,
    PlatformProcessInspector,
    PosixProcessInspector,
    WindowsProcessInspector,
    select_process_inspector,
)
from .bootstrap_service import BootstrapState, BootstrapResult, ServerBootstrapper, bind_tls_listener

__all__ = [
    'ConfigService',
    'ContentService',
    'PortProbe',
    'ProcessReaper',
    'PortReclamationResult',
    'ProcessHandle',
    'PlatformProcessInspector',
    'PosixProcessInspector',
    'WindowsProcessInspector',
    'select_process_inspector',
    'BootstrapState',
    'BootstrapResult',
    'ServerBootstrapper',
    'bind_tls_listener',
]
