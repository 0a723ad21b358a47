"""
Models package for the portfolio service.
"""

from .config import Config, CertificateConfig, BootstrapConfig, ConfigValidationError, ConfigValidationResult
from .database import Base, Profile, Project, DatabaseManager

__all__ = [
    'Config',
    'CertificateConfig',
    'BootstrapConfig',
    'ConfigValidationError',
    'ConfigValidationResult',
    'Base',
    'Profile',
    'Project',
    'DatabaseManager',
]
