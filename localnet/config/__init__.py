"""localnet configuration module"""
from .base import NetworkDefaults, StakeConfig
from .settings import LocalnetSettings
from .logging import configure_logging, log_error

__all__ = ['NetworkDefaults', 'StakeConfig', 'LocalnetSettings', 'configure_logging', 'log_error']
