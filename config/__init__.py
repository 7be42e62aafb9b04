"""Configuration management for the confidential voting client."""

from .config import (
    SystemConfig,
    NetworkConfig,
    RelayerConfig,
    LedgerConfig,
    AuthorizationConfig,
    load_config,
    save_config
)

__all__ = [
    'SystemConfig',
    'NetworkConfig',
    'RelayerConfig',
    'LedgerConfig',
    'AuthorizationConfig',
    'load_config',
    'save_config'
]
