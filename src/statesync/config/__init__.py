"""
Configuration management for state synchronization.
"""

from .config_loader import SyncConfig, DEFAULT_CONFIG

__all__ = ["SyncConfig", "DEFAULT_CONFIG"]
