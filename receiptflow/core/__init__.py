"""Core module for receiptflow configuration and utilities."""

from receiptflow.core.config import (
    Settings,
    configure_logging,
    get_settings,
    reload_config,
)

__all__ = [
    "Settings",
    "configure_logging",
    "get_settings",
    "reload_config",
]
