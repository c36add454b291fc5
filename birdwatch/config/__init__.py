"""Configuration management for Birdwatch."""

from .settings import (
    AppConfig,
    OAuthConfig,
    GmailConfig,
    VisionConfig,
    get_secret,
    load_client_secret,
    load_config_file,
    get_app_config,
)

__all__ = [
    "AppConfig",
    "OAuthConfig",
    "GmailConfig",
    "VisionConfig",
    "get_secret",
    "load_client_secret",
    "load_config_file",
    "get_app_config",
]
