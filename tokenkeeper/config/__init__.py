"""Configuration package exports."""

from .config_loader import ConfigLoader
from .model import CredentialConfig, CredentialSettings, OAuth2SourceSettings

__all__ = [
    "ConfigLoader",
    "CredentialConfig",
    "CredentialSettings",
    "OAuth2SourceSettings",
]
