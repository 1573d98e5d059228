"""Configuration management module."""

from .config_loader import ConfigLoader, load_config
from .config_schema import GwanliConfig, WorkspaceConfig

__all__ = ["ConfigLoader", "load_config", "GwanliConfig", "WorkspaceConfig"]
