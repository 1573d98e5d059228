"""Configuration loader for YAML files."""

import yaml
from pathlib import Path
from typing import Optional

from .config_schema import GWANLI_HOME, GwanliConfig

DEFAULT_CONFIG_PATH = GWANLI_HOME / "gwanli.yaml"


class ConfigLoader:
    """Load and validate configuration from YAML files."""

    @staticmethod
    def load_config(path: Optional[str] = None) -> GwanliConfig:
        """
        Load configuration from YAML file.

        A missing file is created with default settings.

        Args:
            path: Path to configuration file (default: ~/gwanli/gwanli.yaml)

        Returns:
            Validated GwanliConfig instance

        Raises:
            ValueError: If config is invalid
        """
        config_path = Path(path).expanduser() if path else DEFAULT_CONFIG_PATH
        if not config_path.exists():
            ConfigLoader.save_config(GwanliConfig(), str(config_path))

        with open(config_path, "r", encoding="utf-8") as f:
            config_dict = yaml.safe_load(f)

        if config_dict is None:
            config_dict = {}
        if not isinstance(config_dict, dict):
            raise ValueError(f"Configuration file {config_path} must contain a mapping")

        # Workspace names double as keys; fill them in when omitted
        for name, workspace in (config_dict.get("workspace") or {}).items():
            if isinstance(workspace, dict):
                workspace.setdefault("name", name)

        try:
            return GwanliConfig(**config_dict)
        except ValueError as e:
            raise ValueError(f"Failed to load config from {config_path}: {e}") from e

    @staticmethod
    def save_config(config: GwanliConfig, path: Optional[str] = None) -> None:
        """
        Write configuration to a YAML file.

        Args:
            config: Configuration to write
            path: Target file (default: ~/gwanli/gwanli.yaml)
        """
        config_path = Path(path).expanduser() if path else DEFAULT_CONFIG_PATH
        config_path.parent.mkdir(parents=True, exist_ok=True)

        with open(config_path, "w", encoding="utf-8") as f:
            yaml.safe_dump(config.model_dump(exclude_none=True), f, sort_keys=False)


def load_config(path: Optional[str] = None) -> GwanliConfig:
    """
    Convenience function to load configuration.

    Args:
        path: Path to configuration file

    Returns:
        Validated GwanliConfig instance
    """
    return ConfigLoader.load_config(path)
