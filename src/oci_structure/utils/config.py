"""Configuration file support for oci-structure."""

from __future__ import annotations

import os
from pathlib import Path

import yaml
from pydantic import BaseModel, Field

from oci_structure.utils.errors import ConfigurationError


class CheckConfig(BaseModel):
    """Evaluation configuration."""

    spool_dir: str | None = Field(
        default=None,
        description="Directory for the flattened filesystem scratch file (system temp dir if unset)",
    )
    timeout: float | None = Field(
        default=None,
        description="Overall evaluation deadline in seconds",
        gt=0,
    )


class RegistryConfig(BaseModel):
    """Registry configuration."""

    platform: str = Field(default="linux/amd64", description="Platform selected from image indexes")
    timeout: float = Field(default=30.0, description="HTTP request timeout in seconds")
    max_retries: int = Field(default=3, description="HTTP transport connection retries")
    insecure: bool = Field(default=False, description="Talk plain HTTP to registries")


class OutputConfig(BaseModel):
    """Output configuration."""

    default_format: str = Field(default="terminal", description="Default output format (terminal, json)")


class StructureConfig(BaseModel):
    """Main configuration for oci-structure."""

    check: CheckConfig = Field(default_factory=CheckConfig)
    registry: RegistryConfig = Field(default_factory=RegistryConfig)
    output: OutputConfig = Field(default_factory=OutputConfig)

    aliases: dict[str, str] = Field(
        default_factory=dict, description="Image reference aliases"
    )

    def resolve_alias(self, reference: str) -> str:
        """Expand a configured alias, or return the reference unchanged."""
        return self.aliases.get(reference, reference)


def get_config_paths() -> list[Path]:
    """Get possible configuration file paths, in lookup order."""
    paths = [
        Path.cwd() / ".oci-structure.yaml",
        Path.cwd() / ".oci-structure.yml",
    ]

    xdg_config = os.environ.get("XDG_CONFIG_HOME")
    if xdg_config:
        paths.append(Path(xdg_config) / "oci-structure" / "config.yaml")

    home = Path.home()
    paths.append(home / ".config" / "oci-structure" / "config.yaml")
    paths.append(home / ".oci-structure.yaml")

    return paths


def load_config(config_path: Path | str | None = None) -> StructureConfig:
    """Load configuration from file.

    Args:
        config_path: Explicit path to config file. If None, searches default locations.

    Returns:
        Loaded configuration

    Raises:
        ConfigurationError: If an explicit path is missing or any file is invalid
    """
    if config_path is not None:
        path = Path(config_path)
        if path.exists():
            return _load_config_file(path)
        raise ConfigurationError(f"Config file not found: {config_path}")

    for path in get_config_paths():
        if path.exists():
            return _load_config_file(path)

    return StructureConfig()


def _load_config_file(path: Path) -> StructureConfig:
    try:
        data = yaml.safe_load(path.read_text())
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML in config file {path}: {e}") from e
    if data is None:
        return StructureConfig()
    try:
        return StructureConfig.model_validate(data)
    except ValueError as e:
        raise ConfigurationError(f"Invalid config file {path}: {e}") from e


def save_config(config: StructureConfig, config_path: Path | str | None = None) -> Path:
    """Save configuration to file.

    Args:
        config: Configuration to save
        config_path: Path to save to. Defaults to ~/.config/oci-structure/config.yaml

    Returns:
        Path where config was saved
    """
    if config_path is None:
        config_path = Path.home() / ".config" / "oci-structure" / "config.yaml"
    else:
        config_path = Path(config_path)

    config_path.parent.mkdir(parents=True, exist_ok=True)

    data = config.model_dump(mode="json", exclude_defaults=True)
    config_path.write_text(yaml.dump(data, default_flow_style=False, sort_keys=False))

    return config_path


_config: StructureConfig | None = None


def get_config() -> StructureConfig:
    """Get the global configuration instance, loading it on first call."""
    global _config
    if _config is None:
        _config = load_config()
    return _config


def set_config(config: StructureConfig | None) -> None:
    """Set (or with None, reset) the global configuration instance."""
    global _config
    _config = config
