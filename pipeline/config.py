"""Configuration management for publish-extensions.

Loads configuration from:
1. config.toml (defaults)
2. .env file (via python-dotenv)
3. Environment variables (overrides)
"""

import os
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

if sys.version_info >= (3, 11):
    import tomllib
else:
    import tomli as tomllib

from dotenv import load_dotenv

# Load .env file if present
load_dotenv()


# Extensions whose license forbids redistribution by anyone but their author
DEFAULT_CANNOT_PUBLISH = [
    "ms-dotnettools.csharp",
    "ms-python.vscode-pylance",
    "ms-vscode-remote.remote-containers",
    "ms-vscode-remote.remote-ssh",
    "ms-vscode-remote.remote-wsl",
    "ms-vscode.cpptools",
    "ms-vsliveshare.vsliveshare",
]


@dataclass
class RegistryConfig:
    """Extension registry configuration."""

    url: str = "https://open-vsx.org"
    access_token: str = ""  # OVSX_PAT
    timeout: float = 60.0
    max_retries: int = 5


@dataclass
class BuildConfig:
    """Build workspace configuration."""

    artifacts_dir: str = "/tmp/artifacts"
    repository_dir: str = "/tmp/repository"
    download_dir: str = "/tmp/download"
    shell: str = "/bin/bash"
    default_python_version: str = "3.12"


@dataclass
class PublishConfig:
    """Publish workflow switches."""

    skip_publish: bool = False  # Build and validate only
    force: bool = False  # Rebuild versions already on the registry
    strict_dependencies: bool = False  # Ignore the catalogue shortcut in skip-publish mode
    builtin_namespace: str = "vscode"
    cannot_publish: list[str] = field(default_factory=lambda: list(DEFAULT_CANNOT_PUBLISH))


@dataclass
class Config:
    """Main configuration container."""

    registry: RegistryConfig = field(default_factory=RegistryConfig)
    build: BuildConfig = field(default_factory=BuildConfig)
    publish: PublishConfig = field(default_factory=PublishConfig)
    catalogue_path: str = "extensions.json"
    log_level: str = "INFO"

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Config":
        """Create Config from dictionary."""
        registry_data = data.get("registry", {})
        build_data = data.get("build", {})
        publish_data = data.get("publish", {})

        return cls(
            registry=RegistryConfig(**registry_data),
            build=BuildConfig(**build_data),
            publish=PublishConfig(**publish_data),
            catalogue_path=data.get("catalogue_path", "extensions.json"),
            log_level=data.get("log_level", "INFO"),
        )


def find_config_file() -> Path | None:
    """Find config.toml in current or parent directories.

    Returns:
        Path to config.toml or None if not found.
    """
    current = Path.cwd()

    for directory in [current, *current.parents]:
        config_path = directory / "config.toml"
        if config_path.exists():
            return config_path

    return None


def load_config(config_path: Path | str | None = None) -> Config:
    """Load configuration from file and environment.

    Args:
        config_path: Optional explicit path to config.toml

    Returns:
        Config object with merged settings.
    """
    config_data: dict[str, Any] = {}

    if config_path is None:
        config_path = find_config_file()

    if config_path is not None:
        path = Path(config_path)
        if path.exists():
            with open(path, "rb") as f:
                config_data = tomllib.load(f)

    env_overrides = {
        "registry": {
            "url": os.getenv("OVSX_REGISTRY_URL"),
            "access_token": os.getenv("OVSX_PAT"),
        },
        "build": {
            "artifacts_dir": os.getenv("ARTIFACTS_DIR"),
        },
        "publish": {
            "skip_publish": _bool_or_none(os.getenv("SKIP_PUBLISH")),
            "force": _bool_or_none(os.getenv("FORCE")),
            "strict_dependencies": _bool_or_none(os.getenv("STRICT_DEPENDENCIES")),
        },
    }

    # Merge env overrides (only non-None values)
    for section, values in env_overrides.items():
        if section not in config_data:
            config_data[section] = {}
        for key, value in values.items():
            if value is not None:
                config_data[section][key] = value

    if os.getenv("EXTENSIONS_CATALOGUE"):
        config_data["catalogue_path"] = os.getenv("EXTENSIONS_CATALOGUE")
    if os.getenv("LOG_LEVEL"):
        config_data["log_level"] = os.getenv("LOG_LEVEL")

    return Config.from_dict(config_data)


def _bool_or_none(value: str | None) -> bool | None:
    """Interpret a switch variable; unset or empty means "not given"."""
    if value is None or value.strip() == "":
        return None
    return value.strip().lower() in ("1", "true", "yes", "on")


# Global config instance (lazy loaded)
_config: Config | None = None


def get_config() -> Config:
    """Get the global configuration instance.

    Returns:
        Config object (loaded once, cached).
    """
    global _config
    if _config is None:
        _config = load_config()
    return _config


def reload_config() -> Config:
    """Force reload of configuration.

    Returns:
        Fresh Config object.
    """
    global _config
    _config = load_config()
    return _config
