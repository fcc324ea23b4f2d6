"""Configuration management for Crunchypi."""

import os
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv

from .llm.models import OllamaConfig

DEFAULT_CONFIG_PATH = Path(__file__).with_name("config.yaml")

# Environment variables that take precedence over config.yaml
ENV_OVERRIDES = {
    "base_url": "OLLAMA_BASE_URL",
    "model": "OLLAMA_MODEL",
}


class Configuration:
    """Manages configuration and environment variables for Crunchypi."""

    def __init__(self, config_path: str | os.PathLike[str] | None = None) -> None:
        """Initialize configuration from YAML and environment variables."""
        self.load_env()
        self.config_path = Path(config_path) if config_path else DEFAULT_CONFIG_PATH
        self._config = self._load_yaml_config()

    @staticmethod
    def load_env() -> None:
        """Load environment variables from .env file."""
        load_dotenv()

    def _load_yaml_config(self) -> dict[str, Any]:
        """Load configuration from YAML file."""
        with open(self.config_path) as file:
            config = yaml.safe_load(file)
            if not isinstance(config, dict):
                raise ValueError(
                    f"Config file must be YAML dict, got {type(config)}"
                )
            return config

    def get_ollama_config(self) -> OllamaConfig:
        """Get the Ollama server configuration.

        Returns:
            Validated OllamaConfig, with environment overrides applied.

        Raises:
            ValueError: If required parameters are missing or invalid.
        """
        section = self._config.get("ollama", {})
        if not isinstance(section, dict):
            raise ValueError("ollama must be a mapping in config.yaml")
        ollama_config = {**section}

        for key, env_var in ENV_OVERRIDES.items():
            value = os.getenv(env_var)
            if value:
                ollama_config[key] = value

        required_keys = ["base_url", "generate_path", "model", "http_client"]
        for key in required_keys:
            if key not in ollama_config:
                raise ValueError(
                    f"ollama.{key} must be explicitly configured in config.yaml"
                )

        http_config = ollama_config["http_client"]
        if not isinstance(http_config, dict):
            raise ValueError("ollama.http_client must be a mapping")

        timeout_keys = [
            "connect_timeout", "read_timeout", "write_timeout", "pool_timeout"
        ]
        for key in timeout_keys:
            if key not in http_config:
                raise ValueError(
                    f"ollama.http_client.{key} must be explicitly configured "
                    "in config.yaml"
                )
            value = http_config[key]
            if isinstance(value, bool) or not isinstance(value, int | float):
                raise ValueError(f"ollama.http_client.{key} must be a number")
            if value <= 0:
                raise ValueError(f"ollama.http_client.{key} must be positive")

        if not ollama_config["base_url"]:
            raise ValueError("ollama.base_url must not be empty")
        if not ollama_config["model"]:
            raise ValueError("ollama.model must not be empty")
        if not str(ollama_config["generate_path"]).startswith("/"):
            raise ValueError("ollama.generate_path must start with '/'")

        return OllamaConfig(
            base_url=ollama_config["base_url"],
            model=ollama_config["model"],
            generate_path=ollama_config["generate_path"],
            connect_timeout=float(http_config["connect_timeout"]),
            read_timeout=float(http_config["read_timeout"]),
            write_timeout=float(http_config["write_timeout"]),
            pool_timeout=float(http_config["pool_timeout"]),
        )

    def get_logging_config(self) -> dict[str, Any]:
        """Get logging configuration from YAML.

        Returns:
            Logging configuration dictionary.
        """
        return self._config.get("logging", {})
