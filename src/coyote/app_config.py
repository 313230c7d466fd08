"""
Environment backed application configuration.

Settings are declared as ``Config`` entries (see ``coyote.configs``), registered
with ``AppConfig.add_configs`` and read back with ``AppConfig().get(env_name)``.
A ``.env`` file in the working directory is loaded before the environment is
read; values already present in the environment win.
"""

import os
from typing import ClassVar, NamedTuple

from dotenv import find_dotenv, load_dotenv

from coyote.errors import ConfigurationError


class Config(NamedTuple):
    env_name: str
    is_required: bool
    default_value: str | None


class AppConfig:
    """
    Resolved application settings.

    Each instance snapshots the environment at creation time, so tests can
    monkeypatch environment variables and build a fresh AppConfig.
    """

    configs: ClassVar[dict[str, Config]] = {}

    @classmethod
    def add_config(cls, config: Config) -> None:
        cls.configs[config.env_name] = config

    @classmethod
    def add_configs(cls, configs: list[Config]) -> None:
        for config in configs:
            cls.add_config(config)

    def __init__(self, dotenv: bool = True):
        if dotenv:
            load_dotenv(find_dotenv(usecwd=True), override=False)
        self._values: dict[str, str | None] = {}
        for name, config in self.configs.items():
            value = os.environ.get(name, config.default_value)
            if config.is_required and value is None:
                raise ConfigurationError(f"Missing required configuration: {name}")
            self._values[name] = value

    def get(self, env_name: str) -> str | None:
        if env_name not in self._values:
            raise KeyError(f"Unknown configuration: {env_name}")
        return self._values[env_name]

    def get_float(self, env_name: str) -> float:
        value = self.get(env_name)
        try:
            return float(value)
        except (TypeError, ValueError) as e:
            raise ConfigurationError(f"Configuration {env_name} must be a number, got {value!r}") from e
