from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml

from .errors import ConfigError
from .models import ReleaseConfig

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path("pinbuild.yaml")
CONFIG_PATH_ENV = "PINBUILD_CONFIG"
REVISION_ENV = "PINBUILD_REVISION"


@dataclass
class ConfigLoader:
    """Loads the release configuration once at process start.

    The config file is optional when the default path is used. The pinned
    revision can be overridden through ``PINBUILD_REVISION``.
    """

    path: Path = DEFAULT_CONFIG_PATH
    explicit: bool = False

    @classmethod
    def from_environment(
        cls, path: str | Path | None = None, environ: Optional[Mapping[str, str]] = None
    ) -> "ConfigLoader":
        environ = os.environ if environ is None else environ
        if path is not None:
            return cls(path=Path(path), explicit=True)
        env_path = environ.get(CONFIG_PATH_ENV)
        if env_path:
            return cls(path=Path(env_path), explicit=True)
        return cls()

    def _read(self) -> Dict[str, Any]:
        if not self.path.exists():
            if self.explicit:
                raise ConfigError(f"Config file not found: {self.path}")
            logger.debug("No config file at %s, using built-in defaults", self.path)
            return {}

        try:
            raw_data = yaml.safe_load(self.path.read_text(encoding="utf-8"))
        except (OSError, yaml.YAMLError) as exc:
            raise ConfigError(f"Cannot parse config file {self.path}: {exc}") from exc

        if raw_data is None:
            return {}
        if not isinstance(raw_data, dict):
            raise ConfigError(f"Config file {self.path} must contain a mapping")
        return raw_data

    def load(self, environ: Optional[Mapping[str, str]] = None) -> ReleaseConfig:
        environ = os.environ if environ is None else environ
        data = dict(self._read())
        override = environ.get(REVISION_ENV)
        if override is not None and override.strip():
            data["revision"] = override.strip()
        elif override is not None:
            raise ConfigError(f"{REVISION_ENV} is set but empty")
        config = ReleaseConfig.from_dict(data)
        logger.debug("Loaded release config for %s at %s", config.project, config.revision)
        return config


def load_config(
    path: str | Path | None = None, environ: Optional[Mapping[str, str]] = None
) -> ReleaseConfig:
    return ConfigLoader.from_environment(path, environ).load(environ)


__all__ = [
    "CONFIG_PATH_ENV",
    "DEFAULT_CONFIG_PATH",
    "REVISION_ENV",
    "ConfigLoader",
    "load_config",
]
