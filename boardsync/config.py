# boardsync — configuration
# Settings come from boardsync.yaml, overridden by BOARDSYNC_* environment variables.

import logging
import os
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import yaml

logger = logging.getLogger(__name__)

CONFIG_PATH = Path.home() / ".config" / "boardsync" / "boardsync.yaml"

LOG_FORMAT = "%(asctime)s [%(name)s] %(levelname)s: %(message)s"


class ConfigError(Exception):
    """Raised when configuration is invalid or incomplete."""
    pass


@dataclass
class Config:
    """Runtime configuration for the board client."""

    # Remote board API
    api_url: str = ""
    api_token: Optional[str] = None
    request_timeout: float = 10.0

    # Close position gaps left by deleted columns/tasks
    close_gaps_on_delete: bool = True

    log_level: str = "INFO"

    def apply_env(self) -> None:
        """Environment wins over the file."""
        self.api_url = os.environ.get("BOARDSYNC_API_URL", self.api_url)
        self.api_token = os.environ.get("BOARDSYNC_API_TOKEN", self.api_token)

    def require_api(self) -> str:
        if not self.api_url:
            raise ConfigError(
                "No board API configured. Set api_url in the config file "
                "or BOARDSYNC_API_URL in the environment."
            )
        return self.api_url

    @classmethod
    def load(cls, path: Optional[str] = None) -> "Config":
        """Load config from YAML file, falling back to defaults."""
        if path is None:
            path = os.environ.get("BOARDSYNC_CONFIG")
        cfg_path = Path(path) if path else CONFIG_PATH
        cfg = cls()
        if cfg_path.exists():
            try:
                with open(cfg_path, "r") as f:
                    data = yaml.safe_load(f) or {}
                cfg = cls(**{k: v for k, v in data.items() if hasattr(cls, k)})
            except (OSError, yaml.YAMLError, TypeError, AttributeError) as e:
                logger.warning(f"Ignoring unreadable config {cfg_path}: {e}")
                cfg = cls()
        cfg.apply_env()
        return cfg


def setup_logging(level: str = "INFO") -> None:
    """Log to stdout with module names."""
    logging.basicConfig(
        level=getattr(logging, str(level).upper(), logging.INFO),
        format=LOG_FORMAT,
        handlers=[logging.StreamHandler(sys.stdout)],
    )
