from pathlib import Path
from typing import Optional
import yaml
from pydantic import ValidationError

from .schema import BantayConfig
from .defaults import DEFAULT_CONFIG_PATH
from ..errors import ConfigurationError

class ConfigLoader:
    def __init__(self, config_path: Path = DEFAULT_CONFIG_PATH):
        self.config_path = Path(config_path)

    def load(self) -> BantayConfig:
        """
        Load configuration from YAML file and validate it with the Pydantic schema.
        Returns the default config if the file does not exist.
        """
        if not self.config_path.exists():
            return BantayConfig()

        try:
            with open(self.config_path, "r") as f:
                raw_config = yaml.safe_load(f) or {}
            if not isinstance(raw_config, dict):
                raise ConfigurationError(f"Config root in {self.config_path} must be a mapping")
            return BantayConfig(**raw_config)
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Error parsing config file: {e}") from e
        except ValidationError as e:
            raise ConfigurationError(f"Invalid configuration: {e}") from e

def load_config(path: Optional[Path] = None) -> BantayConfig:
    """Helper function to load config from a specific path or default."""
    loader = ConfigLoader(path or DEFAULT_CONFIG_PATH)
    return loader.load()
