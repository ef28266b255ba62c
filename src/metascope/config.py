"""Metascope configuration management.

Handles persistent settings stored in ~/.metascope/config.json
"""

import json
import logging
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Optional

from metascope.models import normalize_url


logger = logging.getLogger(__name__)


# Default configuration values
DEFAULT_THEME = "textual-dark"
DEFAULT_KEY_MODE = "arrows"  # arrows, vim
DEFAULT_EXPORT_FORMAT = "csv"  # csv, json, yaml
DEFAULT_REQUEST_TIMEOUT = 30.0
DEFAULT_BU_POLICY = "own"  # own, ancestors, none


@dataclass
class MetascopeConfig:
    """Metascope application configuration."""

    # Known environments, most recently added last
    environments: list[str] = field(default_factory=list)
    current_environment: Optional[str] = None

    # Appearance and input
    theme: str = DEFAULT_THEME
    key_mode: str = DEFAULT_KEY_MODE
    fuzzy_search: bool = False

    # Export preferences
    export_format: str = DEFAULT_EXPORT_FORMAT
    export_directory: Optional[str] = None

    # Remote access
    request_timeout: float = DEFAULT_REQUEST_TIMEOUT
    business_unit_policy: str = DEFAULT_BU_POLICY

    @classmethod
    def get_config_path(cls) -> Path:
        """Get the path to the config file."""
        return Path.home() / ".metascope" / "config.json"

    @classmethod
    def load(cls, path: Optional[Path] = None) -> "MetascopeConfig":
        """Load configuration from file, or return defaults if not found."""
        config_path = path or cls.get_config_path()

        if config_path.exists():
            try:
                with open(config_path, "r", encoding="utf-8") as f:
                    data = json.load(f)
                if not isinstance(data, dict):
                    logger.warning("Ignoring config %s: not a JSON object", config_path)
                    return cls()
                # Only use known fields to avoid issues with old config versions
                known_fields = {f.name for f in cls.__dataclass_fields__.values()}
                filtered_data = {k: v for k, v in data.items() if k in known_fields}
                if not isinstance(filtered_data.get("environments", []), list):
                    filtered_data.pop("environments")
                return cls(**filtered_data)
            except (json.JSONDecodeError, TypeError, ValueError) as e:
                logger.warning("Ignoring invalid config %s: %s", config_path, e)

        return cls()

    def save(self, path: Optional[Path] = None) -> None:
        """Save configuration to file."""
        config_path = path or self.get_config_path()

        # Ensure directory exists
        config_path.parent.mkdir(parents=True, exist_ok=True)

        with open(config_path, "w", encoding="utf-8") as f:
            json.dump(asdict(self), f, indent=2)

    def reset(self) -> None:
        """Reset configuration to defaults, keeping nothing."""
        self.environments = []
        self.current_environment = None
        self.theme = DEFAULT_THEME
        self.key_mode = DEFAULT_KEY_MODE
        self.fuzzy_search = False
        self.export_format = DEFAULT_EXPORT_FORMAT
        self.export_directory = None
        self.request_timeout = DEFAULT_REQUEST_TIMEOUT
        self.business_unit_policy = DEFAULT_BU_POLICY

    def add_environment(self, url: str) -> str:
        """Remember *url* (once) and make it the current environment."""
        url = normalize_url(url)
        if url not in self.environments:
            self.environments.append(url)
        self.current_environment = url
        return url

    def remove_environment(self, url: str) -> bool:
        """Forget *url*. Returns False if it was not known."""
        url = normalize_url(url)
        if url not in self.environments:
            return False
        self.environments.remove(url)
        if self.current_environment == url:
            self.current_environment = self.environments[-1] if self.environments else None
        return True

    @property
    def vim_mode(self) -> bool:
        return self.key_mode == "vim"


# Available options for settings
AVAILABLE_THEMES = [
    ("textual-dark", "Textual Dark"),
    ("textual-light", "Textual Light"),
    ("nord", "Nord"),
    ("gruvbox", "Gruvbox"),
    ("dracula", "Dracula"),
    ("tokyo-night", "Tokyo Night"),
    ("monokai", "Monokai"),
]

KEY_MODE_OPTIONS = [
    ("arrows", "Arrow keys"),
    ("vim", "Vim (h/j/k/l)"),
]

EXPORT_FORMAT_OPTIONS = [
    ("csv", "CSV (.csv)"),
    ("json", "JSON (.json)"),
    ("yaml", "YAML (.yaml)"),
]
