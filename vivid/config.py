"""
Configuration Management
========================

Tunables (scaling constants, backend options, polling interval) are read
from a YAML file. User state (values, profiles, focus mode) lives in the
key=value settings file handled by :mod:`vivid.settings`.
"""

import logging
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from .ddc import VCP_SATURATION
from .mapper import MappingConstants

logger = logging.getLogger(__name__)

CONFIG_DIR = Path.home() / ".config" / "vivid"


@dataclass
class BackendConfig:
    """Backend selection options."""
    disabled: List[str] = field(default_factory=list)
    tool_timeout: float = 5.0


@dataclass
class DDCConfig:
    """ddcutil options."""
    vcp_code: int = VCP_SATURATION
    retry_count: int = 1
    sleep_multiplier: float = 0.5


@dataclass
class FocusConfig:
    """Focus monitor options."""
    poll_interval: float = 1.0


class Config:
    """
    Configuration manager for vivid.

    Handles loading, saving, and accessing configuration settings.
    """

    DEFAULT_CONFIG_PATH = CONFIG_DIR / "config.yaml"
    DEFAULT_SETTINGS_PATH = CONFIG_DIR / "vivid.conf"

    def __init__(self, config_path: Optional[Path] = None):
        """
        Initialize configuration.

        Args:
            config_path: Path to configuration file, or None for default
        """
        self.config_path = Path(config_path) if config_path else self.DEFAULT_CONFIG_PATH
        self._data: Dict[str, Any] = {}

        self.mapping = MappingConstants()
        self.backends = BackendConfig()
        self.ddc = DDCConfig()
        self.focus = FocusConfig()
        self.settings_path: Path = self.DEFAULT_SETTINGS_PATH

    def load(self) -> bool:
        """
        Load configuration from file.

        Returns:
            True if configuration was loaded successfully
        """
        if not self.config_path.exists():
            logger.info(f"Configuration file not found, using defaults: {self.config_path}")
            return False

        try:
            with open(self.config_path, 'r') as f:
                self._data = yaml.safe_load(f) or {}
            self._parse_config()
            logger.info(f"Loaded configuration from {self.config_path}")
            return True
        except yaml.YAMLError as e:
            logger.error(f"Failed to parse configuration: {e}")
            return False
        except (OSError, TypeError, ValueError) as e:
            logger.error(f"Failed to load configuration: {e}")
            return False

    def _parse_config(self):
        """Parse loaded configuration data into typed objects."""
        if not isinstance(self._data, dict):
            raise ValueError("configuration root must be a mapping")

        mapping = self._data.get('mapping', {}) or {}
        defaults = MappingConstants()
        self.mapping = MappingConstants(
            gamma_divisor=float(mapping.get('gamma_divisor', defaults.gamma_divisor)),
            factor_min=float(mapping.get('factor_min', defaults.factor_min)),
            factor_max=float(mapping.get('factor_max', defaults.factor_max)),
            gamma_min=float(mapping.get('gamma_min', defaults.gamma_min)),
            gamma_max=float(mapping.get('gamma_max', defaults.gamma_max)),
            red_exponent=float(mapping.get('red_exponent', defaults.red_exponent)),
            blue_exponent=float(mapping.get('blue_exponent', defaults.blue_exponent)),
            saturation_divisor=float(mapping.get('saturation_divisor', defaults.saturation_divisor)),
        )
        if self.mapping.gamma_divisor == 0 or self.mapping.saturation_divisor == 0:
            raise ValueError("mapping divisors must be non-zero")

        backends = self._data.get('backends', {}) or {}
        self.backends = BackendConfig(
            disabled=[str(key) for key in backends.get('disabled', []) or []],
            tool_timeout=float(backends.get('tool_timeout', 5.0)),
        )

        ddc = self._data.get('ddc', {}) or {}
        self.ddc = DDCConfig(
            vcp_code=int(ddc.get('vcp_code', VCP_SATURATION)),
            retry_count=int(ddc.get('retry_count', 1)),
            sleep_multiplier=float(ddc.get('sleep_multiplier', 0.5)),
        )

        focus = self._data.get('focus', {}) or {}
        self.focus = FocusConfig(
            poll_interval=float(focus.get('poll_interval', 1.0)),
        )

        settings_path = self._data.get('settings_path')
        if settings_path:
            self.settings_path = Path(settings_path).expanduser()

    def to_dict(self) -> Dict[str, Any]:
        """Current configuration as plain data."""
        return {
            'mapping': asdict(self.mapping),
            'backends': asdict(self.backends),
            'ddc': asdict(self.ddc),
            'focus': asdict(self.focus),
            'settings_path': str(self.settings_path),
        }

    def save(self) -> bool:
        """
        Save current configuration to file.

        Returns:
            True if configuration was saved successfully
        """
        try:
            self.config_path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.config_path, 'w') as f:
                yaml.safe_dump(self.to_dict(), f, default_flow_style=False)
            logger.info(f"Saved configuration to {self.config_path}")
            return True
        except OSError as e:
            logger.error(f"Failed to save configuration: {e}")
            return False
