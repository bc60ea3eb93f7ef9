# netnavigator/configuration.py

"""
Configuration loader for NetNavigator.

Handles loading settings from a YAML file. If the file doesn't exist,
it creates one with default values.
"""
from __future__ import annotations
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple

import yaml

from .errors import InvalidConfig
from .models import ALL_RECORD_TYPES
from .network.reachability import DEFAULT_REACHABILITY_PORTS, REACHABILITY_METHODS

logger = logging.getLogger("netnavigator.configuration")

DEFAULT_CONFIG_PATH = "netnavigator.yaml"

# This dictionary holds the default structure and values for our config.
# It will be used to generate the initial config file.
DEFAULT_CONFIG: Dict[str, Any] = {
    'max_concurrency': 32,
    'probe_timeout_seconds': 2.0,
    'batch_timeout_seconds': None,
    'cancel_grace_seconds': 0.2,
    'poll_interval_seconds': 0.05,
    # Record types resolved by "ALL" DNS probes
    'dns_record_types': list(ALL_RECORD_TYPES),
    # Empty means use the system resolver configuration
    'dns_nameservers': [],
    'reachability_method': 'auto',  # Options: auto, icmp, tcp
    'reachability_ports': list(DEFAULT_REACHABILITY_PORTS),
}

_HEADER = (
    "# NetNavigator Configuration File\n"
    "# You can edit these settings. They are used on the next run.\n\n"
)


def _write(config: Dict[str, Any], path: str) -> None:
    with open(path, 'w') as f:
        f.write(_HEADER)
        yaml.safe_dump(config, f, sort_keys=False, default_flow_style=False, indent=2)


def save_config(config: Dict[str, Any], path: str = DEFAULT_CONFIG_PATH) -> None:
    """Saves the provided configuration dictionary as YAML."""
    try:
        _write(config, path)
    except OSError as e:
        logger.error(f"Could not write config file to '{path}': {e}")
        raise


def load_or_create_config(path: str = DEFAULT_CONFIG_PATH) -> Dict[str, Any]:
    """
    Loads configuration from a YAML file, merged over DEFAULT_CONFIG.

    If the file doesn't exist, it creates it with default values.
    If the file is invalid, InvalidConfig is raised.
    """
    config = dict(DEFAULT_CONFIG)
    try:
        with open(path, 'r') as f:
            user_config = yaml.safe_load(f)
    except FileNotFoundError:
        logger.info(f"Configuration file not found. Creating '{path}' with default settings.")
        try:
            _write(DEFAULT_CONFIG, path)
        except OSError as e:
            logger.warning(f"Could not write default config file to '{path}': {e}")
        return config
    except yaml.YAMLError as e:
        raise InvalidConfig(f"Error parsing '{path}': {e}") from e

    if user_config is None:
        return config
    if not isinstance(user_config, dict):
        raise InvalidConfig(f"'{path}' must contain a mapping of settings.")
    unknown = set(user_config) - set(DEFAULT_CONFIG)
    if unknown:
        logger.warning(f"Ignoring unknown settings in '{path}': {', '.join(sorted(unknown))}")
    config.update({k: v for k, v in user_config.items() if k in DEFAULT_CONFIG})
    return config


@dataclass(frozen=True)
class EngineSettings:
    """Validated engine settings. Durations are in seconds."""
    max_concurrency: int = DEFAULT_CONFIG['max_concurrency']
    probe_timeout: float = DEFAULT_CONFIG['probe_timeout_seconds']
    batch_timeout: Optional[float] = DEFAULT_CONFIG['batch_timeout_seconds']
    cancel_grace: float = DEFAULT_CONFIG['cancel_grace_seconds']
    poll_interval: float = DEFAULT_CONFIG['poll_interval_seconds']
    dns_record_types: Tuple[str, ...] = ALL_RECORD_TYPES
    dns_nameservers: Tuple[str, ...] = ()
    reachability_method: str = DEFAULT_CONFIG['reachability_method']
    reachability_ports: Tuple[int, ...] = DEFAULT_REACHABILITY_PORTS

    def __post_init__(self):
        self.validate()

    def validate(self) -> None:
        if not isinstance(self.max_concurrency, int) or isinstance(self.max_concurrency, bool) or self.max_concurrency < 1:
            raise InvalidConfig(f"max_concurrency must be an integer >= 1, got {self.max_concurrency!r}.")
        for name in ('probe_timeout', 'cancel_grace', 'poll_interval'):
            value = getattr(self, name)
            if not isinstance(value, (int, float)) or value <= 0:
                raise InvalidConfig(f"{name} must be a positive number of seconds, got {value!r}.")
        if self.batch_timeout is not None and (not isinstance(self.batch_timeout, (int, float)) or self.batch_timeout <= 0):
            raise InvalidConfig(f"batch_timeout must be positive or unset, got {self.batch_timeout!r}.")
        bad_types = [t for t in self.dns_record_types if t not in ALL_RECORD_TYPES]
        if bad_types or not self.dns_record_types:
            raise InvalidConfig(f"Unsupported DNS record types: {bad_types or 'none given'}.")
        if self.reachability_method not in REACHABILITY_METHODS:
            raise InvalidConfig(
                f"reachability_method must be one of {', '.join(REACHABILITY_METHODS)}, got {self.reachability_method!r}."
            )
        if not self.reachability_ports or not all(0 < p < 65536 for p in self.reachability_ports):
            raise InvalidConfig(f"reachability_ports must be a non-empty list of ports, got {self.reachability_ports!r}.")

    @classmethod
    def from_config(cls, config: Dict[str, Any]) -> EngineSettings:
        """Builds settings from a loaded configuration mapping."""
        merged = dict(DEFAULT_CONFIG)
        merged.update(config or {})
        try:
            return cls(
                max_concurrency=merged['max_concurrency'],
                probe_timeout=merged['probe_timeout_seconds'],
                batch_timeout=merged['batch_timeout_seconds'],
                cancel_grace=merged['cancel_grace_seconds'],
                poll_interval=merged['poll_interval_seconds'],
                dns_record_types=tuple(str(t).upper() for t in merged['dns_record_types'] or ()),
                dns_nameservers=tuple(str(ns) for ns in merged['dns_nameservers'] or ()),
                reachability_method=str(merged['reachability_method']).lower(),
                reachability_ports=tuple(int(p) for p in merged['reachability_ports'] or ()),
            )
        except InvalidConfig:
            raise
        except (TypeError, ValueError) as e:
            raise InvalidConfig(f"Invalid configuration value: {e}") from e
