#!/usr/bin/env python3
"""
Configuration loader for the layout optimizer.

Provides unified configuration management using YAML files.
Merges the user's configuration over built-in defaults and resolves
the weight configuration, pin set, paths and search options that the
engine needs.
"""

import copy
import yaml
from pathlib import Path
from typing import Dict, Any, Optional, List


DEFAULT_CONFIG: Dict[str, Any] = {
    'defaults': {
        'language': 'english',
    },
    'weights': {
        'effort': -1.0,
        'same_finger_bigram': -15.0,
        'lateral_stretch': -5.0,
        'same_finger_skipgram': -3.0,
        'inward_roll': 1.6,
        'outward_roll': 1.3,
        'alternation': 0.7,
        'redirect': -1.5,
        'one_hand_run': -0.5,
    },
    'pins': [],
    'paths': {
        'language_data': 'static/language_data',
        'layouts': 'static/layouts',
        'logs': None,
    },
    'search': {
        'iterations': 5000,
        'stall_limit': 1500,
        'cooling_rate': 0.999,
        'initial_temperature': None,
        'workers': 1,
        'seed': None,
        'keep': 10,
    },
    'geometry': {
        'effort': None,
    },
    'metrics': {
        'unmapped_policy': 'skip',
    },
    'layout': {
        'filler': "qwertyuiopasdfghjkl;zxcvbnm,./'",
    },
    'logging': {
        'console_level': 'WARNING',
        'file_level': 'DEBUG',
        'format': '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    },
}

UNMAPPED_POLICIES = ('skip', 'penalize')


def merge_config(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """
    Recursively merge two configuration dictionaries.

    Args:
        base: Default configuration
        override: User configuration (takes precedence)

    Returns:
        New merged dictionary; neither input is modified
    """
    merged = copy.deepcopy(base)
    for key, value in (override or {}).items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = merge_config(merged[key], value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged


def config_weights(config: Dict[str, Any]) -> Dict[str, float]:
    """Metric weights of a configuration as floats."""
    weights = config.get('weights') or {}
    return {str(name): float(value) for name, value in weights.items()}


def config_pins(config: Dict[str, Any]) -> List[int]:
    """Pinned key positions of a configuration, in configured order, without repeats."""
    ordered: List[int] = []
    for pin in config.get('pins') or []:
        pin = int(pin)
        if pin not in ordered:
            ordered.append(pin)
    return ordered


class ConfigLoader:
    """Handles loading and processing of YAML configuration files."""

    def __init__(self, config_path: str = "config.yaml"):
        """
        Initialize configuration loader.

        Args:
            config_path: Path to the YAML configuration file
        """
        self.config_path = Path(config_path)
        self._config_cache: Optional[Dict[str, Any]] = None

    def load_config(self) -> Dict[str, Any]:
        """
        Load YAML configuration file merged over the built-in defaults.

        Returns:
            Full configuration dictionary

        Raises:
            FileNotFoundError: If configuration file doesn't exist
            yaml.YAMLError: If YAML parsing fails
        """
        if self._config_cache is not None:
            return self._config_cache

        if not self.config_path.exists():
            raise FileNotFoundError(f"Configuration file not found: {self.config_path}")

        try:
            with open(self.config_path, 'r', encoding='utf-8') as f:
                config = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise yaml.YAMLError(f"Error parsing YAML configuration: {e}")

        if config is None:
            config = {}
        if not isinstance(config, dict):
            raise ValueError(f"Configuration root must be a mapping: {self.config_path}")

        self._config_cache = merge_config(DEFAULT_CONFIG, config)
        self._resolve_paths(self._config_cache)
        return self._config_cache

    def reload(self) -> Dict[str, Any]:
        """Drop the cached configuration and read the file again."""
        self._config_cache = None
        return self.load_config()

    def _resolve_paths(self, config: Dict[str, Any]) -> None:
        """
        Resolve relative data paths against the configuration file's directory.

        Args:
            config: Configuration (modified in place)
        """
        base_dir = self.config_path.parent
        paths = config.get('paths', {})

        for key, value in paths.items():
            if value is None:
                continue
            path = Path(value)
            if not path.is_absolute():
                paths[key] = str(base_dir / path)

    def get_weights(self) -> Dict[str, float]:
        """Get the metric weight configuration as floats."""
        return config_weights(self.load_config())

    def get_pins(self) -> List[int]:
        """Get the pinned key positions, in configured order, without repeats."""
        return config_pins(self.load_config())

    def get_default_language(self) -> str:
        """Get the language to use when none is specified."""
        return str(self.load_config()['defaults']['language'])

    def get_search_config(self) -> Dict[str, Any]:
        """Get the search options."""
        return dict(self.load_config()['search'])

    def get_path(self, name: str) -> Optional[str]:
        """Get a resolved path from the paths section."""
        return self.load_config()['paths'].get(name)


def validate_config(config: Dict[str, Any],
                    known_metrics: Optional[List[str]] = None,
                    n_positions: Optional[int] = None) -> List[str]:
    """
    Validate a merged configuration and return any issues found.

    Args:
        config: Configuration dictionary (already merged over defaults)
        known_metrics: Names of registered metrics (None = skip the check)
        n_positions: Number of key positions (None = skip pin range checks)

    Returns:
        List of validation error messages (empty if valid)
    """
    issues = []

    # Check weights
    weights = config.get('weights') or {}
    if not isinstance(weights, dict):
        issues.append("weights must be a mapping of metric name to number")
        weights = {}
    for name, value in weights.items():
        if not isinstance(value, (int, float)) or isinstance(value, bool):
            issues.append(f"Weight for '{name}' is not a number: {value!r}")
        if known_metrics is not None and name not in known_metrics:
            issues.append(f"Unknown metric in weights (ignored): {name}")

    # Check pins
    pins = config.get('pins') or []
    if not isinstance(pins, list):
        issues.append("pins must be a list of key position indices")
        pins = []
    for pin in pins:
        if not isinstance(pin, int) or isinstance(pin, bool):
            issues.append(f"Pin is not an integer: {pin!r}")
        elif n_positions is not None and not 0 <= pin < n_positions:
            issues.append(f"Pin {pin} outside key positions 0-{n_positions - 1}")

    # Check search options
    search = config.get('search') or {}
    for key in ('iterations', 'stall_limit', 'workers', 'keep'):
        value = search.get(key)
        if value is not None and (not isinstance(value, int) or value < 1):
            issues.append(f"search.{key} must be a positive integer: {value!r}")
    cooling = search.get('cooling_rate')
    if cooling is not None and not (isinstance(cooling, (int, float)) and 0 < cooling <= 1):
        issues.append(f"search.cooling_rate must be in (0, 1]: {cooling!r}")
    temperature = search.get('initial_temperature')
    if temperature is not None and not (isinstance(temperature, (int, float)) and temperature > 0):
        issues.append(f"search.initial_temperature must be positive: {temperature!r}")

    policy = (config.get('metrics') or {}).get('unmapped_policy', 'skip')
    if policy not in UNMAPPED_POLICIES:
        issues.append(f"metrics.unmapped_policy must be one of {UNMAPPED_POLICIES}: {policy!r}")

    return issues


def load_config(config_path: Optional[str] = None) -> Dict[str, Any]:
    """
    Convenience function to load the merged configuration.

    Args:
        config_path: Path to configuration file, or None for built-in defaults

    Returns:
        Configuration dictionary
    """
    if config_path is None:
        return copy.deepcopy(DEFAULT_CONFIG)
    return ConfigLoader(config_path).load_config()
