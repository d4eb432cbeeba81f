"""
Config system - Layered handler configuration.

Sources, later ones overriding earlier ones:
defaults < YAML/JSON files < .env file < environment variables < overrides

Masks are written as expressions:

    logged: ALL
    scream: ERROR|CORE_ERROR|COMPILE_ERROR|USER_ERROR|RECOVERABLE_ERROR
    thrown: "0x1100"
    traced: ~NOTICE|~STRICT
"""

from __future__ import annotations

import os
import json
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Dict, Optional

from dotenv import dotenv_values

from .core import Category, FaultgateError, SeverityMask
from .policy import MASK_NAMES


class ConfigError(FaultgateError):
    """Raised when configuration validation fails."""
    pass


def parse_mask(value: Any) -> SeverityMask:
    """
    Parse a mask expression.

    Accepts masks, integers, numeric strings (``"4437"``, ``"0x1155"``),
    category names joined by ``|`` (an optional ``E_`` prefix is ignored),
    ``ALL``, ``NONE``, terms prefixed with ``~`` to remove categories, and
    lists of any of those.

    Raises:
        ConfigError: When the expression cannot be parsed
    """
    if isinstance(value, SeverityMask):
        return value
    if isinstance(value, int):
        return SeverityMask(value)
    if isinstance(value, (list, tuple, set)):
        return SeverityMask.of(*(parse_mask(item) for item in value))
    if not isinstance(value, str):
        raise ConfigError(f"Cannot parse mask from {type(value).__name__}: {value!r}")

    text = value.strip()
    if not text:
        raise ConfigError("Empty mask expression")
    try:
        return SeverityMask(int(text, 0))
    except ValueError:
        pass

    include = SeverityMask.NONE
    exclude = SeverityMask.NONE
    has_include = False

    for term in text.split("|"):
        term = term.strip()
        negate = term.startswith("~")
        if negate:
            term = term[1:].strip()
        mask = _term_mask(term, value)
        if negate:
            exclude = exclude | mask
        else:
            include = include | mask
            has_include = True

    if not has_include:
        include = SeverityMask.ALL
    return include & ~exclude


def _term_mask(term: str, expression: str) -> SeverityMask:
    name = term.upper()
    if name.startswith("E_"):
        name = name[2:]
    if name == "NONE":
        return SeverityMask.NONE
    try:
        return SeverityMask(Category[name])
    except KeyError:
        pass
    try:
        return SeverityMask(int(term, 0))
    except ValueError:
        raise ConfigError(f"Unknown category '{term}' in mask expression {expression!r}") from None


def format_mask(mask: SeverityMask) -> str:
    """Render a mask as an expression ``parse_mask`` reads back."""
    if mask == SeverityMask.ALL:
        return "ALL"
    if not mask:
        return "NONE"
    return "|".join(mask.names())


@dataclass
class HandlerConfig:
    """
    Error handler configuration.

    Masks left as None keep the handler's current value.
    """

    logged: Optional[SeverityMask] = None
    scream: Optional[SeverityMask] = None
    thrown: Optional[SeverityMask] = None
    scoped: Optional[SeverityMask] = None
    traced: Optional[SeverityMask] = None
    register: Optional[SeverityMask] = None
    log_file: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "HandlerConfig":
        """
        Build a config from plain data.

        Raises:
            ConfigError: On unknown keys or unparsable masks
        """
        known = {f.name for f in fields(cls)}
        unknown = set(data) - known
        if unknown:
            raise ConfigError(f"Unknown configuration key(s): {', '.join(sorted(unknown))}")

        values: Dict[str, Any] = {}
        for key, value in data.items():
            if value is None:
                continue
            if key == "log_file":
                values[key] = str(value)
            else:
                values[key] = parse_mask(value)
        return cls(**values)

    def levels(self) -> Dict[str, SeverityMask]:
        """Masks to pass to ``set_level``, omitting unset ones."""
        return {
            name: getattr(self, name)
            for name in MASK_NAMES
            if getattr(self, name) is not None
        }

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            name: format_mask(getattr(self, name))
            for name in (*MASK_NAMES, "register")
            if getattr(self, name) is not None
        }
        if self.log_file is not None:
            data["log_file"] = self.log_file
        return data


class ConfigLoader:
    """
    Loads and merges configuration from multiple sources with precedence:
    overrides > environment variables > .env file > config files > defaults
    """

    def __init__(self, env_prefix: str = "FAULTGATE_"):
        self.env_prefix = env_prefix
        self.config_data: Dict[str, Any] = {}

    @classmethod
    def load(
        cls,
        paths: Optional[list[str]] = None,
        env_prefix: str = "FAULTGATE_",
        env_file: Optional[str] = None,
        overrides: Optional[Dict[str, Any]] = None,
    ) -> "ConfigLoader":
        """
        Load configuration from multiple sources.

        Merge order (later overrides earlier):
        1. Config files (YAML or JSON), in the order given
        2. .env file (only keys carrying the prefix)
        3. Environment variables (prefix stripped, lowercased)
        4. Manual overrides

        Args:
            paths: Config file paths (glob patterns supported)
            env_prefix: Prefix for environment variables
            env_file: Path to .env file
            overrides: Manual overrides (highest precedence)

        Returns:
            Configured ConfigLoader instance
        """
        loader = cls(env_prefix=env_prefix)

        if paths:
            for pattern in paths:
                loader._load_from_files(pattern)

        if env_file:
            loader._load_env_file(env_file)

        loader._load_from_env()

        if overrides:
            loader._merge_dict(loader.config_data, {
                key: value for key, value in overrides.items() if value is not None
            })

        return loader

    def _load_from_files(self, pattern: str):
        """Load config from JSON or YAML files."""
        from glob import glob

        matches = sorted(glob(pattern))
        if not matches and not any(ch in pattern for ch in "*?["):
            raise ConfigError(f"Config file not found: {pattern}")

        for path_str in matches:
            path = Path(path_str)
            if path.suffix == ".json":
                self._load_json_file(path)
            elif path.suffix in (".yaml", ".yml"):
                self._load_yaml_file(path)
            else:
                raise ConfigError(f"Unsupported config file type: {path}")

    def _load_json_file(self, path: Path):
        """Load config from JSON file."""
        with open(path) as f:
            data = json.load(f)
        self._merge_section(data, path)

    def _load_yaml_file(self, path: Path):
        """Load config from YAML file."""
        import yaml
        with open(path) as f:
            data = yaml.safe_load(f)
        if data:
            self._merge_section(data, path)

    def _merge_section(self, data: Any, path: Path):
        if not isinstance(data, dict):
            raise ConfigError(f"Config file {path} must contain a mapping")
        # Allow a dedicated section in shared config files
        section = data.get("faultgate", data)
        if not isinstance(section, dict):
            raise ConfigError(f"'faultgate' section of {path} must be a mapping")
        self._merge_dict(self.config_data, section)

    def _load_env_file(self, path: str):
        """Load config from .env file."""
        env_path = Path(path)
        if not env_path.exists():
            return

        for key, value in dotenv_values(env_path).items():
            if value is not None and key.startswith(self.env_prefix):
                self._set_key(key, value)

    def _load_from_env(self):
        """Load config from environment variables."""
        for key, value in os.environ.items():
            if key.startswith(self.env_prefix):
                self._set_key(key, value)

    def _set_key(self, key: str, value: str):
        """Convert FAULTGATE_LOGGED to ``logged``."""
        self.config_data[key[len(self.env_prefix):].lower()] = value.strip()

    def _merge_dict(self, target: dict, source: dict):
        """Deep merge source into target."""
        for key, value in source.items():
            if key in target and isinstance(target[key], dict) and isinstance(value, dict):
                self._merge_dict(target[key], value)
            else:
                target[key] = value

    def get(self, key: str, default: Any = None) -> Any:
        return self.config_data.get(key, default)

    def handler_config(self) -> HandlerConfig:
        """
        Validate the merged data into a HandlerConfig.

        Raises:
            ConfigError: When validation fails
        """
        return HandlerConfig.from_dict(self.config_data)

    def to_dict(self) -> Dict[str, Any]:
        return self.config_data.copy()


def load_config(
    path: Optional[str] = None,
    *,
    env_file: Optional[str] = None,
    overrides: Optional[Dict[str, Any]] = None,
) -> HandlerConfig:
    """Load and validate handler configuration in one call."""
    loader = ConfigLoader.load(
        paths=[path] if path else None,
        env_file=env_file,
        overrides=overrides,
    )
    return loader.handler_config()
