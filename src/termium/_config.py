"""Shared configuration utilities for termium CLIs.

Provides YAML config discovery and loading with Pydantic validation.
"""

from __future__ import annotations

import os
from collections.abc import Iterable
from pathlib import Path
from typing import TYPE_CHECKING, Any, TypeVar

import yaml

if TYPE_CHECKING:
    from pydantic import BaseModel

__all__ = ["find_config_file", "load_yaml_config", "read_yaml_mapping"]

T = TypeVar("T", bound="BaseModel")


def find_config_file(
    config_path: Path | str | None = None,
    *,
    env_var: str | None = None,
    search_paths: Iterable[Path] = (),
) -> Path | None:
    """Resolve which config file to load.

    Resolution order:
    1. ``config_path`` (must exist)
    2. The path named by ``env_var`` (must exist)
    3. The first existing entry of ``search_paths``

    Returns:
        Path to the config file, or None when defaults should be used

    Raises:
        FileNotFoundError: If an explicit or env-provided path doesn't exist
    """
    if config_path is not None:
        explicit = Path(config_path).expanduser()
        if not explicit.exists():
            raise FileNotFoundError(f"Config file not found: {explicit}")
        return explicit

    env_value = os.getenv(env_var) if env_var else None
    if env_value:
        from_env = Path(env_value).expanduser()
        if not from_env.exists():
            raise FileNotFoundError(f"Config file not found: {from_env} (from {env_var})")
        return from_env

    for candidate in search_paths:
        if candidate.exists():
            return candidate

    return None


def read_yaml_mapping(path: Path) -> dict[str, Any]:
    """Read a YAML file that must contain a mapping (empty file -> {})."""
    try:
        with path.open(encoding="utf-8") as f:
            raw_data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ValueError(f"Invalid YAML in {path}: {e}") from e
    except OSError as e:
        raise ValueError(f"Error reading {path}: {e}") from e

    if raw_data is None:
        return {}
    if not isinstance(raw_data, dict):
        raise ValueError(f"Invalid configuration in {path}: expected a mapping")
    return raw_data


def load_yaml_config(
    model_class: type[T],
    config_path: Path | str | None = None,
    *,
    env_var: str | None = None,
    search_paths: Iterable[Path] = (),
) -> T:
    """Load and validate YAML configuration.

    Args:
        model_class: Pydantic model class to validate against
        config_path: Explicit path to config file
        env_var: Environment variable that may name the config file
        search_paths: Fallback locations, checked in order

    Returns:
        Validated model instance (defaults when no file is found)

    Raises:
        FileNotFoundError: If an explicit config path doesn't exist
        ValueError: If YAML is invalid or validation fails

    Example:
        config = load_yaml_config(
            ServerConfig,
            config_path,
            env_var="TERMIUM_CONFIG",
            search_paths=[Path(".termium/termium.yaml")],
        )
    """
    resolved_path = find_config_file(config_path, env_var=env_var, search_paths=search_paths)
    if resolved_path is None:
        return model_class()

    raw_data = read_yaml_mapping(resolved_path)
    try:
        return model_class.model_validate(raw_data)
    except Exception as e:
        raise ValueError(f"Invalid configuration in {resolved_path}: {e}") from e
