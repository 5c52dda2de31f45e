"""Configuration for the termium browser-control server.

Loads termium.yaml with browser, streaming and binding settings.

Example termium.yaml:

    browser_address: 127.0.0.1:9222
    driver_timeout: 20
    stream_backpressure: pause
    tcp: 127.0.0.1:50051
"""

from __future__ import annotations

from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field, field_validator

from termium._config import find_config_file, load_yaml_config
from termium.paths import DEFAULT_SOCKET_PATH, PROJECT_DIR_NAME, get_effective_cwd, get_global_dir

CONFIG_ENV_VAR = "TERMIUM_CONFIG"
CONFIG_FILENAME = "termium.yaml"

BackpressurePolicy = Literal["drop", "pause", "ignore"]


class ServerConfig(BaseModel):
    """Configuration for the browser-control server."""

    # Browser connection
    browser_address: str | None = Field(
        default=None,
        description="Attach to an existing browser at host:port (or a ws/http URL) instead of launching one",
    )
    headless: bool = Field(default=True, description="Launch the owned browser headless")
    browser_args: list[str] = Field(
        default_factory=lambda: ["--no-sandbox", "--disable-setuid-sandbox"],
        description="Additional browser launch arguments",
    )
    driver_timeout: float = Field(
        default=30.0,
        ge=0,
        description="Deadline in seconds for every driver call (0 disables)",
    )
    close_replaced_pages: bool = Field(
        default=True,
        description="Close the previous page when a new tab replaces it",
    )

    # Capture settings
    screenshot_format: Literal["png", "jpeg"] = Field(
        default="png", description="Image format for single screenshots"
    )
    stream_format: Literal["png", "jpeg"] = Field(
        default="jpeg", description="Image format for streamed frames"
    )
    stream_quality: int = Field(
        default=60, ge=1, le=100, description="JPEG quality for streamed frames"
    )
    default_fps: int = Field(
        default=10, ge=1, description="Frame rate used when a stream request omits one"
    )
    max_fps: int = Field(default=60, ge=1, description="Upper bound for requested frame rates")
    stream_backpressure: BackpressurePolicy = Field(
        default="drop",
        description="What a stream does while the transport is congested: drop, pause or ignore",
    )
    backpressure_high_water: int = Field(
        default=1024 * 1024,
        ge=0,
        description="Buffered outbound bytes above which the transport counts as congested",
    )
    stream_pin_page: bool = Field(
        default=False,
        description="End a stream when the page it started on is replaced (instead of following the new page)",
    )

    # Binding
    socket_path: str = Field(
        default=DEFAULT_SOCKET_PATH, description="Unix socket path used when tcp is not set"
    )
    tcp: str | None = Field(default=None, description="TCP host:port to listen on instead of the Unix socket")

    # Logging
    log_level: str = Field(default="INFO", description="Log level (DEBUG, INFO, WARNING, ERROR)")
    log_file: str | None = Field(default=None, description="Write logs to this file instead of stderr")

    @field_validator("log_level")
    @classmethod
    def _normalize_level(cls, value: str) -> str:
        level = value.upper()
        if level not in ("TRACE", "DEBUG", "INFO", "SUCCESS", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"Unknown log level: {value}")
        return level

    @field_validator("tcp")
    @classmethod
    def _check_tcp(cls, value: str | None) -> str | None:
        if value is not None:
            parse_host_port(value)
        return value

    def resolve_fps(self, requested: int | None) -> int:
        """Frame rate for a stream request: falsy -> default, clamped to max_fps."""
        if not requested or requested < 0:
            return self.default_fps
        return min(requested, self.max_fps)


def parse_host_port(address: str) -> tuple[str, int]:
    """Split ``host:port`` into its parts.

    Raises:
        ValueError: If the address has no port or the port is not a number
    """
    host, sep, port = address.rpartition(":")
    if not sep or not port.isdigit():
        raise ValueError(f"Expected host:port, got {address!r}")
    return host.strip("[]") or "0.0.0.0", int(port)


def _search_paths() -> list[Path]:
    return [
        get_effective_cwd() / PROJECT_DIR_NAME / CONFIG_FILENAME,
        get_global_dir() / CONFIG_FILENAME,
    ]


def config_source(config_path: Path | str | None = None) -> Path | None:
    """Which file load_config() would read, or None for built-in defaults."""
    return find_config_file(config_path, env_var=CONFIG_ENV_VAR, search_paths=_search_paths())


def load_config(config_path: Path | str | None = None) -> ServerConfig:
    """Load server configuration from YAML.

    Resolution order (when config_path is None):
    1. TERMIUM_CONFIG env var
    2. cwd/.termium/termium.yaml
    3. ~/.termium/termium.yaml
    4. Built-in defaults

    Args:
        config_path: Path to config file (overrides resolution)

    Returns:
        Validated ServerConfig
    """
    return load_yaml_config(
        ServerConfig,
        config_path,
        env_var=CONFIG_ENV_VAR,
        search_paths=_search_paths(),
    )

