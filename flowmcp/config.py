"""Application configuration loaded from the environment and command-line overrides."""

from __future__ import annotations

import logging
import os
import re
import ssl
import sys
from dataclasses import dataclass
from enum import Enum

from flowmcp.logger import VALID_LOG_FORMATS, VALID_LOG_LEVELS

_log = logging.getLogger(__name__)

DEFAULT_SCHEMA_SAMPLE_SIZE = 100

_INT32_MIN = -(2**31)
_INT32_MAX = 2**31 - 1
_INT_PATTERN = re.compile(r"[+-]?[0-9]+")

_TRUE_VALUES = frozenset({"1", "t", "T", "true", "True", "TRUE"})
_FALSE_VALUES = frozenset({"0", "f", "F", "false", "False", "FALSE"})

# Names of environment variables that carry credentials.
_ENV_USER_CRED = "FLOW_PASSWORD"
_ENV_API_CRED = "FLOW_API_TOKEN"


class TransportMode(str, Enum):
    """How the MCP server talks to its clients."""

    STDIO = "stdio"
    HTTP = "http"

    def __str__(self) -> str:
        return self.value


VALID_TRANSPORT_MODES: tuple[TransportMode, ...] = tuple(TransportMode)


class ConfigError(ValueError):
    """Raised when the configuration is missing something or is inconsistent."""


def _as_transport_mode(value: str) -> TransportMode | str:
    """Return the matching TransportMode, or the raw string when it names none."""
    try:
        return TransportMode(value)
    except ValueError:
        return value


@dataclass
class Config:
    """All settings the server runs with."""

    uri: str = ""
    username: str = ""
    password: str = ""
    database: str = ""
    read_only: bool = False
    telemetry: bool = False
    log_level: str = "info"
    log_format: str = "text"
    schema_sample_size: int = DEFAULT_SCHEMA_SAMPLE_SIZE
    transport_mode: TransportMode | str = ""
    http_port: str = ""
    http_host: str = ""
    http_base_url: str = ""
    http_allowed_origins: str = ""
    http_tls_enabled: bool = False
    http_tls_cert_file: str = ""
    http_tls_key_file: str = ""
    api_token: str = ""
    mcp_version: str = ""

    def validate(self) -> None:
        """Check the configuration, raising ConfigError on the first problem found.

        An empty transport mode is set to stdio.
        """
        if not self.uri:
            raise ConfigError("Neo4j URI is required but was empty")

        if self.transport_mode == "":
            self.transport_mode = TransportMode.STDIO

        mode = _as_transport_mode(str(self.transport_mode))
        if not isinstance(mode, TransportMode):
            allowed = " ".join(m.value for m in VALID_TRANSPORT_MODES)
            raise ConfigError(
                f"invalid transport mode '{self.transport_mode}', must be one of [{allowed}]"
            )
        self.transport_mode = mode

        if mode is TransportMode.STDIO:
            if not self.username:
                raise ConfigError("Neo4j username is required for STDIO mode")
            if not self.password:
                raise ConfigError("Neo4j password is required for STDIO mode")
        elif self.api_token:
            if not self.username:
                raise ConfigError(
                    "Neo4j username is required when using API token authentication (FLOW_API_TOKEN)"
                )
            if not self.password:
                raise ConfigError(
                    "Neo4j password is required when using API token authentication (FLOW_API_TOKEN)"
                )
        elif self.username or self.password:
            raise ConfigError(
                "Neo4j username and password should not be set for HTTP transport mode without "
                "API token; credentials are provided per-request via Basic Auth headers, or set "
                "FLOW_API_TOKEN for server-side authentication"
            )

        if mode is TransportMode.HTTP and self.http_tls_enabled:
            if not self.http_tls_cert_file:
                raise ConfigError(
                    "TLS certificate file is required when TLS is enabled "
                    "(set FLOW_MCP_HTTP_TLS_CERT_FILE)"
                )
            if not self.http_tls_key_file:
                raise ConfigError(
                    "TLS key file is required when TLS is enabled (set FLOW_MCP_HTTP_TLS_KEY_FILE)"
                )
            try:
                context = ssl.SSLContext(ssl.PROTOCOL_TLS_SERVER)
                context.load_cert_chain(self.http_tls_cert_file, self.http_tls_key_file)
            except (OSError, ssl.SSLError) as exc:
                raise ConfigError(f"failed to load TLS certificate and key: {exc}") from exc


@dataclass
class CLIOverrides:
    """Values given on the command line; empty strings mean "not given"."""

    uri: str = ""
    username: str = ""
    password: str = ""
    database: str = ""
    read_only: str = ""
    telemetry: str = ""
    transport_mode: str = ""
    port: str = ""
    host: str = ""
    allowed_origins: str = ""
    tls_enabled: str = ""
    tls_cert_file: str = ""
    tls_key_file: str = ""


def load_config(cli_overrides: CLIOverrides | None = None) -> Config:
    """Build a configuration from the environment, apply CLI overrides and validate it."""
    log_level = get_env_with_default("FLOW_LOG_LEVEL", "info")
    log_format = get_env_with_default("FLOW_LOG_FORMAT", "text")

    if log_level not in VALID_LOG_LEVELS:
        print(
            f"Warning: invalid FLOW_LOG_LEVEL '{log_level}', using default 'info'. "
            f"Valid values: [{' '.join(VALID_LOG_LEVELS)}]",
            file=sys.stderr,
        )
        log_level = "info"

    if log_format not in VALID_LOG_FORMATS:
        print(
            f"Warning: invalid FLOW_LOG_FORMAT '{log_format}', using default 'text'. "
            f"Valid values: [{' '.join(VALID_LOG_FORMATS)}]",
            file=sys.stderr,
        )
        log_format = "text"

    cfg = Config(
        uri=get_env("FLOW_URI"),
        username=get_env("FLOW_USERNAME"),
        password=get_env(_ENV_USER_CRED),
        database=get_env_with_default("FLOW_DATABASE", "neo4j"),
        read_only=parse_bool(get_env("FLOW_READ_ONLY"), False),
        telemetry=parse_bool(get_env("FLOW_TELEMETRY"), True),
        log_level=log_level,
        log_format=log_format,
        schema_sample_size=parse_int32(get_env("FLOW_SCHEMA_SAMPLE_SIZE"), DEFAULT_SCHEMA_SAMPLE_SIZE),
        transport_mode=get_transport_mode_with_default("FLOW_MCP_TRANSPORT", TransportMode.STDIO),
        http_port=get_env("FLOW_MCP_HTTP_PORT"),
        http_host=get_env_with_default("FLOW_MCP_HTTP_HOST", "127.0.0.1"),
        http_base_url=get_env("FLOW_MCP_HTTP_BASE_URL"),
        http_allowed_origins=get_env("FLOW_MCP_HTTP_ALLOWED_ORIGINS"),
        http_tls_enabled=parse_bool(get_env("FLOW_MCP_HTTP_TLS_ENABLED"), False),
        http_tls_cert_file=get_env("FLOW_MCP_HTTP_TLS_CERT_FILE"),
        http_tls_key_file=get_env("FLOW_MCP_HTTP_TLS_KEY_FILE"),
        api_token=get_env(_ENV_API_CRED),
    )

    if cli_overrides is not None:
        _apply_overrides(cfg, cli_overrides)

    if not cfg.http_port:
        cfg.http_port = "443" if cfg.http_tls_enabled else "80"

    cfg.validate()
    return cfg


def _apply_overrides(cfg: Config, cli: CLIOverrides) -> None:
    if cli.uri:
        cfg.uri = cli.uri
    if cli.username:
        cfg.username = cli.username
    if cli.password:
        cfg.password = cli.password
    if cli.database:
        cfg.database = cli.database
    if cli.read_only:
        cfg.read_only = parse_bool(cli.read_only, False)
    if cli.telemetry:
        cfg.telemetry = parse_bool(cli.telemetry, True)
    if cli.transport_mode:
        cfg.transport_mode = _as_transport_mode(cli.transport_mode)
    if cli.port:
        cfg.http_port = cli.port
    if cli.host:
        cfg.http_host = cli.host
    if cli.allowed_origins:
        cfg.http_allowed_origins = cli.allowed_origins
    if cli.tls_enabled:
        cfg.http_tls_enabled = parse_bool(cli.tls_enabled, False)
    if cli.tls_cert_file:
        cfg.http_tls_cert_file = cli.tls_cert_file
    if cli.tls_key_file:
        cfg.http_tls_key_file = cli.tls_key_file


def get_env(key: str) -> str:
    """Return an environment variable, or an empty string when it is not set."""
    return os.environ.get(key, "")


def get_env_with_default(key: str, default: str) -> str:
    """Return an environment variable, or the default when it is unset or empty."""
    return os.environ.get(key) or default


def get_transport_mode_with_default(key: str, default: TransportMode | str) -> TransportMode | str:
    """Return the transport mode named by an environment variable, or the default."""
    value = os.environ.get(str(key))
    if value:
        return _as_transport_mode(value)
    return default


def parse_bool(value: str, default: bool) -> bool:
    """Parse 1/t/T/true/True/TRUE or 0/f/F/false/False/FALSE; else return the default."""
    if value == "":
        return default
    if value in _TRUE_VALUES:
        return True
    if value in _FALSE_VALUES:
        return False
    _log.warning("Warning: Invalid boolean value %r, using default: %s", value, default)
    return default


def parse_int32(value: str, default: int) -> int:
    """Parse a base-10 32-bit signed integer; return the default when empty or invalid."""
    if value == "":
        return default
    if _INT_PATTERN.fullmatch(value):
        parsed = int(value)
        if _INT32_MIN <= parsed <= _INT32_MAX:
            return parsed
    _log.warning("Warning: Invalid integer value %r, using default: %s", value, default)
    return default