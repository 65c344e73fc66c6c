import datetime
import os

import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.x509.oid import NameOID

from flowmcp.config import (
    CLIOverrides,
    Config,
    ConfigError,
    TransportMode,
    get_env,
    get_env_with_default,
    get_transport_mode_with_default,
    load_config,
    parse_bool,
    parse_int32,
)

PASSWORD = "password"


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for key in list(os.environ):
        if key.startswith("FLOW_"):
            monkeypatch.delenv(key, raising=False)


def _write_key_and_cert(tmp_path, name):
    key = ec.generate_private_key(ec.SECP256R1())
    subject = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, "localhost")])
    now = datetime.datetime.now(datetime.timezone.utc)
    cert = (
        x509.CertificateBuilder()
        .subject_name(subject)
        .issuer_name(subject)
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now - datetime.timedelta(days=1))
        .not_valid_after(now + datetime.timedelta(days=1))
        .sign(key, hashes.SHA256())
    )
    cert_path = tmp_path / f"{name}-cert.pem"
    key_path = tmp_path / f"{name}-key.pem"
    cert_path.write_bytes(cert.public_bytes(serialization.Encoding.PEM))
    key_path.write_bytes(
        key.private_bytes(
            serialization.Encoding.PEM,
            serialization.PrivateFormat.PKCS8,
            serialization.NoEncryption(),
        )
    )
    return str(cert_path), str(key_path)


@pytest.fixture
def tls_files(tmp_path):
    return _write_key_and_cert(tmp_path, "server")


def _set_stdio_env(monkeypatch):
    monkeypatch.setenv("FLOW_MCP_TRANSPORT", "stdio")
    monkeypatch.setenv("FLOW_URI", "bolt://localhost:7687")
    monkeypatch.setenv("FLOW_USERNAME", "testuser")
    monkeypatch.setenv("FLOW_PASSWORD", "password")


def _set_http_tls_env(monkeypatch, cert_path, key_path, enabled="true"):
    monkeypatch.setenv("FLOW_URI", "bolt://localhost:7687")
    monkeypatch.setenv("FLOW_MCP_TRANSPORT", "http")
    monkeypatch.setenv("FLOW_MCP_HTTP_TLS_ENABLED", enabled)
    monkeypatch.setenv("FLOW_MCP_HTTP_TLS_CERT_FILE", cert_path)
    monkeypatch.setenv("FLOW_MCP_HTTP_TLS_KEY_FILE", key_path)


# --- Config.validate ---------------------------------------------------------


def test_validate_valid_config_defaults_to_stdio():
    password = PASSWORD
    cfg = Config(
        telemetry=True,
        uri="bolt://localhost:7687",
        username="neo4j",
        password=password,
        database="neo4j",
    )
    cfg.validate()
    assert cfg.transport_mode is TransportMode.STDIO


def test_validate_empty_database_is_allowed():
    password = PASSWORD
    cfg = Config(uri="bolt://localhost:7687", username="neo4j", password=password, database="")
    cfg.validate()
    assert cfg.database == ""


@pytest.mark.parametrize(
    "uri, username, use_password, message",
    [
        ("", "neo4j", True, "Neo4j URI is required but was empty"),
        ("bolt://localhost:7687", "", True, "Neo4j username is required for STDIO mode"),
        ("bolt://localhost:7687", "neo4j", False, "Neo4j password is required for STDIO mode"),
    ],
)
def test_validate_missing_required_fields(uri, username, use_password, message):
    password = PASSWORD if use_password else ""
    cfg = Config(telemetry=True, uri=uri, username=username, password=password, database="neo4j")
    with pytest.raises(ConfigError, match=message):
        cfg.validate()


def test_validate_credentials_in_http_mode_without_token():
    password = PASSWORD
    cfg = Config(
        uri="bolt://localhost:7687",
        username="neo4j",
        password=password,
        database="neo4j",
        transport_mode=TransportMode.HTTP,
    )
    with pytest.raises(ConfigError) as excinfo:
        cfg.validate()
    assert str(excinfo.value) == (
        "Neo4j username and password should not be set for HTTP transport mode without API "
        "token; credentials are provided per-request via Basic Auth headers, or set "
        "FLOW_API_TOKEN for server-side authentication"
    )


def test_validate_http_api_token_requires_username():
    cfg = Config(uri="bolt://localhost:7687", transport_mode="http", api_token="token")
    with pytest.raises(ConfigError, match="username is required when using API token"):
        cfg.validate()


def test_validate_http_api_token_requires_password():
    cfg = Config(uri="bolt://localhost:7687", transport_mode="http", api_token="token", username="neo4j")
    with pytest.raises(ConfigError, match="password is required when using API token"):
        cfg.validate()


def test_validate_http_api_token_with_credentials():
    password = PASSWORD
    cfg = Config(
        uri="bolt://localhost:7687",
        transport_mode="http",
        api_token="token",
        username="neo4j",
        password=password,
    )
    cfg.validate()
    assert cfg.transport_mode is TransportMode.HTTP


def test_validate_invalid_transport_mode():
    cfg = Config(uri="bolt://localhost:7687", transport_mode="grpc")
    with pytest.raises(ConfigError) as excinfo:
        cfg.validate()
    assert str(excinfo.value) == "invalid transport mode 'grpc', must be one of [stdio http]"


def test_validate_tls_with_both_files(tls_files):
    cert_path, key_path = tls_files
    cfg = Config(
        uri="bolt://localhost:7687",
        transport_mode=TransportMode.HTTP,
        http_tls_enabled=True,
        http_tls_cert_file=cert_path,
        http_tls_key_file=key_path,
    )
    cfg.validate()
    assert cfg.http_tls_cert_file == cert_path


def test_validate_tls_missing_cert_file():
    cfg = Config(
        uri="bolt://localhost:7687",
        transport_mode=TransportMode.HTTP,
        http_tls_enabled=True,
        http_tls_key_file="/path/to/key.pem",
    )
    with pytest.raises(ConfigError, match="TLS certificate file is required when TLS is enabled"):
        cfg.validate()


def test_validate_tls_missing_key_file():
    cfg = Config(
        uri="bolt://localhost:7687",
        transport_mode=TransportMode.HTTP,
        http_tls_enabled=True,
        http_tls_cert_file="/path/to/cert.pem",
    )
    with pytest.raises(ConfigError, match="TLS key file is required when TLS is enabled"):
        cfg.validate()


def test_validate_http_tls_disabled_without_files():
    cfg = Config(uri="bolt://localhost:7687", transport_mode=TransportMode.HTTP)
    cfg.validate()
    assert cfg.http_tls_enabled is False


def test_validate_stdio_ignores_tls():
    password = PASSWORD
    cfg = Config(
        uri="bolt://localhost:7687",
        username="neo4j",
        password=password,
        transport_mode=TransportMode.STDIO,
        http_tls_enabled=True,
    )
    cfg.validate()
    assert cfg.transport_mode is TransportMode.STDIO


def test_validate_tls_mismatched_key(tmp_path):
    cert_path, _ = _write_key_and_cert(tmp_path, "one")
    _, other_key_path = _write_key_and_cert(tmp_path, "two")
    cfg = Config(
        uri="bolt://localhost:7687",
        transport_mode=TransportMode.HTTP,
        http_tls_enabled=True,
        http_tls_cert_file=cert_path,
        http_tls_key_file=other_key_path,
    )
    with pytest.raises(ConfigError, match="failed to load TLS certificate and key"):
        cfg.validate()


# --- load_config -------------------------------------------------------------


def test_load_config_valid(monkeypatch):
    _set_stdio_env(monkeypatch)
    monkeypatch.setenv("FLOW_DATABASE", "neo4j")
    cfg = load_config(None)
    assert cfg.uri == "bolt://localhost:7687"
    assert cfg.username == "testuser"
    assert cfg.password == "password"
    assert cfg.database == "neo4j"


def test_load_config_defaults(monkeypatch):
    _set_stdio_env(monkeypatch)
    cfg = load_config()
    assert cfg.database == "neo4j"
    assert cfg.telemetry is True
    assert cfg.read_only is False
    assert cfg.log_level == "info"
    assert cfg.log_format == "text"
    assert cfg.http_host == "127.0.0.1"
    assert cfg.http_port == "80"
    assert cfg.transport_mode is TransportMode.STDIO


def test_load_config_missing_required(monkeypatch):
    monkeypatch.setenv("FLOW_MCP_TRANSPORT", "stdio")
    monkeypatch.setenv("FLOW_URI", "")
    monkeypatch.setenv("FLOW_USERNAME", "")
    monkeypatch.setenv("FLOW_PASSWORD", "")
    with pytest.raises(ConfigError) as excinfo:
        load_config(None)
    assert "required" in str(excinfo.value)


def test_load_config_cli_overrides(monkeypatch):
    monkeypatch.setenv("FLOW_MCP_TRANSPORT", "stdio")
    monkeypatch.setenv("FLOW_URI", "bolt://env-host:7687")
    monkeypatch.setenv("FLOW_USERNAME", "env-user")
    monkeypatch.setenv("FLOW_PASSWORD", "secret")
    monkeypatch.setenv("FLOW_DATABASE", "env-db")
    password = PASSWORD
    overrides = CLIOverrides(
        uri="bolt://cli-host:7687",
        username="cli-user",
        password=password,
        database="cli-db",
    )
    cfg = load_config(overrides)
    assert cfg.uri == "bolt://cli-host:7687"
    assert cfg.username == "cli-user"
    assert cfg.password == "password"
    assert cfg.database == "cli-db"


def test_load_config_partial_cli_overrides(monkeypatch):
    monkeypatch.setenv("FLOW_MCP_TRANSPORT", "stdio")
    monkeypatch.setenv("FLOW_URI", "bolt://env-host:7687")
    monkeypatch.setenv("FLOW_USERNAME", "env-user")
    monkeypatch.setenv("FLOW_PASSWORD", "password")
    monkeypatch.setenv("FLOW_DATABASE", "env-db")
    cfg = load_config(CLIOverrides(uri="bolt://cli-host:7687", username="cli-user"))
    assert cfg.uri == "bolt://cli-host:7687"
    assert cfg.username == "cli-user"
    assert cfg.password == "password"
    assert cfg.database == "env-db"


def test_load_config_invalid_booleans_fall_back(monkeypatch):
    _set_stdio_env(monkeypatch)
    monkeypatch.setenv("FLOW_TELEMETRY", "invalid-value")
    monkeypatch.setenv("FLOW_READ_ONLY", "not-a-boolean")
    cfg = load_config(None)
    assert cfg.telemetry is True
    assert cfg.read_only is False


def test_load_config_valid_booleans(monkeypatch):
    _set_stdio_env(monkeypatch)
    monkeypatch.setenv("FLOW_TELEMETRY", "false")
    monkeypatch.setenv("FLOW_READ_ONLY", "true")
    cfg = load_config(None)
    assert cfg.telemetry is False
    assert cfg.read_only is True


@pytest.mark.parametrize("value, expected", [("", 100), ("500", 500), ("invalid", 100)])
def test_load_config_schema_sample_size(monkeypatch, value, expected):
    _set_stdio_env(monkeypatch)
    monkeypatch.setenv("FLOW_SCHEMA_SAMPLE_SIZE", value)
    assert load_config(None).schema_sample_size == expected


def test_load_config_invalid_log_settings(monkeypatch, capsys):
    _set_stdio_env(monkeypatch)
    monkeypatch.setenv("FLOW_LOG_LEVEL", "verbose")
    monkeypatch.setenv("FLOW_LOG_FORMAT", "xml")
    cfg = load_config(None)
    assert cfg.log_level == "info"
    assert cfg.log_format == "text"
    err = capsys.readouterr().err
    assert "invalid FLOW_LOG_LEVEL 'verbose'" in err
    assert "invalid FLOW_LOG_FORMAT 'xml'" in err


def test_load_config_invalid_transport_mode_from_cli(monkeypatch):
    _set_stdio_env(monkeypatch)
    with pytest.raises(ConfigError, match="invalid transport mode 'sse'"):
        load_config(CLIOverrides(transport_mode="sse"))


def test_load_config_tls_from_env(monkeypatch, tls_files):
    cert_path, key_path = tls_files
    _set_http_tls_env(monkeypatch, cert_path, key_path)
    cfg = load_config(None)
    assert cfg.http_tls_enabled is True
    assert cfg.http_tls_cert_file == cert_path
    assert cfg.http_tls_key_file == key_path


def test_load_config_tls_disabled_by_default(monkeypatch):
    _set_stdio_env(monkeypatch)
    assert load_config(None).http_tls_enabled is False


def test_load_config_tls_cli_overrides_env(monkeypatch, tls_files):
    cert_path, key_path = tls_files
    _set_http_tls_env(monkeypatch, cert_path, key_path, enabled="false")
    cfg = load_config(CLIOverrides(tls_enabled="true"))
    assert cfg.http_tls_enabled is True
    assert cfg.http_tls_cert_file == cert_path
    assert cfg.http_tls_key_file == key_path


def test_load_config_tls_missing_cert(monkeypatch):
    monkeypatch.setenv("FLOW_URI", "bolt://localhost:7687")
    monkeypatch.setenv("FLOW_MCP_TRANSPORT", "http")
    monkeypatch.setenv("FLOW_MCP_HTTP_TLS_ENABLED", "true")
    monkeypatch.setenv("FLOW_MCP_HTTP_TLS_KEY_FILE", "/path/to/key.pem")
    with pytest.raises(ConfigError, match="TLS certificate file is required"):
        load_config(None)


def test_load_config_tls_nonexistent_files(monkeypatch):
    _set_http_tls_env(monkeypatch, "/nonexistent/cert.pem", "/nonexistent/key.pem")
    with pytest.raises(ConfigError, match="failed to load TLS certificate and key"):
        load_config(None)


def test_default_port_80_without_tls(monkeypatch):
    monkeypatch.setenv("FLOW_URI", "bolt://localhost:7687")
    monkeypatch.setenv("FLOW_MCP_TRANSPORT", "http")
    assert load_config(None).http_port == "80"


def test_default_port_443_with_tls(monkeypatch, tls_files):
    _set_http_tls_env(monkeypatch, *tls_files)
    assert load_config(None).http_port == "443"


def test_explicit_port_overrides_default(monkeypatch, tls_files):
    _set_http_tls_env(monkeypatch, *tls_files)
    monkeypatch.setenv("FLOW_MCP_HTTP_PORT", "8443")
    assert load_config(None).http_port == "8443"


def test_cli_port_takes_precedence(monkeypatch, tls_files):
    _set_http_tls_env(monkeypatch, *tls_files)
    assert load_config(CLIOverrides(port="9443")).http_port == "9443"


def test_cli_tls_enable_changes_default_port(monkeypatch, tls_files):
    _set_http_tls_env(monkeypatch, *tls_files, enabled="false")
    assert load_config(CLIOverrides(tls_enabled="true")).http_port == "443"


@pytest.mark.parametrize(
    "origins", ["https://example.com,https://example2.com", "*"]
)
def test_allowed_origins_from_env(monkeypatch, origins):
    _set_stdio_env(monkeypatch)
    monkeypatch.setenv("FLOW_MCP_HTTP_ALLOWED_ORIGINS", origins)
    assert load_config(None).http_allowed_origins == origins


def test_allowed_origins_empty_by_default(monkeypatch):
    _set_stdio_env(monkeypatch)
    assert load_config(None).http_allowed_origins == ""


def test_allowed_origins_cli_override(monkeypatch):
    _set_stdio_env(monkeypatch)
    monkeypatch.setenv("FLOW_MCP_HTTP_ALLOWED_ORIGINS", "https://env-example.com")
    cfg = load_config(CLIOverrides(allowed_origins="https://cli-example.com"))
    assert cfg.http_allowed_origins == "https://cli-example.com"


# --- helpers -----------------------------------------------------------------


def test_get_env(monkeypatch):
    assert get_env("FLOW_NOT_SET") == ""
    monkeypatch.setenv("FLOW_SOMETHING", "value")
    assert get_env("FLOW_SOMETHING") == "value"


def test_get_env_with_default(monkeypatch):
    assert get_env_with_default("FLOW_NOT_SET", "fallback") == "fallback"
    monkeypatch.setenv("FLOW_EMPTY", "")
    assert get_env_with_default("FLOW_EMPTY", "fallback") == "fallback"
    monkeypatch.setenv("FLOW_SET", "value")
    assert get_env_with_default("FLOW_SET", "fallback") == "value"


def test_get_transport_mode_with_default(monkeypatch):
    assert get_transport_mode_with_default("FLOW_MCP_TRANSPORT", TransportMode.STDIO) is TransportMode.STDIO
    monkeypatch.setenv("FLOW_MCP_TRANSPORT", "http")
    assert get_transport_mode_with_default("FLOW_MCP_TRANSPORT", TransportMode.STDIO) is TransportMode.HTTP


@pytest.mark.parametrize(
    "value, default, expected",
    [
        ("", True, True),
        ("", False, False),
        ("1", False, True),
        ("t", False, True),
        ("T", False, True),
        ("TRUE", False, True),
        ("True", False, True),
        ("0", True, False),
        ("f", True, False),
        ("FALSE", True, False),
        ("False", True, False),
        ("yes", False, False),
        ("tRue", True, True),
        ("tRue", False, False),
    ],
)
def test_parse_bool(value, default, expected):
    assert parse_bool(value, default) is expected


@pytest.mark.parametrize(
    "value, expected",
    [
        ("", 100),
        ("500", 500),
        ("-5", -5),
        ("+7", 7),
        ("invalid", 100),
        ("1.5", 100),
        ("2147483647", 2147483647),
        ("2147483648", 100),
        ("-2147483648", -2147483648),
        ("-2147483649", 100),
    ],
)
def test_parse_int32(value, expected):
    assert parse_int32(value, 100) == expected