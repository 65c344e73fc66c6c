# flowmcp

Building blocks for a Model Context Protocol server that sits in front of a
graph database:

- `flowmcp.config`: loads settings from `FLOW_*` environment variables,
  applies command-line overrides and validates the result.
- `flowmcp.logger`: a levelled logger with the MCP log levels (debug, info,
  notice, warning, error, critical, alert, emergency) that writes `key=value`
  text or JSON lines and redacts sensitive keys such as `password`, `token`
  and `uri`.
- `flowmcp.auth`: a small immutable context that carries per-request
  credentials (Basic Auth, bearer token, or API-token authentication).
- `flowmcp.analytics`: builds usage events and posts them as JSON to a
  tracking endpoint.
- `flowmcp.database`: runs read, write and `EXPLAIN` queries through a driver
  you supply and formats result records as JSON.

The package has no runtime dependencies beyond the standard library.

## Configuration

`load_config(cli_overrides)` reads the environment, lets non-empty
`CLIOverrides` fields win, fills in the default HTTP port and calls
`Config.validate()`. Invalid settings raise `ConfigError` (a `ValueError`).
An invalid `FLOW_LOG_LEVEL` or `FLOW_LOG_FORMAT` is not an error: a warning is
printed to standard error and the default is used.

| Variable | Default | Meaning |
| --- | --- | --- |
| `FLOW_URI` | (required) | Database URI |
| `FLOW_USERNAME` / `FLOW_PASSWORD` | empty | Server-side credentials |
| `FLOW_DATABASE` | `neo4j` | Database name |
| `FLOW_READ_ONLY` | `false` | Read-only flag |
| `FLOW_TELEMETRY` | `true` | Telemetry flag |
| `FLOW_LOG_LEVEL` | `info` | One of the MCP log levels |
| `FLOW_LOG_FORMAT` | `text` | `text` or `json` |
| `FLOW_SCHEMA_SAMPLE_SIZE` | `100` | Nodes sampled per label |
| `FLOW_MCP_TRANSPORT` | `stdio` | `stdio` or `http` |
| `FLOW_MCP_HTTP_HOST` | `127.0.0.1` | HTTP listen host |
| `FLOW_MCP_HTTP_PORT` | `443` with TLS, else `80` | HTTP listen port |
| `FLOW_MCP_HTTP_BASE_URL` | empty | External base URL |
| `FLOW_MCP_HTTP_ALLOWED_ORIGINS` | empty | Comma-separated CORS origins |
| `FLOW_MCP_HTTP_TLS_ENABLED` | `false` | TLS flag |
| `FLOW_MCP_HTTP_TLS_CERT_FILE` / `FLOW_MCP_HTTP_TLS_KEY_FILE` | empty | Certificate and key, required with TLS |
| `FLOW_API_TOKEN` | empty | Fixed token for HTTP clients |

Validation rules, checked by `Config.validate()`:

- The URI must not be empty.
- An empty transport mode becomes `TransportMode.STDIO`; any value other
  than `stdio` or `http` is rejected.
- In `stdio` mode a username and password are required.
- In `http` mode with an API token, a username and password are required.
- In `http` mode without an API token, no username or password may be set;
  each request then brings its own credentials.
- With TLS enabled in `http` mode, the certificate and key files must be set
  and must load as a pair.

```python
from flowmcp.config import CLIOverrides, ConfigError, load_config

try:
    cfg = load_config(CLIOverrides(uri="bolt://localhost:7687"))
except ConfigError as err:
    print(f"bad configuration: {err}")
else:
    print(cfg.transport_mode, cfg.http_port)
```

`parse_bool` and `parse_int32` fall back to the given default when a value is
empty or invalid (an invalid value also logs a warning):

```python
from flowmcp.config import parse_bool, parse_int32

parse_bool("TRUE", False)     # True
parse_bool("maybe", True)     # True (default)
parse_int32("500", 100)       # 500
parse_int32("9999999999", 1)  # 1 (out of 32-bit range)
```

## Logging

`logger.new(level, fmt, stream)` returns a `LoggerService`; `logger.init`
does the same and also routes the root `logging` logger to it, so that module
loggers in this package write through it. `logger.set_level` changes the level
of that default service.

```python
import sys
from flowmcp import logger

service = logger.init("debug", "json", sys.stderr)
service.info("connected", database="neo4j", uri="bolt://localhost:7687")
# the "uri" value is written as "[REDACTED]"
logger.set_level("warning")
logger.is_sensitive_key("Password")   # True
logger.parse_level("notice")          # 25
logger.level_name(logger.LEVEL_ALERT) # "ALERT"
```

## Request credentials

```python
from flowmcp import auth
from flowmcp.auth import AuthContext

password = "password"
ctx = auth.with_basic_auth(AuthContext(), "user", password)
auth.has_auth(ctx)                     # True
auth.get_basic_auth_credentials(ctx)   # ("user", "password")
auth.get_bearer_token(AuthContext())   # None
```

## Analytics

```python
from flowmcp.analytics import Analytics, ConnectionEventInfo
from flowmcp.config import TransportMode

tracker = Analytics("token", "http://localhost:8080", "bolt://localhost:7687")
tracker.emit_event(tracker.new_startup_event(TransportMode.HTTP, True, "1.0.0"))
tracker.emit_event(tracker.new_tool_event("read-cypher", True))
tracker.emit_event(
    tracker.new_connection_initialized_event(
        ConnectionEventInfo("2025.09.01", "enterprise", ["5", "25"])
    )
)
tracker.disable()
```

Event names start with `MCP4NEO4J_`. Each event carries base properties
(`token`, `time`, `distinct_id`, `$insert_id`, `uptime`, `$os`, `os_arch`,
`isAura`); `tls_enabled` appears in startup events only in `http` mode.
Events are posted as a one-element JSON array to `<endpoint>/track`; trailing
slashes on the endpoint are removed first. Sending failures are logged, never
raised. Any object with a `post(url, content_type, body)` method returning an
`HTTPResponse` can replace the default `UrllibHTTPClient`.

## Database service

`Neo4jService` wraps any object that implements the `Driver` protocol
(`execute_query`, `verify_connectivity`, `verify_authentication`). In `http`
mode it uses the request's bearer token, or else its Basic Auth credentials,
for each query unless the request was authenticated with the API token. In
`stdio` mode the driver's own credentials are used. Every query is tagged with
transaction metadata `{"app": "MCP4NEO4J/<version>"}`.

```python
from flowmcp.auth import AuthContext
from flowmcp.config import TransportMode
from flowmcp.database import Neo4jService, QueryResult, QueryType, Record


class InMemoryDriver:
    def execute_query(self, cypher, params, options):
        return QueryResult([Record(["name", "age"], ["Alice", 30])], QueryType.READ_ONLY)

    def verify_connectivity(self):
        pass

    def verify_authentication(self, auth):
        pass


service = Neo4jService(InMemoryDriver(), "neo4j", TransportMode.STDIO, "1.0.0")
records = service.execute_read_query(AuthContext(), "MATCH (n) RETURN n LIMIT 5", {})
service.get_query_type(AuthContext(), "MATCH (n) RETURN n")   # QueryType.READ_ONLY
print(service.records_to_json(records))
# [
#   {
#     "age": 30,
#     "name": "Alice"
#   }
# ]
```

Query failures, a missing summary from `get_query_type`, and values that
cannot be written as JSON raise `DatabaseError`.

## What this package does not do

- It ships no database driver: you provide an object implementing `Driver`.
- It has no command-line program and no argument parser; `CLIOverrides` is
  filled in by your own code.
- It does not run an MCP server or any HTTP listener, and defines no tools;
  the configuration values for HTTP host, port, TLS and CORS are only loaded
  and validated.