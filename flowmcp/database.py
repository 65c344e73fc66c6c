"""Query execution against a Neo4j database, with per-request credentials in HTTP mode."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Mapping, Protocol, Sequence

from flowmcp.auth import (
    AuthContext,
    get_basic_auth_credentials,
    get_bearer_token,
    is_api_token_auth,
)
from flowmcp.config import TransportMode

_log = logging.getLogger(__name__)

APP_NAME = "MCP4NEO4J"


class DatabaseError(RuntimeError):
    """Raised when a query cannot be run or its result cannot be used."""


class QueryType(str, Enum):
    """Kind of a query as reported by the database planner."""

    UNKNOWN = ""
    READ_ONLY = "r"
    READ_WRITE = "rw"
    WRITE_ONLY = "w"
    SCHEMA_WRITE = "s"


class Routing(str, Enum):
    """Which cluster members a query is sent to."""

    READERS = "r"
    WRITERS = "w"


@dataclass(frozen=True)
class AuthToken:
    """Credentials used for one query instead of the driver's own."""

    scheme: str
    principal: str = ""
    credentials: str = ""
    realm: str = ""


def bearer_auth(token: str) -> AuthToken:
    """Return an auth token for a bearer (SSO/OAuth) token."""
    return AuthToken(scheme="bearer", credentials=token)


def basic_auth(username: str, password: str) -> AuthToken:
    """Return an auth token for a user name and password."""
    return AuthToken(scheme="basic", principal=username, credentials=password)


@dataclass(frozen=True)
class Record:
    """One result row: column names and their values."""

    keys: Sequence[str]
    values: Sequence[Any]

    def as_dict(self) -> dict[str, Any]:
        """Return the row as a mapping from column name to value."""
        return dict(zip(self.keys, self.values))


@dataclass
class QueryOptions:
    """Settings a query is run with."""

    database: str = ""
    tx_metadata: dict[str, Any] = field(default_factory=dict)
    routing: Routing | None = None
    auth: AuthToken | None = None


@dataclass
class QueryResult:
    """Records of a query and the query type from its summary, if one was returned."""

    records: list[Record] = field(default_factory=list)
    query_type: QueryType | None = None


class Driver(Protocol):
    """Connection to a Neo4j server able to run queries."""

    def execute_query(
        self, cypher: str, params: Mapping[str, Any], options: QueryOptions
    ) -> QueryResult:
        """Run a query and return all its records eagerly."""
        ...

    def verify_connectivity(self) -> None:
        """Raise if the driver cannot reach the server with its own credentials."""
        ...

    def verify_authentication(self, auth: AuthToken) -> None:
        """Raise if the server rejects the given credentials."""
        ...


class Neo4jService:
    """Runs queries through a driver and formats their records."""

    def __init__(
        self,
        driver: Driver,
        database: str,
        transport_mode: TransportMode | str,
        mcp_version: str,
    ) -> None:
        if driver is None:
            raise DatabaseError("driver cannot be None")
        self.driver = driver
        self.database = database
        self.transport_mode = transport_mode
        self.mcp_version = mcp_version

    def _uses_request_auth(self, ctx: AuthContext | None) -> bool:
        return str(self.transport_mode) == TransportMode.HTTP.value and not is_api_token_auth(ctx)

    @staticmethod
    def _http_auth_token(ctx: AuthContext | None) -> AuthToken | None:
        token = get_bearer_token(ctx)
        if token is not None:
            return bearer_auth(token)
        credentials = get_basic_auth_credentials(ctx)
        if credentials is not None:
            return basic_auth(*credentials)
        return None

    def build_query_options(
        self, ctx: AuthContext | None, routing: Routing | None = None
    ) -> QueryOptions:
        """Build query options; in HTTP mode without API token, use the request's credentials."""
        options = QueryOptions(
            database=self.database,
            tx_metadata={"app": f"{APP_NAME}/{self.mcp_version}"},
            routing=routing,
        )
        if self._uses_request_auth(ctx):
            options.auth = self._http_auth_token(ctx)
        return options

    def verify_connectivity(self, ctx: AuthContext | None = None) -> None:
        """Check the server can be reached, with the request's credentials when they apply."""
        try:
            if self._uses_request_auth(ctx):
                token = self._http_auth_token(ctx)
                if token is not None:
                    self.driver.verify_authentication(token)
                    return
            self.driver.verify_connectivity()
        except Exception as exc:
            _log.error(
                "Failed to verify database connectivity", extra={"attrs": {"error": str(exc)}}
            )
            raise

    def _run(
        self,
        ctx: AuthContext | None,
        cypher: str,
        params: Mapping[str, Any] | None,
        routing: Routing | None,
        failure: str,
    ) -> QueryResult:
        options = self.build_query_options(ctx, routing)
        try:
            return self.driver.execute_query(cypher, dict(params or {}), options)
        except Exception as exc:
            error = DatabaseError(f"{failure}: {exc}")
            _log.error(failure, extra={"attrs": {"error": str(error)}})
            raise error from exc

    def execute_read_query(
        self, ctx: AuthContext | None, cypher: str, params: Mapping[str, Any] | None = None
    ) -> list[Record]:
        """Run a query routed to readers and return its records."""
        result = self._run(ctx, cypher, params, Routing.READERS, "failed to execute read query")
        return list(result.records)

    def execute_write_query(
        self, ctx: AuthContext | None, cypher: str, params: Mapping[str, Any] | None = None
    ) -> list[Record]:
        """Run a query routed to writers and return its records."""
        result = self._run(ctx, cypher, params, Routing.WRITERS, "failed to execute write query")
        return list(result.records)

    def get_query_type(
        self, ctx: AuthContext | None, cypher: str, params: Mapping[str, Any] | None = None
    ) -> QueryType:
        """Explain a query and return whether it reads, writes or both."""
        result = self._run(
            ctx, f"EXPLAIN {cypher}", params, None, "error during query type detection"
        )
        if result.query_type is None:
            error = DatabaseError(
                "error during query type detection: no summary returned for explained query"
            )
            _log.error("error during query type detection", extra={"attrs": {"error": str(error)}})
            raise error
        return result.query_type

    def records_to_json(self, records: Sequence[Record] | None) -> str:
        """Format records as an indented JSON array of objects with sorted keys."""
        rows = [record.as_dict() for record in records or ()]
        try:
            return json.dumps(rows, indent=2, sort_keys=True, ensure_ascii=False)
        except (TypeError, ValueError) as exc:
            error = DatabaseError(f"failed to format records as JSON: {exc}")
            _log.error("failed to format records as JSON", extra={"attrs": {"error": str(error)}})
            raise error from exc