"""Usage analytics sent as MixPanel "track" events."""

from __future__ import annotations

import json
import logging
import platform
import secrets
import time
import urllib.error
import urllib.request
import uuid
from dataclasses import dataclass, field
from typing import Any, Protocol

from flowmcp.config import TransportMode

_log = logging.getLogger(__name__)

EVENT_NAME_PREFIX = "MCP4NEO4J"
_AURA_HOST_MARKER = "databases.neo4j.io"
_CONTENT_TYPE = "application/json; charset=utf-8"

_OS_NAMES = {"linux": "linux", "darwin": "darwin", "windows": "windows", "freebsd": "freebsd"}
_ARCH_NAMES = {
    "x86_64": "amd64",
    "amd64": "amd64",
    "aarch64": "arm64",
    "arm64": "arm64",
    "i386": "386",
    "i686": "386",
    "x86": "386",
}


@dataclass(frozen=True)
class HTTPResponse:
    """Status and body of an HTTP response."""

    status: int
    body: bytes = b""
    reason: str = ""

    @property
    def status_text(self) -> str:
        return f"{self.status} {self.reason}".strip()


class HTTPClient(Protocol):
    """Anything able to POST a body to a URL."""

    def post(self, url: str, content_type: str, body: bytes) -> HTTPResponse:
        """Send body to url and return the response."""
        ...


class UrllibHTTPClient:
    """HTTP client built on the standard library."""

    def __init__(self, timeout: float = 10.0) -> None:
        self.timeout = timeout

    def post(self, url: str, content_type: str, body: bytes) -> HTTPResponse:
        """POST body to url; non-2xx statuses are returned, not raised."""
        request = urllib.request.Request(
            url, data=body, headers={"Content-Type": content_type}, method="POST"
        )
        try:
            with urllib.request.urlopen(request, timeout=self.timeout) as response:
                return HTTPResponse(response.status, response.read(), response.reason or "")
        except urllib.error.HTTPError as exc:
            with exc:
                return HTTPResponse(exc.code, exc.read(), str(exc.reason or ""))


@dataclass
class TrackEvent:
    """A named event with its properties."""

    event: str
    properties: Any = None

    def to_dict(self) -> dict[str, Any]:
        """Return the event in the shape MixPanel expects."""
        return {"event": self.event, "properties": self.properties}


@dataclass
class ConnectionEventInfo:
    """Database details learned once a connection is established."""

    neo4j_version: str = ""
    edition: str = ""
    cypher_version: list[str] = field(default_factory=list)


def is_aura(uri: str) -> bool:
    """Tell whether a database URI points at a hosted Aura instance."""
    return _AURA_HOST_MARKER in uri


def _uuid6() -> uuid.UUID:
    """Return a time-ordered version 6 UUID with a random node."""
    base = uuid.uuid1(node=secrets.randbits(48) | 0x010000000000)
    timestamp = base.time
    value = (
        ((timestamp >> 12) << 80)
        | (0x6 << 76)
        | ((timestamp & 0xFFF) << 64)
        | (base.int & 0xFFFFFFFFFFFFFFFF)
    )
    return uuid.UUID(int=value)


def get_distinct_id() -> str:
    """Return a fresh identifier for this run of the program."""
    return str(_uuid6())


def _os_name() -> str:
    system = platform.system().lower()
    return _OS_NAMES.get(system, system)


def _arch_name() -> str:
    machine = platform.machine().lower()
    return _ARCH_NAMES.get(machine, machine)


class Analytics:
    """Builds analytics events and sends them to a MixPanel-compatible endpoint."""

    def __init__(
        self,
        token: str,
        endpoint: str,
        uri: str,
        client: HTTPClient | None = None,
    ) -> None:
        self.token = token
        self.endpoint = endpoint
        self.distinct_id = get_distinct_id()
        self.startup_time = int(time.time())
        self.client: HTTPClient = client if client is not None else UrllibHTTPClient()
        self.is_aura = is_aura(uri)
        self._disabled = False

    def enable(self) -> None:
        self._disabled = False

    def disable(self) -> None:
        self._disabled = True

    def is_enabled(self) -> bool:
        return not self._disabled

    def emit_event(self, event: TrackEvent) -> None:
        """Send one event; failures are logged and never raised."""
        if self._disabled:
            return
        _log.info("Sending event to Neo4j", extra={"attrs": {"event": event.event}})
        try:
            self._send_track_events([event])
        except Exception as exc:  # analytics must never break the caller
            _log.error(
                "Error while sending analytics events", extra={"attrs": {"error": str(exc)}}
            )

    def _send_track_events(self, events: list[TrackEvent]) -> None:
        body = json.dumps([event.to_dict() for event in events]).encode("utf-8")
        url = self.endpoint.rstrip("/") + "/track"
        response = self.client.post(url, _CONTENT_TYPE, body)
        text = response.body.decode("utf-8", errors="replace")

        data = 0
        try:
            decoded = json.loads(text)
            if isinstance(decoded, bool) or not isinstance(decoded, int):
                raise ValueError(f"expected an integer, got {text!r}")
            data = decoded
        except ValueError as exc:
            _log.error(
                "Error while unmarshaling response from MixPanel",
                extra={"attrs": {"error": str(exc)}},
            )
        _log.info(
            "Response from Neo4j",
            extra={"attrs": {"status": response.status_text, "body": text, "data": data}},
        )

    def _base_properties(self) -> dict[str, Any]:
        now = time.time()
        return {
            "token": self.token,
            "time": int(now * 1000),
            "distinct_id": self.distinct_id,
            "$insert_id": str(_uuid6()),
            "uptime": int(now) - self.startup_time,
            "$os": _os_name(),
            "os_arch": _arch_name(),
            "isAura": self.is_aura,
        }

    @staticmethod
    def _name(suffix: str) -> str:
        return f"{EVENT_NAME_PREFIX}_{suffix}"

    def new_gds_proj_created_event(self) -> TrackEvent:
        return TrackEvent(self._name("GDS_PROJ_CREATED"), self._base_properties())

    def new_gds_proj_drop_event(self) -> TrackEvent:
        return TrackEvent(self._name("GDS_PROJ_DROP"), self._base_properties())

    def new_startup_event(
        self, transport_mode: TransportMode | str, tls_enabled: bool, mcp_version: str
    ) -> TrackEvent:
        """Server startup event; tls_enabled is included only in HTTP mode."""
        mode = str(transport_mode)
        properties = self._base_properties()
        properties["mcp_version"] = mcp_version
        properties["transport_mode"] = mode
        if mode == TransportMode.HTTP.value:
            properties["tls_enabled"] = tls_enabled
        return TrackEvent(self._name("MCP_STARTUP"), properties)

    def new_connection_initialized_event(self, conn_info: ConnectionEventInfo) -> TrackEvent:
        properties = self._base_properties()
        properties["neo4j_version"] = conn_info.neo4j_version
        properties["edition"] = conn_info.edition
        properties["cypher_version"] = list(conn_info.cypher_version)
        return TrackEvent(self._name("CONNECTION_INITIALIZED"), properties)

    def new_tool_event(self, tools_used: str, success: bool) -> TrackEvent:
        properties = self._base_properties()
        properties["tools_used"] = tools_used
        properties["success"] = success
        return TrackEvent(self._name("TOOL_USED"), properties)