"""Canonical Pydantic models shared across all swcache modules.

This is the single source of truth for data shapes in the project. The
models fall into three groups:

**Configuration models** -- :class:`EngineConfig` (immutable, handed to
every engine component at construction), :class:`OutputConfig` and
:class:`GlobalConfig` (serialised as JSON in the user's config directory).

**Cache models** -- :class:`Strategy`, :class:`PartitionRole`,
:class:`PartitionState`, :class:`FetchRequest`, :class:`Classification`
and :class:`CachedResponse`.

**Protocol models** -- :class:`ControlType`, :class:`ControlMessage`,
:class:`PrefetchData`, the typed replies :class:`VersionReply` and
:class:`CacheClearedReply`, and :class:`ClientNotification`.
"""

from __future__ import annotations

import enum
import time
from typing import Any, Literal, Optional, Union
from urllib.parse import urlsplit

import httpx
from pydantic import BaseModel, ConfigDict, Field, field_validator

DEFAULT_MANIFEST: tuple[str, ...] = (
    "/",
    "/index.html",
    "/style.css",
    "/script.js",
    "/manifest.json",
)
"""Paths pre-cached into the static partition when no manifest is configured."""

# Headers describing the wire encoding of a body that has already been decoded.
_TRANSPORT_HEADERS = frozenset(
    {"content-encoding", "content-length", "transfer-encoding", "connection"}
)


def origin_of(url: str) -> str:
    """Return ``scheme://host[:port]`` for *url*, lower-cased."""
    parts = urlsplit(url)
    return f"{parts.scheme.lower()}://{parts.netloc.lower()}"


# --- Cache enums ---


class Strategy(str, enum.Enum):
    """How cache lookup and network fetch are combined for a request."""

    CACHE_FIRST = "cache_first"
    NETWORK_FIRST = "network_first"
    STALE_WHILE_REVALIDATE = "stale_while_revalidate"


class PartitionRole(str, enum.Enum):
    """Logical role of a partition. One partition per role is current."""

    STATIC = "static"
    DYNAMIC = "dynamic"


class PartitionState(str, enum.Enum):
    """Lifecycle of a versioned partition.

    ``INSTALLING -> INSTALLED -> ACTIVE -> SUPERSEDED -> DELETED``.
    ``INSTALLED`` means populated and waiting for activation.
    """

    INSTALLING = "installing"
    INSTALLED = "installed"
    ACTIVE = "active"
    SUPERSEDED = "superseded"
    DELETED = "deleted"


# --- Configuration ---


class EngineConfig(BaseModel):
    """Immutable engine configuration.

    Passed into every component at construction so several independent
    engines can coexist (one per test, one per origin, ...).

    Example::

        config = EngineConfig(origin="https://notes.example.com", version="3")
        config.static_name   # "static-v3"
    """

    model_config = ConfigDict(frozen=True)

    origin: str = Field(
        default="http://localhost:8000",
        description="Origin the engine serves; root-relative URLs resolve against it",
    )
    version: str = Field(default="1", description="Version tag embedded in partition names")
    manifest: tuple[str, ...] = Field(
        default=DEFAULT_MANIFEST,
        description="Root-relative paths pre-cached into the static partition at install",
    )
    max_dynamic_entries: int = Field(
        default=100, ge=1, description="Entry cap enforced on the dynamic partition"
    )
    eviction_interval_seconds: float = Field(
        default=60.0, gt=0, description="Seconds between eviction sweeps"
    )
    fetch_timeout_seconds: float = Field(
        default=30.0, gt=0, description="Upper bound for a single network fetch"
    )
    prefetch_retries: int = Field(
        default=0, ge=0, description="Retries per URL for PREFETCH control messages"
    )
    sync_tag: str = Field(
        default="background-sync", description="Tag registered with the host on reconnect"
    )
    offline_document: str = Field(
        default="/", description="Static entry served to navigations when everything fails"
    )

    @field_validator("origin")
    @classmethod
    def _check_origin(cls, value: str) -> str:
        parts = urlsplit(value)
        if parts.scheme not in ("http", "https") or not parts.netloc:
            raise ValueError(f"origin must be an absolute http(s) URL, got {value!r}")
        return origin_of(value)

    @field_validator("manifest")
    @classmethod
    def _check_manifest(cls, value: tuple[str, ...]) -> tuple[str, ...]:
        for path in value:
            if not path.startswith("/"):
                raise ValueError(f"manifest entries must be root-relative, got {path!r}")
        return value

    @field_validator("version", mode="before")
    @classmethod
    def _check_version(cls, value: Any) -> str:
        if isinstance(value, int) and not isinstance(value, bool):
            value = str(value)
        if not isinstance(value, str) or not value or "/" in value or value.strip() != value:
            raise ValueError(f"invalid version tag {value!r}")
        return value

    def partition_name(self, role: PartitionRole) -> str:
        """Return the versioned partition name for *role* (``{role}-v{version}``)."""
        return f"{role.value}-v{self.version}"

    @property
    def static_name(self) -> str:
        return self.partition_name(PartitionRole.STATIC)

    @property
    def dynamic_name(self) -> str:
        return self.partition_name(PartitionRole.DYNAMIC)

    @property
    def declared_names(self) -> frozenset[str]:
        """Partition names that survive activation."""
        return frozenset({self.static_name, self.dynamic_name})

    def resolve(self, url: str) -> str:
        """Resolve a root-relative *url* against :attr:`origin`; absolute URLs pass through."""
        if url.startswith("/") and not url.startswith("//"):
            return f"{self.origin}{url}"
        return url


class OutputConfig(BaseModel):
    """Default output format preferences stored in :class:`GlobalConfig`."""

    format: str = Field(default="auto", description="Output format: auto, json, plain, rich")


class GlobalConfig(BaseModel):
    """User-wide configuration persisted at ``~/.config/swcache/config.json``.

    Loaded and saved by :func:`~swcache.config.load_global_config` and
    :func:`~swcache.config.save_global_config`. See
    :func:`~swcache.config.resolve_config` for the precedence chain.
    """

    engine: EngineConfig = Field(default_factory=EngineConfig)
    store_dir: Optional[str] = Field(
        default=None, description="Directory for persistent partitions (default: XDG cache dir)"
    )
    output: OutputConfig = Field(default_factory=OutputConfig)


# --- Requests and responses ---


class FetchRequest(BaseModel):
    """An outbound request as seen by the engine.

    ``destination`` mirrors what kind of resource the page asked for
    (``"image"``, ``"script"``, ``"document"``, ...) and ``mode`` is
    ``"navigate"`` for top-level page loads.
    """

    model_config = ConfigDict(frozen=True)

    url: str
    method: str = "GET"
    destination: str = ""
    mode: str = "cors"
    headers: dict[str, str] = Field(default_factory=dict)
    content: Optional[bytes] = Field(default=None, description="Request body, sent as-is")

    @property
    def is_navigation(self) -> bool:
        return self.mode == "navigate"


class Classification(BaseModel):
    """Outcome of classifying an intercepted request."""

    model_config = ConfigDict(frozen=True)

    strategy: Strategy
    role: PartitionRole


class CachedResponse(BaseModel):
    """A stored response. Never patched; a newer copy replaces it wholesale."""

    model_config = ConfigDict(frozen=True)

    url: str
    status: int
    headers: dict[str, str] = Field(default_factory=dict)
    body: bytes = b""
    response_type: str = "basic"
    stored_at: float = Field(default_factory=time.time)

    @classmethod
    def from_response(cls, response: httpx.Response, response_type: str = "basic") -> CachedResponse:
        """Snapshot a fully-read :class:`httpx.Response`.

        The body is stored decoded, so headers describing the wire
        encoding are dropped.
        """
        headers = {
            key: value
            for key, value in response.headers.items()
            if key.lower() not in _TRANSPORT_HEADERS
        }
        return cls(
            url=str(response.url),
            status=response.status_code,
            headers=headers,
            body=response.content,
            response_type=response_type,
        )

    def to_response(self) -> httpx.Response:
        """Rebuild an :class:`httpx.Response` carrying this entry's status, headers and body."""
        return httpx.Response(
            status_code=self.status,
            headers=self.headers,
            content=self.body,
            request=httpx.Request("GET", self.url),
        )


# --- Control protocol ---


class ControlType(str, enum.Enum):
    """Control message types understood by :class:`~swcache.control.ControlChannel`."""

    SKIP_WAITING = "SKIP_WAITING"
    GET_VERSION = "GET_VERSION"
    CLEAR_CACHE = "CLEAR_CACHE"
    PREFETCH = "PREFETCH"


class ControlMessage(BaseModel):
    """Envelope of a control message: ``{type, data?}``."""

    type: ControlType
    data: Optional[dict[str, Any]] = None


class PrefetchData(BaseModel):
    """Payload of a ``PREFETCH`` message."""

    urls: list[str]


class VersionReply(BaseModel):
    """Reply to ``GET_VERSION``."""

    type: Literal["VERSION"] = "VERSION"
    version: str


class CacheClearedReply(BaseModel):
    """Reply to ``CLEAR_CACHE``, sent once every partition is gone."""

    type: Literal["CACHE_CLEARED"] = "CACHE_CLEARED"
    success: bool = True


Reply = Union[VersionReply, CacheClearedReply]


class ClientNotification(BaseModel):
    """Fire-and-forget message pushed to in-scope clients."""

    type: Literal["SYNC_NOTES", "BACKUP_NOTES"]
