"""Request classification -- which strategy and partition serve a request.

Rules are evaluated in order and the first match wins. The default rule
set is:

1. path listed in the manifest -> cache-first, static partition
2. path under ``/api/`` -> network-first, dynamic partition
3. image destination or static-asset extension -> stale-while-revalidate, dynamic
4. anything else -> network-first, dynamic

Requests that are not GET, or not http(s), are never intercepted.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Optional, Sequence
from urllib.parse import urlsplit

from swcache.models import Classification, EngineConfig, FetchRequest, PartitionRole, Strategy

STATIC_ASSET_EXTENSIONS = frozenset(
    {"css", "js", "png", "jpg", "jpeg", "gif", "svg", "woff", "woff2"}
)

Predicate = Callable[[FetchRequest, str], bool]
"""Called with the request and its URL path."""


@dataclass(frozen=True)
class ClassificationRule:
    name: str
    predicate: Predicate
    classification: Classification


def _extension(path: str) -> str:
    last = path.rsplit("/", 1)[-1]
    if "." not in last:
        return ""
    return last.rsplit(".", 1)[-1].lower()


def default_rules(config: EngineConfig) -> list[ClassificationRule]:
    """Build the standard rule list for *config*'s manifest."""
    manifest = frozenset(config.manifest)
    return [
        ClassificationRule(
            "manifest",
            lambda request, path: path in manifest,
            Classification(strategy=Strategy.CACHE_FIRST, role=PartitionRole.STATIC),
        ),
        ClassificationRule(
            "api",
            lambda request, path: path.startswith("/api/"),
            Classification(strategy=Strategy.NETWORK_FIRST, role=PartitionRole.DYNAMIC),
        ),
        ClassificationRule(
            "static-asset",
            lambda request, path: (
                request.destination == "image" or _extension(path) in STATIC_ASSET_EXTENSIONS
            ),
            Classification(strategy=Strategy.STALE_WHILE_REVALIDATE, role=PartitionRole.DYNAMIC),
        ),
    ]


class RequestClassifier:
    """Maps a :class:`~swcache.models.FetchRequest` to a :class:`~swcache.models.Classification`.

    Args:
        config: Engine configuration; root-relative URLs resolve against
            its origin and the default rules read its manifest.
        rules: Custom ordered rule list replacing :func:`default_rules`.
    """

    FALLBACK = Classification(strategy=Strategy.NETWORK_FIRST, role=PartitionRole.DYNAMIC)

    def __init__(
        self,
        config: EngineConfig,
        rules: Optional[Sequence[ClassificationRule]] = None,
    ) -> None:
        self._config = config
        self._rules = list(rules) if rules is not None else default_rules(config)

    @property
    def rules(self) -> list[ClassificationRule]:
        return list(self._rules)

    def classify(self, request: FetchRequest) -> Optional[Classification]:
        """Return the classification for *request*, or ``None`` to bypass the engine."""
        if request.method.upper() != "GET":
            return None
        parts = urlsplit(self._config.resolve(request.url))
        if parts.scheme.lower() not in ("http", "https"):
            return None

        path = parts.path or "/"
        for rule in self._rules:
            if rule.predicate(request, path):
                return rule.classification
        return self.FALLBACK
