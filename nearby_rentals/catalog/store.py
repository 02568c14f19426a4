from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable

import httpx
from pydantic import ValidationError

from ..recommendations.errors import DataShapeError
from ..recommendations.models import Property
from .config import DEFAULT_CATALOG_CONFIG, CatalogConfig

logger = logging.getLogger(__name__)


def parse_catalog_payload(body: Any) -> list[Any]:
    """Accept a bare array or an object carrying a ``properties`` array."""
    if isinstance(body, list):
        return body
    if isinstance(body, dict) and isinstance(body.get("properties"), list):
        return body["properties"]
    raise DataShapeError(f"unexpected catalog payload: {type(body).__name__}")


def load_properties(records: Iterable[Any]) -> list[Property]:
    """Validate raw listings in order. Invalid rows and repeated ids are skipped."""
    properties: list[Property] = []
    seen: set[str] = set()
    for position, record in enumerate(records):
        try:
            prop = record if isinstance(record, Property) else Property.model_validate(record)
        except ValidationError as exc:
            logger.warning(
                "Skipping catalog record %d: %s", position, exc.errors(include_url=False)
            )
            continue
        if prop.id in seen:
            logger.warning("Skipping duplicate catalog id %s", prop.id)
            continue
        seen.add(prop.id)
        properties.append(prop)
    return properties


class HttpCatalogSource:
    """Reads ``GET {base_url}/properties`` from the catalog service."""

    def __init__(
        self,
        config: CatalogConfig = DEFAULT_CATALOG_CONFIG,
        client: httpx.Client | None = None,
    ) -> None:
        self.config = config
        self._client = client

    def __call__(self) -> list[Any]:
        if self._client is None:
            self._client = httpx.Client(base_url=self.config.base_url, timeout=self.config.timeout)
        response = self._client.get("/properties")
        response.raise_for_status()
        return parse_catalog_payload(response.json())


@dataclass(frozen=True)
class CatalogSnapshot:
    properties: tuple[Property, ...] = ()
    index: dict[str, Property] = field(default_factory=dict)

    def __len__(self) -> int:
        return len(self.properties)


class PropertyCatalog:
    """
    In-memory view of the property catalog.

    The snapshot is replaced wholesale on refresh, so readers holding an old
    snapshot are never affected by a concurrent refresh. A failed refresh
    keeps the previous snapshot and waits ``refresh_seconds`` before retrying.
    """

    def __init__(
        self,
        fetcher: Callable[[], Iterable[Any]] | None = None,
        config: CatalogConfig = DEFAULT_CATALOG_CONFIG,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._fetcher = fetcher if fetcher is not None else HttpCatalogSource(config)
        self.config = config
        self._clock = clock
        self._snapshot = CatalogSnapshot()
        self._fetched_at: float | None = None
        self._lock = threading.Lock()

    @classmethod
    def from_records(
        cls, records: Iterable[Any], config: CatalogConfig = DEFAULT_CATALOG_CONFIG
    ) -> PropertyCatalog:
        records = list(records)
        return cls(fetcher=lambda: records, config=config)

    def _is_fresh(self) -> bool:
        if self._fetched_at is None:
            return False
        return self._clock() - self._fetched_at < self.config.refresh_seconds

    def refresh(self, force: bool = False) -> int:
        """Reload the catalog if stale (or always when ``force``). Returns its size."""
        with self._lock:
            if not force and self._is_fresh():
                return len(self._snapshot)
            try:
                properties = load_properties(self._fetcher())
            except Exception:
                logger.warning(
                    "Catalog refresh failed, keeping %d cached properties",
                    len(self._snapshot),
                    exc_info=True,
                )
                self._fetched_at = self._clock()
                return len(self._snapshot)
            self._snapshot = CatalogSnapshot(
                properties=tuple(properties),
                index={p.id: p for p in properties},
            )
            self._fetched_at = self._clock()
            logger.info("Catalog refreshed with %d properties", len(properties))
            return len(properties)

    def snapshot(self) -> CatalogSnapshot:
        self.refresh()
        return self._snapshot

    def fetch_all(self) -> list[Property]:
        return list(self.snapshot().properties)

    def get(self, property_id: str) -> Property | None:
        return self.snapshot().index.get(property_id)


_default_catalog: PropertyCatalog | None = None


def get_catalog() -> PropertyCatalog:
    """Return the process-wide catalog backed by the catalog service."""
    global _default_catalog
    if _default_catalog is None:
        _default_catalog = PropertyCatalog()
    return _default_catalog
