from __future__ import annotations

import logging
import math
import threading
import time
from typing import Protocol

from ..analytics.store import record_event
from ..catalog.store import CatalogSnapshot, PropertyCatalog, get_catalog
from .cache import RecommendationCache, anchor_cache_key, build_cache, location_cache_key
from .config import DEFAULT_ENGINE_CONFIG, EngineConfig
from .models import (
    ItemSource,
    Property,
    RecommendationItem,
    RecommendationQuery,
    RecommendationResponse,
)
from .normalize import NormalizedItem, normalize_items
from .remote import RemoteItem, RemoteRecommender
from .sanitizer import is_acceptable, sanitize
from .scoring import distance, rank_by_distance, rank_by_score, score

logger = logging.getLogger(__name__)

# (property, source, remote origin when the item came from the remote ranking)
Ranked = list[tuple[Property, ItemSource, NormalizedItem | None]]


class Recommender(Protocol):
    def fetch(self, query: RecommendationQuery) -> list[RemoteItem]: ...


class RecommendationEngine:
    """
    Resolves a query to at most ``k`` acceptable, distinct properties.

    Order of preference: a fresh and plausible cached batch, then the remote
    recommender's ranking, then the local distance/price ranking when the
    remote one is too thin, then the nearest remaining catalog properties.
    """

    def __init__(
        self,
        catalog: PropertyCatalog,
        cache: RecommendationCache | None = None,
        remote: Recommender | None = None,
        config: EngineConfig = DEFAULT_ENGINE_CONFIG,
    ) -> None:
        self.catalog = catalog
        self.cache = cache if cache is not None else RecommendationCache(config=config)
        self.remote = remote
        self.config = config

    def recommend(self, query: RecommendationQuery) -> RecommendationResponse:
        key = location_cache_key(query, self.config.coordinate_precision)
        return self._resolve(
            query,
            key,
            ttl_minutes=self.config.location_ttl_minutes,
            exclude=frozenset(),
        )

    def recommend_for(self, anchor: Property, k: int | None = None) -> RecommendationResponse:
        """
        Properties similar to ``anchor``: same pipeline, centred on the anchor.

        Raises ``pydantic.ValidationError`` if the anchor has no usable
        coordinates.
        """
        query = RecommendationQuery(
            latitude=anchor.location.latitude,
            longitude=anchor.location.longitude,
            price=anchor.price,
            k=k if k is not None else self.config.default_k,
        )
        return self._resolve(
            query,
            anchor_cache_key(anchor.id),
            ttl_minutes=self.config.anchor_ttl_minutes,
            exclude=frozenset({anchor.id}),
        )

    def _remote_ranking(
        self,
        query: RecommendationQuery,
        snapshot: CatalogSnapshot,
        exclude: frozenset[str],
    ) -> tuple[Ranked, int, bool]:
        items = self.remote.fetch(query) if self.remote is not None else []
        normalized = normalize_items(items, snapshot.index, exclude)
        ranked: Ranked = [(item.property, "remote", item) for item in normalized]

        passing = sum(1 for item in normalized if is_acceptable(item.property))
        needs_fallback = not normalized or passing < math.ceil(self.config.fallback_ratio * query.k)
        if needs_fallback:
            present = exclude | {item.property.id for item in normalized}
            candidates = [p for p in sanitize(snapshot.properties) if p.id not in present]
            fallback = rank_by_score(
                candidates, query, self.config.weight_distance, self.config.weight_price
            )
            ranked.extend((p, "fallback", None) for p in fallback)
            logger.debug(
                "Remote gave %d usable of %d items, added %d local fallback candidates",
                passing,
                len(normalized),
                len(fallback),
            )
        return ranked, len(normalized), needs_fallback

    def _resolve(
        self,
        query: RecommendationQuery,
        key: str,
        ttl_minutes: float,
        exclude: frozenset[str],
    ) -> RecommendationResponse:
        start_time = time.time()
        snapshot = self.catalog.snapshot()

        entry = self.cache.lookup(key, query, ttl_minutes)
        cache_hit = entry is not None
        remote_count = 0
        fallback_used = False
        if entry is not None:
            ranked: Ranked = [(p, "cache", None) for p in entry.payload]
        else:
            ranked, remote_count, fallback_used = self._remote_ranking(query, snapshot, exclude)

        # --- Sanitize + dedupe, keeping source priority ---
        selected: Ranked = []
        seen = set(exclude)
        for prop, source, origin in ranked:
            if len(selected) >= query.k:
                break
            if prop.id in seen or not is_acceptable(prop):
                continue
            seen.add(prop.id)
            selected.append((prop, source, origin))

        # --- Supplement any shortfall with the nearest catalog properties ---
        supplemented = 0
        if len(selected) < query.k:
            candidates = [p for p in sanitize(snapshot.properties) if p.id not in seen]
            for prop in rank_by_distance(candidates, query)[: query.k - len(selected)]:
                selected.append((prop, "supplement", None))
                supplemented += 1

        if not cache_hit:
            self.cache.save(key, [prop for prop, _, _ in selected])

        items = [
            RecommendationItem(
                property=prop,
                source=source,
                distance_km=round(distance(prop, query), 4),
                score=round(
                    score(prop, query, self.config.weight_distance, self.config.weight_price), 4
                ),
                remote_rank=origin.rank if origin is not None else None,
                remote_meta=origin.remote_meta if origin is not None else None,
            )
            for prop, source, origin in selected
        ]

        elapsed_ms = round((time.time() - start_time) * 1000, 1)
        record_event("recommend", {
            "cache_key": key,
            "anchored": bool(exclude),
            "cache_hit": cache_hit,
            "remote_items": remote_count,
            "fallback_used": fallback_used,
            "supplemented": supplemented,
            "results_returned": len(items),
            "response_time_ms": elapsed_ms,
        })
        if not items:
            logger.info("No acceptable properties found for %s", key)

        return RecommendationResponse(
            recommendations=items,
            total_candidates=len(snapshot),
            cache_hit=cache_hit,
            cache_key=key,
        )


_engine: RecommendationEngine | None = None
_engine_lock = threading.Lock()


def get_engine() -> RecommendationEngine:
    """Return the process-wide engine, building it on first call."""
    global _engine
    with _engine_lock:
        if _engine is None:
            _engine = RecommendationEngine(
                catalog=get_catalog(),
                cache=build_cache(),
                remote=RemoteRecommender(),
            )
    return _engine
