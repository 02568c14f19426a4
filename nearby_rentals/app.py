from __future__ import annotations

from fastapi import Depends, FastAPI, HTTPException, Query
from pydantic import ValidationError

from .analytics.aggregator import compute_analytics
from .analytics.store import get_events
from .recommendations.engine import RecommendationEngine, get_engine
from .recommendations.models import RecommendationQuery, RecommendationResponse

app = FastAPI(title="Nearby Rentals Recommendation API", version="1.0.0")


# ── Public endpoints ─────────────────────────────────────────────────────


@app.get("/health")
def health() -> dict[str, str]:
    return {"status": "ok"}


# ── Recommendation endpoints ─────────────────────────────────────────────


@app.post("/recommendations", response_model=RecommendationResponse)
def recommendations(
    body: RecommendationQuery,
    engine: RecommendationEngine = Depends(get_engine),
) -> RecommendationResponse:
    return engine.recommend(body)


@app.get(
    "/properties/{property_id}/recommendations",
    response_model=RecommendationResponse,
)
def property_recommendations(
    property_id: str,
    k: int | None = Query(default=None, ge=1),
    engine: RecommendationEngine = Depends(get_engine),
) -> RecommendationResponse:
    anchor = engine.catalog.get(property_id)
    if anchor is None:
        raise HTTPException(status_code=404, detail="Property not found")
    try:
        return engine.recommend_for(anchor, k)
    except ValidationError:
        raise HTTPException(status_code=422, detail="Property has no usable location")


# ── Maintenance endpoints ────────────────────────────────────────────────


@app.post("/catalog/refresh")
def refresh_catalog(engine: RecommendationEngine = Depends(get_engine)) -> dict[str, int]:
    return {"count": engine.catalog.refresh(force=True)}


@app.get("/cache/stats")
def cache_stats(engine: RecommendationEngine = Depends(get_engine)) -> dict:
    return engine.cache.stats()


@app.delete("/cache")
def clear_cache(
    key: str | None = None,
    engine: RecommendationEngine = Depends(get_engine),
) -> dict[str, str]:
    engine.cache.clear(key)
    return {"status": "cleared"}


@app.get("/analytics")
def analytics() -> dict:
    return compute_analytics(get_events())
