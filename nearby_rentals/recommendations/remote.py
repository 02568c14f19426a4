from __future__ import annotations

import json
import logging
import threading
import time
from typing import Any, Callable

import httpx

from .config import DEFAULT_RECOMMENDER_CONFIG, RecommenderConfig
from .errors import DataShapeError, RecommendationError, TransportError
from .models import RecommendationQuery

logger = logging.getLogger(__name__)

RemoteItem = str | dict[str, Any]


def parse_recommendations(body: Any) -> list[RemoteItem]:
    """
    Pull the ranked item list out of a recommender response.

    Accepted shapes, tried in order:
    1. ``{"recommendations": [...]}``
    2. ``{"properties": [...]}``
    3. a bare JSON array

    Items that are neither an identifier nor an object are dropped.
    Anything else raises ``DataShapeError``.
    """
    items: Any = None
    if isinstance(body, dict):
        for field in ("recommendations", "properties"):
            if isinstance(body.get(field), list):
                items = body[field]
                break
    elif isinstance(body, list):
        items = body

    if items is None:
        raise DataShapeError(f"unexpected recommender payload: {type(body).__name__}")

    parsed: list[RemoteItem] = []
    for item in items:
        if isinstance(item, bool):
            continue
        if isinstance(item, (int, float)):
            parsed.append(str(item))
        elif isinstance(item, (str, dict)):
            parsed.append(item)
    return parsed


class RemoteRecommender:
    """HTTP adapter for the nearest-neighbour recommender service."""

    def __init__(
        self,
        config: RecommenderConfig = DEFAULT_RECOMMENDER_CONFIG,
        client: httpx.Client | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.config = config
        self._client = client
        self._clock = clock
        self._lock = threading.Lock()

    def _get_client(self) -> httpx.Client:
        with self._lock:
            if self._client is None:
                self._client = httpx.Client(
                    base_url=self.config.base_url,
                    timeout=httpx.Timeout(self.config.timeout),
                )
            return self._client

    def request(self, query: RecommendationQuery) -> list[RemoteItem]:
        """
        Call the service once. Raises ``TransportError`` or ``DataShapeError``.

        httpx only bounds each connect/read/write phase, so the body is
        streamed and the whole exchange is cut off once ``config.timeout``
        seconds have passed. A single stalled read can still take one more
        phase timeout before the check runs.
        """
        payload = {
            "price": query.price,
            "latitude": query.latitude,
            "longitude": query.longitude,
            "k": query.k,
            "mode": self.config.mode,
        }
        deadline = self._clock() + self.config.timeout
        chunks: list[bytes] = []
        try:
            with self._get_client().stream("POST", "/recommend", json=payload) as response:
                if not response.is_success:
                    raise TransportError(f"recommender returned HTTP {response.status_code}")
                for chunk in response.iter_bytes():
                    if self._clock() > deadline:
                        raise TransportError(
                            f"recommender response took longer than {self.config.timeout}s"
                        )
                    chunks.append(chunk)
        except httpx.HTTPError as exc:
            raise TransportError(f"recommender request failed: {exc}") from exc

        try:
            body = json.loads(b"".join(chunks))
        except ValueError as exc:
            raise DataShapeError("recommender returned malformed JSON") from exc

        return parse_recommendations(body)

    def fetch(self, query: RecommendationQuery) -> list[RemoteItem]:
        """
        Ranked recommendations for ``query``.

        Returns an empty list when the service is disabled, unreachable,
        slow past the timeout or answers with something unusable.
        """
        if not self.config.enabled:
            return []
        try:
            items = self.request(query)
        except RecommendationError:
            logger.warning("Remote recommender failed, falling back to local ranking", exc_info=True)
            return []
        logger.debug("Remote recommender returned %d items", len(items))
        return items

    def close(self) -> None:
        with self._lock:
            if self._client is not None:
                self._client.close()
                self._client = None
