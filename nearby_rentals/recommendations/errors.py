from __future__ import annotations


class RecommendationError(Exception):
    """Base class for faults the recommendation pipeline recovers from."""


class TransportError(RecommendationError):
    """The remote recommender could not be reached or answered non-2xx."""


class CacheError(RecommendationError):
    """The cache backend failed to read or write an entry."""


class DataShapeError(RecommendationError):
    """A remote payload did not have any of the expected shapes."""
