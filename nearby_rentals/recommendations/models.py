from __future__ import annotations

import math
from typing import Any, Literal

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator, model_validator

from .config import DEFAULT_ENGINE_CONFIG


def _coerce_coordinate(value: Any) -> float:
    """Missing or unparseable coordinates become NaN so they never look valid."""
    if value is None or value == "":
        return math.nan
    try:
        return float(value)
    except (TypeError, ValueError):
        return math.nan


class Location(BaseModel):
    model_config = ConfigDict(extra="ignore")

    latitude: float = math.nan
    longitude: float = math.nan
    address: str = ""

    @field_validator("latitude", "longitude", mode="before")
    @classmethod
    def _coordinate(cls, value: Any) -> float:
        return _coerce_coordinate(value)

    @field_validator("address", mode="before")
    @classmethod
    def _address(cls, value: Any) -> str:
        return "" if value is None else str(value)


class Property(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    id: str = Field(..., min_length=1, validation_alias=AliasChoices("id", "_id"))
    name: str = ""
    price: float = Field(default=0.0, ge=0)
    property_type: str = Field(
        default="", validation_alias=AliasChoices("property_type", "propertyType")
    )
    location: Location = Field(default_factory=Location)
    images: list[str] = Field(default_factory=list)

    @model_validator(mode="before")
    @classmethod
    def _fold_single_image(cls, data: Any) -> Any:
        # Older listings carry a single ``image`` URL instead of ``images``.
        if isinstance(data, dict) and not data.get("images") and data.get("image"):
            data = {**data, "images": [data["image"]]}
        return data

    @field_validator("id", mode="before")
    @classmethod
    def _id(cls, value: Any) -> Any:
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return str(value)
        return value

    @field_validator("name", "property_type", mode="before")
    @classmethod
    def _text(cls, value: Any) -> str:
        return "" if value is None else str(value)

    @field_validator("price", mode="before")
    @classmethod
    def _price(cls, value: Any) -> Any:
        if value is None or value == "":
            return 0.0
        return value

    @field_validator("location", mode="before")
    @classmethod
    def _location(cls, value: Any) -> Any:
        return {} if value is None else value

    @field_validator("images", mode="before")
    @classmethod
    def _images(cls, value: Any) -> list[str]:
        if value is None:
            return []
        if isinstance(value, str):
            return [value]
        return [v for v in value if isinstance(v, str)]


class RecommendationQuery(BaseModel):
    latitude: float = Field(..., ge=-90.0, le=90.0, allow_inf_nan=False)
    longitude: float = Field(..., ge=-180.0, le=180.0, allow_inf_nan=False)
    price: float = Field(default=DEFAULT_ENGINE_CONFIG.default_price, ge=0, allow_inf_nan=False)
    k: int = Field(default=DEFAULT_ENGINE_CONFIG.default_k, ge=1)

    @field_validator("price", mode="before")
    @classmethod
    def _default_price(cls, value: Any) -> Any:
        return DEFAULT_ENGINE_CONFIG.default_price if value is None else value


ItemSource = Literal["remote", "fallback", "supplement", "cache"]


class RecommendationItem(BaseModel):
    property: Property
    source: ItemSource
    distance_km: float | None = None
    score: float | None = None
    # Position and extra fields from the remote ranking, for remote items only
    remote_rank: int | None = None
    remote_meta: dict[str, Any] | None = None


class RecommendationResponse(BaseModel):
    recommendations: list[RecommendationItem]
    total_candidates: int
    cache_hit: bool = False
    cache_key: str | None = None

    def properties(self) -> list[Property]:
        return [item.property for item in self.recommendations]


class CacheEntry(BaseModel):
    key: str
    timestamp: float
    payload: list[Property] = Field(default_factory=list)
