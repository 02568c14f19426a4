from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping

from pydantic import ValidationError

from .models import Location, Property
from .remote import RemoteItem

logger = logging.getLogger(__name__)

_ID_FIELDS = ("_id", "id")


@dataclass(frozen=True)
class Resolved:
    """A remote suggestion matched to its catalog record."""

    property: Property
    rank: int
    remote_meta: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class Synthesized:
    """A remote suggestion the catalog does not know, rebuilt from remote fields."""

    property: Property
    rank: int
    remote_meta: dict[str, Any] = field(default_factory=dict)


NormalizedItem = Resolved | Synthesized


def remote_identifier(item: RemoteItem) -> str | None:
    if isinstance(item, str):
        return item.strip() or None
    for key in _ID_FIELDS:
        value = item.get(key)
        if value is not None and not isinstance(value, (bool, dict, list)):
            text = str(value).strip()
            if text:
                return text
    return None


def _number(value: Any, default: float = 0.0) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return default
    return number if math.isfinite(number) else default


def synthesize(identifier: str, item: Mapping[str, Any]) -> Property:
    """Best-effort Property from a partial remote object; gaps become zero values."""
    raw_location = item.get("location")
    if not isinstance(raw_location, Mapping):
        raw_location = {}
    location = Location(
        latitude=_number(raw_location.get("latitude")),
        longitude=_number(raw_location.get("longitude")),
        address=raw_location.get("address") or "",
    )
    try:
        return Property(
            id=identifier,
            name=item.get("name") or "",
            price=max(0.0, _number(item.get("price"))),
            property_type=item.get("propertyType") or item.get("property_type") or "",
            location=location,
            images=item.get("images") or item.get("image") or [],
        )
    except ValidationError:
        logger.warning("Remote item %s has unusable fields, keeping id only", identifier)
        return Property(id=identifier, location=location)


def normalize_items(
    items: Iterable[RemoteItem],
    catalog_index: Mapping[str, Property],
    exclude: Iterable[str] = (),
) -> list[NormalizedItem]:
    """
    Turn raw remote items into ``Resolved`` or ``Synthesized`` entries.

    Remote rank order is kept. Items without an identifier, excluded ids and
    repeated ids (after the first) are dropped.
    """
    seen = set(exclude)
    normalized: list[NormalizedItem] = []
    for rank, item in enumerate(items):
        identifier = remote_identifier(item)
        if identifier is None:
            logger.debug("Dropping remote item without identifier at rank %d", rank)
            continue
        if identifier in seen:
            continue
        seen.add(identifier)

        fields = {} if isinstance(item, str) else item
        meta = {k: v for k, v in fields.items() if k not in _ID_FIELDS}
        known = catalog_index.get(identifier)
        if known is not None:
            normalized.append(Resolved(property=known, rank=rank, remote_meta=meta))
        else:
            normalized.append(
                Synthesized(property=synthesize(identifier, fields), rank=rank, remote_meta=meta)
            )
    return normalized
