from __future__ import annotations

import math
from typing import Iterable

from .models import Property


def has_valid_coordinates(prop: Property) -> bool:
    lat = prop.location.latitude
    lon = prop.location.longitude
    if not (math.isfinite(lat) and math.isfinite(lon)):
        return False
    return not (lat == 0 and lon == 0)


def is_acceptable(prop: Property) -> bool:
    """A listing is shown only if it can be placed on a map and has a photo."""
    return has_valid_coordinates(prop) and any(img.strip() for img in prop.images)


def sanitize(properties: Iterable[Property]) -> list[Property]:
    return [p for p in properties if is_acceptable(p)]
