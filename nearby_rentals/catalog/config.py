from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

load_dotenv(Path(__file__).resolve().parent.parent.parent / ".env")


@dataclass(frozen=True)
class CatalogConfig:
    """
    Where the property catalog lives and how long a fetched snapshot is trusted.
    """

    base_url: str = os.getenv("CATALOG_API_URL", "http://localhost:8000/api")
    timeout: float = 30.0
    refresh_seconds: float = 300.0


DEFAULT_CATALOG_CONFIG = CatalogConfig()
