from __future__ import annotations

import logging
import math
from typing import Any

import httpx

from timedesk.tracker.settings import TrackerSettings, get_tracker_settings

logger = logging.getLogger("timedesk.tracker")

MAX_LABEL_LENGTH = 140
MAX_LABEL_PARTS = 3

ADDRESS_KEY_RANKS: tuple[tuple[tuple[str, ...], int], ...] = (
    (
        (
            "quarter",
            "neighbourhood",
            "neighborhood",
            "suburb",
            "hamlet",
            "croft",
            "township",
            "isolated_dwelling",
            "residential",
            "housing_estate",
            "village",
        ),
        0,
    ),
    (("town", "city", "municipality", "city_district", "district", "state_district"), 1),
    (("county", "region", "province", "borough"), 2),
    (("state", "state_code", "archipelago"), 3),
    (("country", "country_code"), 4),
)


def build_location_label(payload: dict[str, Any]) -> str | None:
    """Pick the most local, shortest names from a reverse-geocoding result."""
    ranks: dict[str, int] = {}
    values: dict[str, str] = {}
    order: list[str] = []

    def register(value: Any, rank: int) -> None:
        if not isinstance(value, str):
            return
        trimmed = value.strip()
        if not trimmed:
            return
        key = trimmed.lower()
        if key in ranks:
            ranks[key] = min(ranks[key], rank)
            return
        ranks[key] = rank
        values[key] = trimmed
        order.append(key)

    register(payload.get("name"), 0)
    display_name = payload.get("display_name")
    if isinstance(display_name, str):
        parts = [part.strip() for part in display_name.split(",") if part.strip()]
        for index, part in enumerate(parts[:4]):
            register(part, min(index, 3))

    address = payload.get("address") or {}
    for keys, rank in ADDRESS_KEY_RANKS:
        for key in keys:
            register(address.get(key), rank)

    ranked = sorted(order, key=lambda key: (ranks[key], len(values[key])))
    label = ", ".join(values[key] for key in ranked[:MAX_LABEL_PARTS])
    return label[:MAX_LABEL_LENGTH] if label else None


async def resolve_location_label(
    lat: float | None,
    lon: float | None,
    *,
    http: httpx.AsyncClient | None = None,
    settings: TrackerSettings | None = None,
) -> str | None:
    if lat is None or lon is None or not math.isfinite(lat) or not math.isfinite(lon):
        return None
    settings = settings or get_tracker_settings()
    params = {
        "format": "jsonv2",
        "lat": str(lat),
        "lon": str(lon),
        "zoom": "18",
        "addressdetails": "1",
        "accept-language": "en",
    }
    owns_client = http is None
    client = http or httpx.AsyncClient(timeout=settings.request_timeout_seconds)
    try:
        response = await client.get(settings.geocoder_url, params=params, headers={"Accept": "application/json"})
        response.raise_for_status()
        return build_location_label(response.json())
    except (httpx.HTTPError, ValueError) as exc:
        logger.warning("tracker_location_label_failed", extra={"error": exc.__class__.__name__})
        return None
    finally:
        if owns_client:
            await client.aclose()
