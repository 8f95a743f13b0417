#Purpose: The place search "adapter/client".
#Sole responsibility: ask an external provider for points of interest near a
#coordinate and return them as Place objects.
#It should not contain fairness scoring or fallback logic (see candidates.py).

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Protocol

import httpx
from loguru import logger

from halfway.services.geo import Coordinate


class PlaceSearchError(Exception):
    """Provider answered with an error or an unreadable payload."""
    pass


@dataclass(frozen=True)
class Place:
    id: str
    name: str
    address: str
    coordinate: Coordinate
    rating: Optional[float] = None
    is_open_now: Optional[bool] = None


class PlaceSearch(Protocol):
    def search_nearby(self, coordinate: Coordinate, radius_m: float, category: str) -> List[Place]:
        ...


class HttpPlaceSearch:
    """
    Place search over a small JSON HTTP contract:

        GET {base_url}/places/nearby?lat=..&lng=..&radius=..&category=..
        -> {"results": [{"id", "name", "address", "lat", "lng",
                         "rating"?, "open_now"?}, ...]}

    A bare JSON list is accepted as well.
    """

    def __init__(
        self,
        base_url: str,
        api_key: Optional[str] = None,
        timeout: float = 3.0,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        if not base_url:
            raise ValueError("Place search base URL not set. Please set PLACE_SEARCH_URL.")
        headers = {"Accept": "application/json"}
        if api_key:
            headers["Authorization"] = f"Bearer {api_key}"
        self._client = httpx.Client(
            base_url=base_url.rstrip("/"),
            headers=headers,
            timeout=timeout,
            transport=transport,
        )

    def close(self) -> None:
        self._client.close()

    def search_nearby(self, coordinate: Coordinate, radius_m: float, category: str) -> List[Place]:
        resp = self._client.get(
            "/places/nearby",
            params={
                "lat": coordinate.latitude,
                "lng": coordinate.longitude,
                "radius": int(radius_m),
                "category": category,
            },
        )
        if resp.status_code >= 400:
            raise PlaceSearchError(f"Place search failed: HTTP {resp.status_code}")

        try:
            data = resp.json()
        except ValueError:
            raise PlaceSearchError("Place search returned non-JSON response")

        rows = data.get("results", []) if isinstance(data, dict) else data
        places = []
        for row in rows or []:
            place = _parse_place(row)
            if place is not None:
                places.append(place)

        logger.debug(f"Place search for {category} within {int(radius_m)}m returned {len(places)} places")
        return places


def _parse_place(row: Dict[str, Any]) -> Optional[Place]:
    try:
        coordinate = Coordinate(float(row["lat"]), float(row["lng"]))
        place_id = str(row["id"])
    except (KeyError, TypeError, ValueError):
        # rows without an id or a usable position cannot be scored
        logger.debug(f"Skipping malformed place row: {row}")
        return None

    rating = row.get("rating")
    return Place(
        id=place_id,
        name=row.get("name") or "Unnamed place",
        address=row.get("address") or "Address not available",
        coordinate=coordinate,
        rating=float(rating) if rating is not None else None,
        is_open_now=row.get("open_now"),
    )
