"""Geoapify places client."""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

import httpx

from tourgen.config import settings

logger = logging.getLogger(__name__)


class PlacesError(Exception):
    """The places API answered with an error."""


class PlacesConfigurationError(Exception):
    """The places API cannot be used (no API key)."""


# Non-tourism places that sneak into broad category searches
EXCLUDED_CATEGORIES = [
    "service.social_facility",
    "healthcare",
    "office",
    "commercial.supermarket",
    "service.funeral",
    "education.school",
]

EXCLUDED_NAME_KEYWORDS = [
    "retirement",
    "nursing home",
    "dom za stare",
    "gerontološki",
    "social care",
    "funeral",
]

PRICE_LEVELS = {1: "low", 2: "low", 3: "medium", 4: "high"}


@dataclass
class RawPlace:
    """A place as returned by the places API, before any enrichment."""

    place_id: Optional[str]
    name: Optional[str]
    lat: Optional[float]
    lng: Optional[float]
    address: str = ""
    categories: List[str] = field(default_factory=list)
    website: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    description: Optional[str] = None
    price_level: Optional[str] = None
    opening_hours: Optional[str] = None


def parse_place(feature: Dict[str, Any]) -> RawPlace:
    """Parse a v2/places GeoJSON feature."""
    properties = feature.get("properties") or {}
    coordinates = (feature.get("geometry") or {}).get("coordinates") or []
    contact = properties.get("contact") or {}

    return RawPlace(
        place_id=properties.get("place_id"),
        name=properties.get("name") or properties.get("address_line1"),
        lat=coordinates[1] if len(coordinates) > 1 else properties.get("lat"),
        lng=coordinates[0] if coordinates else properties.get("lon"),
        address=properties.get("formatted") or _build_address(properties),
        categories=list(properties.get("categories") or []),
        website=properties.get("website") or contact.get("website"),
        phone=properties.get("phone") or contact.get("phone"),
        email=contact.get("email"),
        description=properties.get("description"),
        price_level=PRICE_LEVELS.get(properties.get("price_level")),
        opening_hours=properties.get("opening_hours"),
    )


def parse_geocode_result(feature: Dict[str, Any]) -> RawPlace:
    """Parse a v1/geocode/search feature."""
    properties = feature.get("properties") or {}
    category = properties.get("category")

    return RawPlace(
        place_id=properties.get("place_id"),
        name=properties.get("name") or properties.get("address_line1"),
        lat=properties.get("lat"),
        lng=properties.get("lon"),
        address=properties.get("formatted") or "",
        categories=[category] if category else [],
    )


def _build_address(properties: Dict[str, Any]) -> str:
    parts = [properties.get(k) for k in ("street", "housenumber", "city", "country")]
    return ", ".join(str(p) for p in parts if p)


def is_excluded_place(place: RawPlace) -> bool:
    """Retirement homes, social facilities and similar places are never tourism content."""
    if any(exc in category for category in place.categories for exc in EXCLUDED_CATEGORIES):
        logger.debug(f"Excluding place by category: {place.name}")
        return True

    text = f"{place.name or ''} {place.address or ''}".lower()
    if any(keyword in text for keyword in EXCLUDED_NAME_KEYWORDS):
        logger.debug(f"Excluding place by name keyword: {place.name}")
        return True

    return False


class PlacesClient:
    """Client for the Geoapify Places and Geocoding APIs. Callers own rate limiting."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        geocode_url: Optional[str] = None,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.api_key = settings.GEOAPIFY_API_KEY if api_key is None else api_key
        if not self.api_key:
            raise PlacesConfigurationError("GEOAPIFY_API_KEY is not configured")

        self.base_url = (base_url or settings.GEOAPIFY_BASE_URL).rstrip("/")
        self.geocode_url = (geocode_url or settings.GEOAPIFY_GEOCODE_URL).rstrip("/")
        self.language = settings.PLACES_LANGUAGE
        self.api_limit = settings.PLACES_API_LIMIT
        self._transport = transport

    def search(
        self,
        categories: Sequence[str],
        city: str,
        proximity: Optional[Dict[str, float]] = None,
        country_filter: Optional[str] = None,
        limit: int = 20,
        radius: Optional[int] = None,
    ) -> List[RawPlace]:
        """
        One call for a set of categories around a city.

        Radius search around proximity when coordinates are known, text
        search "<category> <city>" otherwise.
        """
        if proximity and proximity.get("lat") is not None and proximity.get("lng") is not None:
            return self.search_nearby(
                lat=proximity["lat"],
                lng=proximity["lng"],
                categories=categories,
                radius=radius or settings.PLACES_SEARCH_RADIUS,
                max_results=limit,
            )

        query = " ".join(c.split(".")[-1] for c in categories)
        return self.text_search(query=f"{query} {city}", country_code=country_filter, max_results=limit)

    def search_nearby(
        self,
        lat: float,
        lng: float,
        categories: Sequence[str],
        radius: int,
        max_results: int,
    ) -> List[RawPlace]:
        """Search places in a circle around a point."""
        params = {
            "categories": ",".join(categories),
            "filter": f"circle:{lng},{lat},{radius}",
            "bias": f"proximity:{lng},{lat}",
            "limit": min(max_results, self.api_limit),
            "lang": self.language,
            "apiKey": self.api_key,
        }
        body = self._get(f"{self.base_url}/places", params)
        places = [parse_place(f) for f in body.get("features") or []]
        return self._clean(places)[:max_results]

    def text_search(self, query: str, country_code: Optional[str] = None, max_results: int = 20) -> List[RawPlace]:
        """Search places by free text through the geocoding API."""
        params = {
            "text": query,
            "limit": min(max_results, self.api_limit),
            "lang": self.language,
            "apiKey": self.api_key,
        }
        if country_code:
            params["filter"] = f"countrycode:{country_code.lower()}"
        body = self._get(f"{self.geocode_url}/search", params)
        places = [parse_geocode_result(f) for f in body.get("features") or []]
        return self._clean(places)[:max_results]

    def _clean(self, places: List[RawPlace]) -> List[RawPlace]:
        seen = set()
        cleaned = []
        for place in places:
            if is_excluded_place(place):
                continue
            if place.place_id and place.place_id in seen:
                continue
            seen.add(place.place_id)
            cleaned.append(place)
        return cleaned

    def _get(self, url: str, params: Dict[str, Any]) -> Dict[str, Any]:
        try:
            with httpx.Client(timeout=settings.PLACES_TIMEOUT, transport=self._transport) as client:
                response = client.get(url, params=params)
        except httpx.HTTPError as e:
            raise PlacesError(f"Geoapify request failed: {e}") from e

        if response.status_code >= 400:
            try:
                message = response.json().get("message", "Unknown error")
            except ValueError:
                message = response.text[:200] or "Unknown error"
            raise PlacesError(f"Geoapify API error ({response.status_code}): {message}")

        try:
            return response.json()
        except ValueError as e:
            raise PlacesError("Geoapify returned a non-JSON body") from e
