"""Fetches raw place candidates for one city under the places API rate limit."""

import logging
import math
import re
import time
from typing import Callable, List, Set, Tuple

from sqlalchemy.orm import Session

from tourgen.config import GenerationConfig
from tourgen.models.location import Location
from tourgen.schemas.proposals import CityPlan
from tourgen.services.materializer import COORDINATE_TOLERANCE
from tourgen.services.places import PlacesClient, PlacesError, RawPlace
from tourgen.services.rate_limiter import for_each_batch

logger = logging.getLogger(__name__)

# Extra results requested per category to make up for filtered-out places
PER_CATEGORY_HEADROOM = 5


def country_keywords(country: str) -> List[str]:
    """Significant lower-case words of a country name, e.g. ['bosnia', 'herzegovina']."""
    return [w for w in re.findall(r"[a-z]+", country.lower()) if len(w) > 3]


def is_in_target_country(place: RawPlace, city: str, country_code: str, keywords: List[str]) -> bool:
    """The address mentions the city, the country code or the country name."""
    address = (place.address or "").lower()
    if city and city.lower() in address:
        return True
    if country_code and re.search(rf"\b{re.escape(country_code.lower())}\b", address):
        return True
    return any(keyword in address for keyword in keywords)


class CandidateFetcher:
    """Drives the batch dispatcher over a city's categories and filters the results."""

    def __init__(
        self,
        places: PlacesClient,
        db: Session,
        config: GenerationConfig,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.places = places
        self.db = db
        self.config = config
        self.sleep = sleep
        self.keywords = country_keywords(config.target_country)

    def fetch(self, city_plan: CityPlan) -> List[RawPlace]:
        """
        Candidates for a city, at most city_plan.locations_to_fetch.

        One places API call per category. A failing category is logged and
        skipped. Results outside the target country, repeated place ids and
        places already stored at the same coordinates are dropped.
        """
        categories = city_plan.categories
        if not categories:
            logger.info(f"No categories planned for {city_plan.city}, skipping fetch")
            return []

        wanted = city_plan.locations_to_fetch
        per_category = math.ceil(wanted / len(categories)) + PER_CATEGORY_HEADROOM
        proximity = city_plan.proximity()
        collected: List[RawPlace] = []

        def work(batch: List[str]) -> bool:
            for category in batch:
                if len(collected) >= wanted:
                    return True
                try:
                    places = self.places.search(
                        categories=[category],
                        city=city_plan.city,
                        proximity=proximity,
                        country_filter=self.config.target_country_code,
                        limit=per_category,
                        radius=self.config.search_radius,
                    )
                except PlacesError as e:
                    logger.warning(f"Places API error for {city_plan.city} / {category}: {e}")
                    continue

                collected.extend(
                    p for p in places
                    if is_in_target_country(p, city_plan.city, self.config.target_country_code, self.keywords)
                )
            return len(collected) >= wanted

        batches = for_each_batch(
            categories,
            self.config.places_rate_limit,
            work,
            interval=self.config.places_batch_interval,
            sleep=self.sleep,
        )

        candidates = self._dedupe(collected)[:wanted]
        logger.info(
            f"Fetched {len(candidates)} candidates for {city_plan.city} "
            f"({len(collected)} raw, {len(categories)} categories, {batches} batches)"
        )
        return candidates

    def _dedupe(self, places: List[RawPlace]) -> List[RawPlace]:
        existing = self._existing_coordinates()
        seen_ids: Set[str] = set()
        unique: List[RawPlace] = []
        for place in places:
            if place.place_id:
                if place.place_id in seen_ids:
                    continue
                seen_ids.add(place.place_id)
            if self._near_existing(place, existing):
                continue
            unique.append(place)
        return unique

    def _existing_coordinates(self) -> List[Tuple[float, float]]:
        rows = self.db.query(Location.lat, Location.lng).filter(Location.lat.isnot(None), Location.lng.isnot(None)).all()
        return [(lat, lng) for lat, lng in rows]

    @staticmethod
    def _near_existing(place: RawPlace, existing: List[Tuple[float, float]]) -> bool:
        if place.lat is None or place.lng is None:
            return False
        return any(
            abs(place.lat - lat) <= COORDINATE_TOLERANCE and abs(place.lng - lng) <= COORDINATE_TOLERANCE
            for lat, lng in existing
        )
