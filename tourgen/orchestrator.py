"""Multi-phase content generation run: reason, then per city fetch, enrich, materialize."""

import logging
import time
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Sequence

from sqlalchemy.orm import Session

from tourgen.agents.experience_creator import ExperienceCreator
from tourgen.agents.location_enricher import LocationEnricher
from tourgen.agents.plan_creator import TOURIST_PROFILES, PlanCreator
from tourgen.agents.planner import PlannerAgent
from tourgen.config import GenerationConfig
from tourgen.models.experience import Experience, ExperienceLocation
from tourgen.models.location import Location
from tourgen.schemas.proposals import CityPlan, ExperienceProposal, LocationProposal, OrchestrationPlan
from tourgen.services.candidate_fetcher import CandidateFetcher
from tourgen.services.content_stats import current_state
from tourgen.services.llm_client import LLMClient, LLMConfigurationError, RequestError
from tourgen.services.materializer import Materializer
from tourgen.services.places import PlacesClient, RawPlace
from tourgen.services.quota import QuotaTracker
from tourgen.services.run_state import (
    CANCELLED_MESSAGE,
    STATUS_CANCELLED,
    STATUS_COMPLETED,
    STATUS_FAILED,
    STATUS_IN_PROGRESS,
    CancellationError,
    CancellationToken,
    GenerationRunStore,
)

logger = logging.getLogger(__name__)

CROSS_CITY = "*"


class GenerationError(Exception):
    """A fatal condition that fails the whole run."""


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def new_results() -> Dict[str, Any]:
    return {
        "started_at": _now(),
        "finished_at": None,
        "status": STATUS_IN_PROGRESS,
        "locations_created": 0,
        "locations_enriched": 0,
        "experiences_created": 0,
        "plans_created": 0,
        "cities_processed": [],
        "cross_city": {"experiences_created": 0, "plans_created": 0},
        "errors": [],
        "skipped": {"locations": 0, "experiences": 0, "plans": 0},
    }


class ContentOrchestrator:
    """
    Executes one generation run.

    Phases are strictly sequential. Cancellation is checked before every city
    and every phase, never inside a fetch batch. Quotas are checked before each
    item and consumed right after each record is actually created.
    """

    def __init__(
        self,
        db: Session,
        llm: LLMClient,
        places: Optional[PlacesClient],
        store: GenerationRunStore,
        config: GenerationConfig,
        token: Optional[CancellationToken] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.db = db
        self.llm = llm
        self.places = places
        self.store = store
        self.config = config
        self.options = config.options
        self.token = token or CancellationToken(store)

        self.quotas = QuotaTracker.from_limits(
            max_locations=self.options.max_locations,
            max_experiences=self.options.max_experiences,
            max_plans=self.options.max_plans,
        )
        self.results = new_results()

        self.planner = PlannerAgent(llm, config)
        self.enricher = LocationEnricher(llm, config)
        self.experience_creator = ExperienceCreator(llm, config)
        self.plan_creator = PlanCreator(llm, config)
        self.materializer = Materializer(db, config)
        self.fetcher = CandidateFetcher(places, db, config, sleep=sleep) if places is not None else None

    # Run

    def generate(self) -> Dict[str, Any]:
        """
        Run all phases and record the terminal status.

        Returns:
            The results record (also for cancelled runs)

        Raises:
            GenerationError: On any fatal failure, after recording status failed
        """
        logger.info(f"Starting content generation, quotas: {self.quotas.snapshot()}")

        try:
            self._check_collaborators()
            self.token.check("reasoning")
            plan = self.analyze_and_plan()
            self.execute_plan(plan)
        except CancellationError as e:
            logger.info(f"Generation cancelled: {e}")
            self._finish(STATUS_CANCELLED, CANCELLED_MESSAGE)
            return self.results
        except GenerationError as e:
            self._fail(str(e))
            raise
        except LLMConfigurationError as e:
            self._fail(str(e))
            raise GenerationError(str(e)) from e
        except Exception as e:
            logger.error(f"Generation failed unexpectedly: {e}", exc_info=True)
            self._fail(str(e))
            raise GenerationError(str(e)) from e

        self._finish(STATUS_COMPLETED, self._summary())
        return self.results

    def _check_collaborators(self) -> None:
        if not getattr(self.llm, "api_key", None):
            raise GenerationError("Language model API key is not configured")
        if self.fetcher is None and not self.options.skip_locations:
            raise GenerationError("Places API key is not configured; set it or skip locations")

    # Phase 1: reasoning

    def analyze_and_plan(self) -> OrchestrationPlan:
        self._publish("AI reasoning phase")
        state = current_state(
            self.db,
            self.config.target_country,
            self.config.target_country_code,
            max_experiences=self.quotas.experiences.limit,
        )

        try:
            raw_plan = self.planner.execute(state)
        except RequestError as e:
            raise GenerationError(f"AI reasoning failed: {e}") from e

        plan = OrchestrationPlan.model_validate(raw_plan)
        logger.info(f"Orchestration plan: {len(plan.target_cities)} cities, profiles {plan.tourist_profiles_to_generate}")
        self._publish(f"Plan ready for {len(plan.target_cities)} cities", plan=raw_plan)
        return plan

    # Phases 2-5

    def execute_plan(self, plan: OrchestrationPlan) -> None:
        profiles = plan.tourist_profiles_to_generate

        for city_plan in plan.target_cities:
            self.token.check(f"city {city_plan.city}")
            self.process_city(city_plan, profiles)

        self.token.check("cross-city experiences")
        self._cross_city("thematic experiences", self.create_cross_city_experiences)

        self.token.check("multi-city plans")
        self._cross_city("multi-city plans", self.create_multi_city_plans, profiles)

    def process_city(self, city_plan: CityPlan, profiles: Sequence[str]) -> None:
        city = city_plan.city
        logger.info(f"Processing city: {city}")
        self._publish(f"Processing {city}")
        entry = {"city": city, "locations_created": 0, "experiences_created": 0, "plans_created": 0}

        try:
            if not self.options.skip_locations and not self.quotas.locations.limit_reached():
                self.token.check(f"fetching places for {city}")
                candidates = self.fetcher.fetch(city_plan)

                self.token.check(f"enriching locations for {city}")
                proposals = self.enrich_candidates(candidates, city)

                self.token.check(f"saving locations for {city}")
                entry["locations_created"] = self.materialize_locations(proposals, city)

            if not self.options.skip_experiences and not self.quotas.experiences.limit_reached():
                self.token.check(f"experiences for {city}")
                entry["experiences_created"] = self.create_local_experiences(city)

            if not self.options.skip_plans and not self.quotas.plans.limit_reached():
                self.token.check(f"plans for {city}")
                entry["plans_created"] = self.create_city_plans(city, profiles)
        except (CancellationError, GenerationError):
            raise
        except Exception as e:
            logger.error(f"Error processing {city}: {e}", exc_info=True)
            self.results["errors"].append({"city": city, "error": str(e)})
            self._publish(f"Error processing {city}")
            return

        self.results["cities_processed"].append(entry)
        logger.info(
            f"Finished {city}: {entry['locations_created']} locations, "
            f"{entry['experiences_created']} experiences, {entry['plans_created']} plans"
        )
        self._publish(f"Finished {city}")

    # Locations

    def enrich_candidates(self, candidates: Sequence[RawPlace], city: str) -> List[LocationProposal]:
        budget = self.quotas.locations.bounded(len(candidates))
        proposals: List[LocationProposal] = []

        for candidate in candidates:
            if len(proposals) >= budget:
                break
            try:
                proposal = self.enricher.enrich(candidate, city)
            except Exception as e:
                logger.warning(f"[{city}] Enrichment failed for {candidate.name}: {e}")
                self.results["skipped"]["locations"] += 1
                continue

            if proposal is None:
                self.results["skipped"]["locations"] += 1
                continue

            proposals.append(proposal)
            self.results["locations_enriched"] += 1

        logger.info(f"[{city}] Enriched {len(proposals)} of {len(candidates)} candidates")
        return proposals

    def materialize_locations(self, proposals: Sequence[LocationProposal], city: str) -> int:
        created = 0
        for proposal in proposals:
            if self.quotas.locations.limit_reached():
                logger.info(f"[{city}] Location quota reached")
                break
            try:
                _, is_new = self.materializer.create_location(proposal, city)
            except Exception as e:
                logger.warning(f"[{city}] Could not save location {proposal.candidate.name}: {e}")
                self.results["skipped"]["locations"] += 1
                continue

            if is_new:
                self.quotas.locations.consume()
                self.results["locations_created"] += 1
                created += 1
        return created

    # Experiences

    def create_local_experiences(self, city: str) -> int:
        locations = (
            self.db.query(Location)
            .filter(Location.city == city, Location.lat.isnot(None), Location.lng.isnot(None))
            .order_by(Location.id)
            .all()
        )
        proposals = self.experience_creator.propose_local(locations, city, self.quotas.experiences.remaining())
        return self.apply_experiences(proposals, locations, city)

    def create_cross_city_experiences(self) -> None:
        if self.options.skip_experiences or self.quotas.experiences.limit_reached():
            return

        self._publish("Creating thematic experiences")
        locations = (
            self.db.query(Location)
            .filter(Location.lat.isnot(None), Location.lng.isnot(None))
            .order_by(Location.city, Location.id)
            .all()
        )
        proposals = self.experience_creator.propose_thematic(locations, self.quotas.experiences.remaining())
        created = self.apply_experiences(proposals, locations, CROSS_CITY)
        self.results["cross_city"]["experiences_created"] += created

    def apply_experiences(self, proposals: Sequence[ExperienceProposal], locations: Sequence[Location], city: str) -> int:
        created = 0
        for proposal in proposals:
            if self.quotas.experiences.limit_reached():
                logger.info(f"[{city}] Experience quota reached")
                break
            try:
                experience, is_new = self.materializer.create_experience(proposal, locations)
            except Exception as e:
                logger.warning(f"[{city}] Could not save experience: {e}")
                self.results["skipped"]["experiences"] += 1
                continue

            if experience is None:
                self.results["skipped"]["experiences"] += 1
            elif is_new:
                self.quotas.experiences.consume()
                self.results["experiences_created"] += 1
                created += 1
        return created

    # Plans

    def create_city_plans(self, city: str, profiles: Sequence[str]) -> int:
        experiences = (
            self.db.query(Experience)
            .join(ExperienceLocation, ExperienceLocation.experience_id == Experience.id)
            .join(Location, Location.id == ExperienceLocation.location_id)
            .filter(Location.city == city)
            .distinct()
            .order_by(Experience.id)
            .all()
        )
        return self.apply_plans(experiences, profiles, city)

    def create_multi_city_plans(self, profiles: Sequence[str]) -> None:
        if self.options.skip_plans or self.quotas.plans.limit_reached():
            return

        self._publish("Creating multi-city plans")
        experiences = self.db.query(Experience).order_by(Experience.id).all()
        created = self.apply_plans(experiences, profiles[: self.config.multi_city_profile_limit], None)
        self.results["cross_city"]["plans_created"] += created

    def apply_plans(self, experiences: Sequence[Experience], profiles: Sequence[str], city: Optional[str]) -> int:
        label = city or "multi-city"
        created = 0
        for profile in profiles:
            if self.quotas.plans.limit_reached():
                logger.info(f"[{label}] Plan quota reached")
                break
            if profile not in TOURIST_PROFILES:
                logger.warning(f"[{label}] Skipping unknown tourist profile: {profile}")
                continue

            proposal = self.plan_creator.propose(experiences, profile, city=city)
            if proposal is None:
                continue

            try:
                plan = self.materializer.create_plan(
                    proposal, experiences, profile, city=city, preferences=TOURIST_PROFILES[profile]["preferences"]
                )
            except Exception as e:
                logger.warning(f"[{label}] Could not save {profile} plan: {e}")
                self.results["skipped"]["plans"] += 1
                continue

            if plan is None:
                self.results["skipped"]["plans"] += 1
                continue

            self.quotas.plans.consume()
            self.results["plans_created"] += 1
            created += 1
        return created

    # Run record

    def _cross_city(self, label: str, step: Callable[..., None], *args: Any) -> None:
        try:
            step(*args)
        except (CancellationError, GenerationError):
            raise
        except Exception as e:
            logger.error(f"Error creating {label}: {e}", exc_info=True)
            self.results["errors"].append({"city": CROSS_CITY, "error": f"{label}: {e}"})

    def _publish(self, message: str, plan: Optional[Dict[str, Any]] = None) -> None:
        """Best-effort progress write; a failing write never aborts the run."""
        try:
            self.store.update(status=STATUS_IN_PROGRESS, message=message, plan=plan, results=self.results)
        except Exception as e:
            logger.warning(f"Could not save generation status: {e}")

    def _finish(self, status: str, message: str) -> None:
        self.results["status"] = status
        self.results["finished_at"] = _now()
        try:
            self.store.finish(status, message, results=self.results)
        except Exception as e:
            logger.error(f"Could not save final generation status {status}: {e}")
        logger.info(f"Generation {status}: {message}")

    def _fail(self, error: str) -> None:
        self.results["error"] = error
        self._finish(STATUS_FAILED, f"Generation failed: {error}")

    def _summary(self) -> str:
        r = self.results
        return (
            f"Created {r['locations_created']} locations, {r['experiences_created']} experiences "
            f"and {r['plans_created']} plans"
        )
