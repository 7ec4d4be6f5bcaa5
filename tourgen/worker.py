"""Background worker that executes generation runs, one at a time."""

import logging
import threading
from typing import Any, Callable, Dict, Optional

from sqlalchemy.orm import Session

from tourgen.config import GenerationConfig, StartOptions
from tourgen.database import SessionLocal
from tourgen.orchestrator import ContentOrchestrator, GenerationError
from tourgen.services.llm_client import LLMClient
from tourgen.services.places import PlacesClient, PlacesConfigurationError
from tourgen.services.run_state import STATUS_FAILED, GenerationRunStore

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)

logger = logging.getLogger(__name__)


def build_places_client() -> Optional[PlacesClient]:
    """Places client from settings; None when no key is configured."""
    try:
        return PlacesClient()
    except PlacesConfigurationError as e:
        logger.warning(f"Places API unavailable: {e}")
        return None


class GenerationWorker:
    """Runs at most one generation at a time in a daemon thread."""

    def __init__(
        self,
        store: Optional[GenerationRunStore] = None,
        session_factory: Callable[[], Session] = SessionLocal,
        llm_factory: Callable[[], Any] = LLMClient,
        places_factory: Callable[[], Any] = build_places_client,
    ):
        """Initialize worker."""
        self.session_factory = session_factory
        self.store = store or GenerationRunStore(session_factory)
        self.llm_factory = llm_factory
        self.places_factory = places_factory
        self._thread: Optional[threading.Thread] = None

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self, options: Optional[StartOptions] = None) -> bool:
        """
        Claim the run record and execute the run in the background.

        Returns:
            False if another run is in progress
        """
        if not self.store.try_start():
            return False

        self._thread = threading.Thread(
            target=self.run,
            args=(options or StartOptions(),),
            name="generation-worker",
            daemon=True,
        )
        self._thread.start()
        logger.info("Generation worker thread started")
        return True

    def start_foreground(self, options: Optional[StartOptions] = None) -> Optional[Dict[str, Any]]:
        """Claim the run record and execute the run in the calling thread. None on conflict."""
        if not self.store.try_start():
            return None
        return self.run(options or StartOptions())

    def run(self, options: StartOptions) -> Dict[str, Any]:
        """Execute a run that was already claimed with try_start. Run failures are logged and recorded, never raised."""
        db = self.session_factory()
        try:
            orchestrator = ContentOrchestrator(
                db=db,
                llm=self.llm_factory(),
                places=None if options.skip_locations else self.places_factory(),
                store=self.store,
                config=GenerationConfig.from_settings(options),
            )
            orchestrator.generate()
        except GenerationError as e:
            logger.error(f"Generation run failed: {e}")
        except Exception as e:
            logger.error(f"Generation worker error: {e}", exc_info=True)
            try:
                self.store.finish(STATUS_FAILED, f"Generation failed: {e}")
            except Exception as finish_error:
                logger.error(f"Could not save failed generation status: {finish_error}")
        finally:
            db.close()

        return self.store.snapshot()

    def join(self, timeout: Optional[float] = None) -> None:
        if self._thread is not None:
            self._thread.join(timeout=timeout)


def main():
    """Entry point for a standalone run with default options."""
    worker = GenerationWorker()
    snapshot = worker.start_foreground()
    if snapshot is None:
        logger.error("A generation run is already in progress")
        return
    logger.info(f"Generation finished with status {snapshot['status']}: {snapshot['message']}")


if __name__ == "__main__":
    main()
