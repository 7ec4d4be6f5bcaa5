"""Base agent with prompt helpers and output validation."""

import logging
from typing import Any, Dict, Iterator, List, Sequence

from tourgen.config import GenerationConfig
from tourgen.services.llm_client import LLMClient

logger = logging.getLogger(__name__)


def batched(items: Sequence[Any], size: int) -> Iterator[List[Any]]:
    """Consecutive slices of at most size items."""
    for start in range(0, len(items), size):
        yield list(items[start:start + size])


def locale_object_schema(locales: Sequence[str]) -> Dict[str, Any]:
    """Strict JSON schema for an object with one string per locale."""
    return {
        "type": "object",
        "properties": {locale: {"type": "string"} for locale in locales},
        "required": list(locales),
        "additionalProperties": False,
    }


class BaseAgent:
    """
    Base class for all agents.

    Transport retries live in the LLM client. An agent turns one payload into
    validated output and falls back to a safe default when the model's
    answer does not validate. Request errors propagate to the orchestrator,
    which decides whether they are fatal for the run, the city or the item.
    """

    SCHEMA_NAME = "response"

    def __init__(self, llm_client: LLMClient, config: GenerationConfig):
        """Initialize base agent."""
        self.llm = llm_client
        self.config = config

    def execute(self, payload: Dict[str, Any]) -> Any:
        """
        Execute the agent.

        Args:
            payload: Input payload dict

        Returns:
            Agent output, or the agent's fallback when validation fails
        """
        name = self.__class__.__name__
        logger.info(f"Agent {name} started")

        result = self._run(payload)

        if self._validate(result):
            logger.info(f"Agent {name} succeeded")
            return result

        logger.warning(f"Agent {name} validation failed, using fallback")
        return self._fallback(payload)

    def ask(self, prompt: str, schema: Dict[str, Any], context: str) -> Dict[str, Any]:
        """Structured request; an unparseable answer comes back as an empty mapping."""
        result = self.llm.request(prompt, schema=schema, context=context, schema_name=self.SCHEMA_NAME)
        return result if isinstance(result, dict) else {}

    def cultural_context(self) -> str:
        """Shared preamble for every content prompt."""
        context = (
            f"You write tourism content about {self.config.target_country}. "
            "Be accurate about local history, names and geography; never invent places. "
            "Write naturally in each requested language rather than translating word for word."
        )
        if "bs" in self.config.locales:
            context += (
                '\nFor Bosnian ("bs") always use the ijekavian standard (lijepo, vrijeme, mjesto), '
                'never ekavian, and prefer "historija" and "hiljada".'
            )
        return context

    def _run(self, payload: Dict[str, Any]) -> Any:
        """
        Run the agent logic (to be implemented by subclasses).

        Args:
            payload: Input payload

        Returns:
            Agent output
        """
        raise NotImplementedError

    def _validate(self, result: Any) -> bool:
        """
        Validate the agent output (to be overridden by subclasses).

        Args:
            result: Agent output

        Returns:
            True if valid, False otherwise
        """
        return True

    def _fallback(self, payload: Dict[str, Any]) -> Any:
        """Output used when validation fails."""
        return None
