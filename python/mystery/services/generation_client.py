"""External generation service client.

Package content is produced by an external generator sitting behind a
Supabase edge function. Triggering it is a single POST carrying the
conversation id and the test-mode flag; the generator writes content and
status back out of band (see the internal callback routes).

The conversation id in the payload is what lets the generator recognise
repeated resume calls for the same mystery.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from uuid import UUID

import httpx

from mystery.config import get_settings
from mystery.errors import GenerationTriggerError
from mystery.logging import get_logger

logger = get_logger(__name__)


class GenerationClientBase(ABC):
    """Abstract base class for generation service clients."""

    @abstractmethod
    def trigger(self, conversation_id: UUID, *, test_mode: bool) -> None:
        """Ask the generator to produce (or resume) a package.

        Args:
            conversation_id: Conversation whose package should be generated.
            test_mode: Request a cheap test package instead of a full one.

        Raises:
            GenerationTriggerError: If the service is unreachable or rejects the call.
        """
        ...


class GenerationClient(GenerationClientBase):
    """Production client invoking the generation edge function over HTTP."""

    def __init__(
        self,
        function_url: str,
        service_key: str,
        timeout_s: float = 30.0,
    ):
        """Initialize the client.

        Args:
            function_url: Full edge function URL ({SUPABASE_URL}/functions/v1/{name}).
            service_key: Supabase service role key.
            timeout_s: Request timeout in seconds.
        """
        self._function_url = function_url
        self._timeout_s = timeout_s
        self._headers = {
            "Authorization": f"Bearer {service_key}",
            "apikey": service_key,
        }

    def trigger(self, conversation_id: UUID, *, test_mode: bool) -> None:
        payload = {"conversationId": str(conversation_id), "testMode": test_mode}

        try:
            with httpx.Client() as client:
                response = client.post(
                    self._function_url,
                    headers=self._headers,
                    json=payload,
                    timeout=self._timeout_s,
                )
        except httpx.HTTPError as e:
            raise GenerationTriggerError(
                f"Generation service unreachable: {type(e).__name__}"
            ) from e

        if response.status_code >= 400:
            raise GenerationTriggerError(
                f"Generation service returned {response.status_code}: {response.text[:200]}",
                status_code=response.status_code,
            )

        logger.info(
            "generation_service_triggered",
            conversation_id=str(conversation_id),
            test_mode=test_mode,
            status_code=response.status_code,
        )


@dataclass
class FakeGenerationClient(GenerationClientBase):
    """In-memory client for local development and tests.

    Records every trigger call; set ``fail_with`` to make calls raise.
    """

    calls: list[tuple[UUID, bool]] = field(default_factory=list)
    fail_with: str | None = None

    def trigger(self, conversation_id: UUID, *, test_mode: bool) -> None:
        self.calls.append((conversation_id, test_mode))
        if self.fail_with is not None:
            raise GenerationTriggerError(self.fail_with)

    # Test helper methods

    def call_count(self, conversation_id: UUID | None = None) -> int:
        """Number of recorded calls, optionally for one conversation."""
        if conversation_id is None:
            return len(self.calls)
        return sum(1 for called_id, _ in self.calls if called_id == conversation_id)

    def clear(self) -> None:
        self.calls.clear()
        self.fail_with = None


def get_generation_client() -> GenerationClientBase:
    """Get the configured generation client.

    Returns:
        GenerationClient if SUPABASE_URL and SUPABASE_SERVICE_KEY are set,
        FakeGenerationClient otherwise.
    """
    settings = get_settings()
    function_url = settings.generation_function_url

    if function_url and settings.supabase_service_key:
        return GenerationClient(
            function_url=function_url,
            service_key=settings.supabase_service_key,
            timeout_s=settings.generation_timeout_s,
        )

    # Local dev without Supabase: nothing is generated, the status stays in_progress
    logger.warning("generation_client_fake_in_use")
    return FakeGenerationClient()
