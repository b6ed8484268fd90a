"""Challenge creation and selection."""

import asyncio
import random
from typing import Optional

from promptguess.backend.abstract import AbstractBackend
from promptguess.backend.models import Challenge, ChallengeCreate, ChallengeFilter
from promptguess.lib.exceptions import EmbeddingUnavailableError, InvalidInputError
from promptguess.lib.logger import configure_logger
from promptguess.services.ai.embeddings import EmbeddingProvider

logger = configure_logger(__name__)


class ChallengeService:
    """Creates challenges with a precomputed prompt embedding and picks random ones.

    The embedding is computed before anything is persisted, so a provider
    failure leaves no challenge behind.
    """

    def __init__(
        self,
        challenge_store: AbstractBackend,
        embedding_provider: Optional[EmbeddingProvider] = None,
    ):
        self.challenge_store = challenge_store
        self.embedding_provider = embedding_provider

    async def create_challenge(self, new_challenge: ChallengeCreate) -> Challenge:
        if not new_challenge.actual_prompt or not new_challenge.actual_prompt.strip():
            raise InvalidInputError("Challenge prompt is required")

        if new_challenge.prompt_embedding is None:
            if self.embedding_provider is None:
                raise EmbeddingUnavailableError("No embedding provider configured")
            embedding = await self.embedding_provider.embed(new_challenge.actual_prompt)
            new_challenge = new_challenge.model_copy(
                update={"prompt_embedding": embedding}
            )

        challenge = await asyncio.to_thread(
            self.challenge_store.create_challenge, new_challenge
        )
        logger.info(
            "Challenge created",
            extra={
                "challenge_id": str(challenge.id),
                "difficulty": str(challenge.difficulty),
                "embedding_dimensions": len(challenge.prompt_embedding or []),
                "event_type": "challenge_created",
            },
        )
        return challenge

    async def random_active_challenge(self) -> Optional[Challenge]:
        """Return a uniformly chosen active challenge, or None when there are none."""
        challenges = await asyncio.to_thread(
            self.challenge_store.list_challenges, ChallengeFilter(is_active=True)
        )
        if not challenges:
            return None
        return random.choice(challenges)
