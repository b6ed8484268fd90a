"""Guess evaluation: score a guess, decide correctness, settle the ledger."""

import asyncio
import uuid
from typing import Optional, Tuple, Union

from promptguess.backend.abstract import AbstractBackend
from promptguess.backend.models import Challenge, GuessResult, ScoringAlgorithm
from promptguess.config import config
from promptguess.lib.exceptions import (
    ChallengeNotFoundError,
    EmbeddingUnavailableError,
    InvalidInputError,
)
from promptguess.lib.logger import configure_logger
from promptguess.services.ai.embeddings import EmbeddingProvider
from promptguess.services.ledger.ledger_store import LedgerStore
from promptguess.services.scoring.decider import CorrectnessDecider
from promptguess.services.scoring.similarity import embedding_cosine, score_lexical

logger = configure_logger(__name__)

_FROM_CONFIG = object()


def parse_algorithm(value: Union[str, ScoringAlgorithm, None]) -> ScoringAlgorithm:
    if value is None or value == "":
        value = config.scoring.default_algorithm
    try:
        return ScoringAlgorithm(value)
    except ValueError:
        raise InvalidInputError("Unknown scoring algorithm", {"algorithm": str(value)})


class GuessEvaluationService:
    """Orchestrates scoring, the correctness decision and the ledger update.

    Embedding calls are the only awaited work and always complete before the
    ledger is touched. A failed embedding call is surfaced unless a lexical
    fallback algorithm has been configured explicitly.
    """

    def __init__(
        self,
        ledger: LedgerStore,
        decider: Optional[CorrectnessDecider] = None,
        embedding_provider: Optional[EmbeddingProvider] = None,
        challenge_store: Optional[AbstractBackend] = None,
        fallback_algorithm=_FROM_CONFIG,
        max_guess_length: Optional[int] = None,
    ):
        self.ledger = ledger
        self.max_guess_length = (
            config.scoring.max_guess_length
            if max_guess_length is None
            else max_guess_length
        )
        self.decider = decider or CorrectnessDecider()
        self.embedding_provider = embedding_provider
        self.challenge_store = challenge_store or ledger.backend

        if fallback_algorithm is _FROM_CONFIG:
            fallback_algorithm = config.scoring.embedding_fallback_algorithm or None
        if fallback_algorithm is not None:
            fallback_algorithm = ScoringAlgorithm(fallback_algorithm)
            if fallback_algorithm.is_semantic:
                raise InvalidInputError(
                    "Fallback algorithm must be lexical",
                    {"fallback_algorithm": str(fallback_algorithm)},
                )
        self.fallback_algorithm: Optional[ScoringAlgorithm] = fallback_algorithm

    async def evaluate(
        self,
        user_id: str,
        challenge: Optional[Challenge],
        guess_text: Optional[str],
        algorithm: Union[str, ScoringAlgorithm, None] = None,
    ) -> GuessResult:
        if not user_id or not str(user_id).strip():
            raise InvalidInputError("User id is required")
        if challenge is None or not challenge.actual_prompt.strip():
            raise InvalidInputError("Challenge is required")
        if not guess_text or not guess_text.strip():
            raise InvalidInputError("Guess text is required")
        self._check_guess_length(guess_text)
        algorithm = parse_algorithm(algorithm)

        score, used_algorithm, fallback_used = await self._score(
            challenge, guess_text, algorithm
        )
        is_correct = self.decider.decide(used_algorithm, score)

        if is_correct:
            outcome = await asyncio.to_thread(
                self.ledger.apply_reward,
                user_id,
                used_algorithm,
                score,
                challenge_id=challenge.id,
                guess_text=guess_text,
            )
        else:
            outcome = await asyncio.to_thread(
                self.ledger.record_incorrect_guess,
                user_id,
                algorithm=used_algorithm,
                score=score,
                challenge_id=challenge.id,
                guess_text=guess_text,
            )

        logger.info(
            "Guess evaluated",
            extra={
                "user_id": user_id,
                "challenge_id": str(challenge.id),
                "algorithm": str(used_algorithm),
                "score": score,
                "is_correct": is_correct,
                "tokens_earned": outcome.tokens_earned,
                "event_type": "guess_evaluated",
            },
        )

        return GuessResult(
            is_correct=is_correct,
            score=score,
            tokens_earned=outcome.tokens_earned,
            new_balance=outcome.new_balance,
            algorithm=used_algorithm,
            fallback_used=fallback_used,
            guess_id=outcome.guess_id,
        )

    async def evaluate_by_id(
        self,
        user_id: str,
        challenge_id: Union[str, uuid.UUID, None],
        guess_text: Optional[str],
        algorithm: Union[str, ScoringAlgorithm, None] = None,
    ) -> GuessResult:
        """Load the challenge from the challenge store, then evaluate."""
        if not challenge_id:
            raise InvalidInputError("Challenge id is required")
        if not guess_text or not guess_text.strip():
            raise InvalidInputError("Guess text is required")
        self._check_guess_length(guess_text)
        try:
            challenge_uuid = (
                challenge_id
                if isinstance(challenge_id, uuid.UUID)
                else uuid.UUID(str(challenge_id))
            )
        except ValueError:
            raise InvalidInputError(
                "Challenge id is not a valid UUID", {"challenge_id": str(challenge_id)}
            )

        challenge = await asyncio.to_thread(
            self.challenge_store.get_challenge, challenge_uuid
        )
        if challenge is None:
            raise ChallengeNotFoundError(challenge_uuid)
        return await self.evaluate(user_id, challenge, guess_text, algorithm)

    def _check_guess_length(self, guess_text: str) -> None:
        if len(guess_text) > self.max_guess_length:
            raise InvalidInputError(
                "Guess text is too long",
                {
                    "length": len(guess_text),
                    "max_guess_length": self.max_guess_length,
                },
            )

    async def _score(
        self, challenge: Challenge, guess_text: str, algorithm: ScoringAlgorithm
    ) -> Tuple[float, ScoringAlgorithm, bool]:
        if not algorithm.is_semantic:
            score = score_lexical(algorithm, guess_text, challenge.actual_prompt)
            return score, algorithm, False

        try:
            if self.embedding_provider is None:
                raise EmbeddingUnavailableError("No embedding provider configured")
            guess_vector = await self.embedding_provider.embed(guess_text)
            target_vector = challenge.prompt_embedding
            if not target_vector:
                target_vector = await self.embedding_provider.embed(
                    challenge.actual_prompt
                )
        except EmbeddingUnavailableError as e:
            if self.fallback_algorithm is None:
                raise
            logger.warning(
                "Embedding unavailable, using configured lexical fallback",
                extra={
                    "fallback_algorithm": str(self.fallback_algorithm),
                    "error": str(e),
                    "event_type": "embedding_fallback",
                },
            )
            score = score_lexical(
                self.fallback_algorithm, guess_text, challenge.actual_prompt
            )
            return score, self.fallback_algorithm, True

        return embedding_cosine(guess_vector, target_vector), algorithm, False
