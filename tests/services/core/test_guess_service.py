"""Tests for the guess evaluation service."""

import threading
import uuid
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from promptguess.backend.models import ChallengeCreate, ScoringAlgorithm
from promptguess.lib.exceptions import (
    ChallengeNotFoundError,
    EmbeddingUnavailableError,
    InvalidInputError,
)
from promptguess.services.core.guess_service import (
    GuessEvaluationService,
    parse_algorithm,
)
from promptguess.services.ledger.ledger_store import LedgerStore
from promptguess.services.scoring.decider import CorrectnessDecider

from conftest import TARGET_PROMPT


@pytest.fixture
def decider() -> CorrectnessDecider:
    return CorrectnessDecider(lexical_threshold=70, semantic_threshold=0.75)


@pytest.fixture
def service(ledger, decider) -> GuessEvaluationService:
    return GuessEvaluationService(ledger, decider=decider, fallback_algorithm=None)


def _provider(side_effect=None, return_value=None):
    provider = MagicMock()
    provider.embed = AsyncMock(side_effect=side_effect, return_value=return_value)
    return provider


class TestParseAlgorithm:
    def test_accepts_known_names(self):
        assert parse_algorithm("exact") is ScoringAlgorithm.EXACT
        assert (
            parse_algorithm(ScoringAlgorithm.EMBEDDING_COSINE)
            is ScoringAlgorithm.EMBEDDING_COSINE
        )

    def test_missing_uses_configured_default(self):
        with patch("promptguess.services.core.guess_service.config") as mock_config:
            mock_config.scoring.default_algorithm = "containment"
            assert parse_algorithm(None) is ScoringAlgorithm.CONTAINMENT
            assert parse_algorithm("") is ScoringAlgorithm.CONTAINMENT

    def test_unknown_name_rejected(self):
        with pytest.raises(InvalidInputError):
            parse_algorithm("soundex")


class TestLexicalEvaluation:
    @pytest.mark.asyncio
    async def test_exact_guess_is_rewarded(self, service, ledger, challenge):
        result = await service.evaluate(
            "alice",
            challenge,
            "a futuristic city at sunset with flying cars",
            ScoringAlgorithm.EDIT_DISTANCE,
        )

        assert result.is_correct is True
        assert result.score == 100
        assert result.tokens_earned == 100
        assert result.new_balance == 100
        assert result.algorithm is ScoringAlgorithm.EDIT_DISTANCE
        assert result.fallback_used is False

        stats = ledger.get_user_stats("alice")
        assert stats.tokens_earned == 100
        assert stats.correct_guesses == 1
        assert ledger.get_emission_state().total_minted == 100

    @pytest.mark.asyncio
    async def test_wrong_guess_counts_without_reward(self, service, ledger, challenge):
        result = await service.evaluate(
            "alice", challenge, "a bowl of fruit", ScoringAlgorithm.EDIT_DISTANCE
        )

        assert result.is_correct is False
        assert result.tokens_earned == 0
        assert result.score < 70

        stats = ledger.get_user_stats("alice")
        assert stats.total_guesses == 1
        assert stats.correct_guesses == 0
        assert ledger.get_emission_state().total_minted == 0

    @pytest.mark.asyncio
    async def test_guess_is_recorded_with_challenge(self, service, ledger, challenge):
        result = await service.evaluate("alice", challenge, "flying cars", "containment")

        history = ledger.guess_history("alice")
        assert len(history) == 1
        assert history[0].id == result.guess_id
        assert history[0].challenge_id == challenge.id
        assert history[0].guess_text == "flying cars"
        assert history[0].score == 80

    @pytest.mark.parametrize("guess", ["", "   ", None])
    @pytest.mark.asyncio
    async def test_empty_guess_rejected_without_side_effects(
        self, service, ledger, backend, challenge, guess
    ):
        before = ledger.get_emission_state()

        with pytest.raises(InvalidInputError):
            await service.evaluate("alice", challenge, guess)

        assert ledger.get_emission_state() == before
        assert backend.get_user_account("alice") is None
        assert backend.list_guess_records() == []

    @pytest.mark.asyncio
    async def test_missing_user_rejected(self, service, challenge):
        with pytest.raises(InvalidInputError):
            await service.evaluate("", challenge, "flying cars")

    @pytest.mark.asyncio
    async def test_missing_challenge_rejected(self, service):
        with pytest.raises(InvalidInputError):
            await service.evaluate("alice", None, "flying cars")

    @pytest.mark.asyncio
    async def test_rewards_follow_the_schedule(self, backend, decider):
        ledger = LedgerStore(backend, max_retries=3, retry_delay=0)
        ledger.initialize("authority-wallet", initial_reward=100, halving_threshold=250)
        challenge = backend.create_challenge(ChallengeCreate(actual_prompt="dog"))
        service = GuessEvaluationService(ledger, decider=decider, fallback_algorithm=None)

        rewards = [
            (await service.evaluate("alice", challenge, "dog", "exact")).tokens_earned
            for _ in range(4)
        ]

        assert rewards == [100, 100, 100, 50]
        assert ledger.get_user_stats("alice").tokens_earned == 350


class TestSemanticEvaluation:
    @pytest.mark.asyncio
    async def test_uses_precomputed_prompt_embedding(self, ledger, backend, decider):
        challenge = backend.create_challenge(
            ChallengeCreate(actual_prompt=TARGET_PROMPT, prompt_embedding=[1.0, 0.0])
        )
        provider = _provider(return_value=[1.0, 0.0])
        service = GuessEvaluationService(
            ledger, decider=decider, embedding_provider=provider, fallback_algorithm=None
        )

        result = await service.evaluate(
            "alice", challenge, "a city of the future", "embedding_cosine"
        )

        assert result.is_correct is True
        assert result.score == pytest.approx(1.0)
        assert result.algorithm is ScoringAlgorithm.EMBEDDING_COSINE
        provider.embed.assert_awaited_once_with("a city of the future")

    @pytest.mark.asyncio
    async def test_embeds_prompt_when_not_precomputed(self, ledger, challenge, decider):
        provider = _provider(side_effect=[[1.0, 0.0], [0.0, 1.0]])
        service = GuessEvaluationService(
            ledger, decider=decider, embedding_provider=provider, fallback_algorithm=None
        )

        result = await service.evaluate(
            "alice", challenge, "a bowl of fruit", "embedding_cosine"
        )

        assert result.is_correct is False
        assert result.score == pytest.approx(0.0)
        assert provider.embed.await_count == 2

    @pytest.mark.asyncio
    async def test_unavailable_embedding_is_surfaced(self, ledger, backend, challenge, decider):
        provider = _provider(side_effect=EmbeddingUnavailableError(timed_out=True))
        service = GuessEvaluationService(
            ledger, decider=decider, embedding_provider=provider, fallback_algorithm=None
        )

        with pytest.raises(EmbeddingUnavailableError):
            await service.evaluate("alice", challenge, TARGET_PROMPT, "embedding_cosine")

        assert backend.get_user_account("alice") is None
        assert ledger.get_emission_state().total_minted == 0

    @pytest.mark.asyncio
    async def test_missing_provider_is_unavailable(self, service, challenge):
        with pytest.raises(EmbeddingUnavailableError):
            await service.evaluate("alice", challenge, TARGET_PROMPT, "embedding_cosine")

    @pytest.mark.asyncio
    async def test_configured_fallback_is_used(self, ledger, challenge, decider):
        provider = _provider(side_effect=EmbeddingUnavailableError())
        service = GuessEvaluationService(
            ledger,
            decider=decider,
            embedding_provider=provider,
            fallback_algorithm="edit_distance",
        )

        result = await service.evaluate(
            "alice", challenge, TARGET_PROMPT.upper(), "embedding_cosine"
        )

        assert result.fallback_used is True
        assert result.algorithm is ScoringAlgorithm.EDIT_DISTANCE
        assert result.score == 100
        assert result.is_correct is True
        assert ledger.guess_history("alice")[0].algorithm is ScoringAlgorithm.EDIT_DISTANCE

    def test_semantic_fallback_rejected(self, ledger):
        with pytest.raises(InvalidInputError):
            GuessEvaluationService(ledger, fallback_algorithm="embedding_cosine")

    def test_fallback_read_from_config(self, ledger):
        with patch("promptguess.services.core.guess_service.config") as mock_config:
            mock_config.scoring.embedding_fallback_algorithm = "containment"
            mock_config.scoring.lexical_threshold = 70.0
            mock_config.scoring.semantic_threshold = 0.75

            service = GuessEvaluationService(ledger, decider=CorrectnessDecider(70, 0.75))

        assert service.fallback_algorithm is ScoringAlgorithm.CONTAINMENT


class TestEvaluateById:
    @pytest.mark.asyncio
    async def test_loads_challenge(self, service, challenge):
        result = await service.evaluate_by_id("alice", str(challenge.id), TARGET_PROMPT)

        assert result.is_correct is True

    @pytest.mark.asyncio
    async def test_unknown_challenge(self, service):
        with pytest.raises(ChallengeNotFoundError):
            await service.evaluate_by_id("alice", uuid.uuid4(), "flying cars")

    @pytest.mark.asyncio
    async def test_invalid_challenge_id(self, service):
        with pytest.raises(InvalidInputError):
            await service.evaluate_by_id("alice", "not-a-uuid", "flying cars")

    @pytest.mark.asyncio
    async def test_empty_guess_checked_before_lookup(self, service):
        with pytest.raises(InvalidInputError):
            await service.evaluate_by_id("alice", uuid.uuid4(), "  ")


class TestGuessLength:
    @pytest.mark.asyncio
    async def test_overlong_guess_rejected_before_scoring(
        self, ledger, backend, challenge
    ):
        service = GuessEvaluationService(
            ledger, fallback_algorithm=None, max_guess_length=50
        )

        with patch("promptguess.services.core.guess_service.score_lexical") as mock_score:
            with pytest.raises(InvalidInputError) as exc_info:
                await service.evaluate("alice", challenge, "xy" * 100_000)

        mock_score.assert_not_called()
        assert exc_info.value.details["max_guess_length"] == 50
        assert backend.list_guess_records() == []

    @pytest.mark.asyncio
    async def test_guess_at_the_limit_is_scored(self, ledger, challenge, decider):
        service = GuessEvaluationService(
            ledger,
            decider=decider,
            fallback_algorithm=None,
            max_guess_length=len(TARGET_PROMPT),
        )

        result = await service.evaluate("alice", challenge, TARGET_PROMPT, "exact")

        assert result.is_correct is True

    @pytest.mark.asyncio
    async def test_evaluate_by_id_checks_length(self, ledger, challenge):
        service = GuessEvaluationService(
            ledger, fallback_algorithm=None, max_guess_length=5
        )

        with pytest.raises(InvalidInputError):
            await service.evaluate_by_id("alice", challenge.id, "flying cars")

    def test_limit_read_from_config(self, ledger):
        with patch("promptguess.services.core.guess_service.config") as mock_config:
            mock_config.scoring.max_guess_length = 123
            mock_config.scoring.embedding_fallback_algorithm = ""

            service = GuessEvaluationService(ledger, decider=CorrectnessDecider(70, 0.75))

        assert service.max_guess_length == 123


@pytest.mark.asyncio
async def test_ledger_commit_runs_off_the_event_loop_thread(service, ledger, challenge):
    loop_thread = threading.get_ident()
    commit_threads = []
    apply_reward = ledger.apply_reward

    def recording_apply_reward(*args, **kwargs):
        commit_threads.append(threading.get_ident())
        return apply_reward(*args, **kwargs)

    with patch.object(ledger, "apply_reward", side_effect=recording_apply_reward):
        result = await service.evaluate("alice", challenge, TARGET_PROMPT, "exact")

    assert result.tokens_earned == 100
    assert len(commit_threads) == 1
    assert commit_threads[0] != loop_thread
