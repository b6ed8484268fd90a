"""Tests for the HTTP routes against an in-memory ledger."""

import uuid
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from fastapi.testclient import TestClient

from promptguess.api.dependencies import (
    get_challenge_service,
    get_guess_service,
    get_ledger,
)
from promptguess.backend.models import ChallengeCreate
from promptguess.lib.exceptions import EmbeddingUnavailableError
from promptguess.main import app
from promptguess.services.core.challenge_service import ChallengeService
from promptguess.services.core.guess_service import GuessEvaluationService
from promptguess.services.scoring.decider import CorrectnessDecider

from conftest import AUTHORITY, TARGET_PROMPT


@pytest.fixture
def service(ledger) -> GuessEvaluationService:
    return GuessEvaluationService(
        ledger,
        decider=CorrectnessDecider(lexical_threshold=70, semantic_threshold=0.75),
        fallback_algorithm=None,
    )


@pytest.fixture
def embedding_provider():
    provider = MagicMock()
    provider.embed = AsyncMock(return_value=[0.1, 0.2, 0.3])
    return provider


@pytest.fixture
def challenge_service(backend, embedding_provider) -> ChallengeService:
    return ChallengeService(backend, embedding_provider=embedding_provider)


@pytest.fixture
def client(ledger, service, challenge_service):
    app.dependency_overrides[get_ledger] = lambda: ledger
    app.dependency_overrides[get_guess_service] = lambda: service
    app.dependency_overrides[get_challenge_service] = lambda: challenge_service
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def admin_headers():
    with patch("promptguess.api.dependencies.config") as mock_config:
        mock_config.api.admin_auth = "admin-token"
        yield {"Authorization": "Bearer admin-token"}


def test_health_check(client):
    response = client.get("/")
    assert response.status_code == 200
    assert response.json() == {"status": "healthy"}


def test_responses_carry_process_time(client):
    response = client.get("/leaderboard")
    assert float(response.headers["X-Process-Time-Ms"]) >= 0


class TestGuesses:
    def test_correct_guess(self, client, challenge):
        response = client.post(
            "/guesses",
            json={
                "user_id": "alice",
                "challenge_id": str(challenge.id),
                "guess_text": "a futuristic city at sunset with flying cars",
                "algorithm": "edit_distance",
            },
        )

        assert response.status_code == 200
        body = response.json()
        assert body["is_correct"] is True
        assert body["score"] == 100
        assert body["tokens_earned"] == 100
        assert body["new_balance"] == 100

    def test_empty_guess_is_400(self, client, challenge):
        response = client.post(
            "/guesses",
            json={"user_id": "alice", "challenge_id": str(challenge.id), "guess_text": " "},
        )
        assert response.status_code == 400

    def test_unknown_challenge_is_404(self, client):
        response = client.post(
            "/guesses",
            json={
                "user_id": "alice",
                "challenge_id": str(uuid.uuid4()),
                "guess_text": "flying cars",
            },
        )
        assert response.status_code == 404

    def test_unknown_algorithm_is_422(self, client, challenge):
        response = client.post(
            "/guesses",
            json={
                "user_id": "alice",
                "challenge_id": str(challenge.id),
                "guess_text": "flying cars",
                "algorithm": "soundex",
            },
        )
        assert response.status_code == 422

    def test_embedding_outage_is_503(self, client, service, challenge):
        provider = MagicMock()
        provider.embed = AsyncMock(side_effect=EmbeddingUnavailableError())
        service.embedding_provider = provider

        response = client.post(
            "/guesses",
            json={
                "user_id": "alice",
                "challenge_id": str(challenge.id),
                "guess_text": TARGET_PROMPT,
                "algorithm": "embedding_cosine",
            },
        )
        assert response.status_code == 503

    def test_overlong_guess_is_422(self, client, challenge):
        response = client.post(
            "/guesses",
            json={
                "user_id": "alice",
                "challenge_id": str(challenge.id),
                "guess_text": "a" * 1001,
            },
        )
        assert response.status_code == 422


class TestPlayers:
    def test_stats_and_leaderboard(self, client, ledger):
        ledger.apply_reward("bob", "exact", 100)
        ledger.record_incorrect_guess("bob")
        ledger.apply_reward("alice", "exact", 100)
        ledger.apply_reward("alice", "exact", 100)

        stats = client.get("/users/bob/stats").json()
        assert stats["total_guesses"] == 2
        assert stats["correct_guesses"] == 1
        assert stats["accuracy"] == 0.5

        leaderboard = client.get("/leaderboard", params={"limit": 5}).json()["leaderboard"]
        assert [e["user_id"] for e in leaderboard] == ["alice", "bob"]
        assert [e["rank"] for e in leaderboard] == [1, 2]

    def test_unknown_user_has_zero_stats(self, client):
        stats = client.get("/users/nobody/stats").json()
        assert stats["total_guesses"] == 0
        assert stats["accuracy"] == 0.0

    def test_history_newest_first(self, client, ledger):
        ledger.record_incorrect_guess("alice", guess_text="first")
        ledger.record_incorrect_guess("alice", guess_text="second")

        history = client.get("/users/alice/history").json()["history"]
        assert [h["guess_text"] for h in history] == ["second", "first"]

    def test_leaderboard_limit_validated(self, client):
        assert client.get("/leaderboard", params={"limit": 0}).status_code == 422


class TestChallenges:
    def test_prompt_is_not_exposed(self, client, challenge):
        listed = client.get("/challenges").json()["challenges"]
        assert [c["id"] for c in listed] == [str(challenge.id)]
        assert "actual_prompt" not in listed[0]

        single = client.get(f"/challenges/{challenge.id}").json()
        assert single["id"] == str(challenge.id)
        assert "actual_prompt" not in single

    def test_invalid_and_missing_ids(self, client):
        assert client.get("/challenges/not-a-uuid").status_code == 400
        assert client.get(f"/challenges/{uuid.uuid4()}").status_code == 404

    def test_random_without_active_challenges_is_404(self, client, backend):
        backend.create_challenge(ChallengeCreate(actual_prompt="retired", is_active=False))

        response = client.get("/challenges/random")
        assert response.status_code == 404
        assert response.json()["detail"] == "No active challenges found"

    def test_random_serves_an_active_challenge(self, client, challenge, backend):
        backend.create_challenge(ChallengeCreate(actual_prompt="retired", is_active=False))

        response = client.get("/challenges/random")
        assert response.status_code == 200
        body = response.json()
        assert body["id"] == str(challenge.id)
        assert "actual_prompt" not in body
        assert "prompt_embedding" not in body

    def test_create_embeds_prompt_before_storing(
        self, client, admin_headers, backend, embedding_provider
    ):
        response = client.post(
            "/challenges",
            json={"actual_prompt": TARGET_PROMPT, "difficulty": "hard"},
            headers=admin_headers,
        )

        assert response.status_code == 201
        body = response.json()
        assert body["embedding_dimensions"] == 3
        assert body["difficulty"] == "hard"
        assert "prompt_embedding" not in body
        embedding_provider.embed.assert_awaited_once_with(TARGET_PROMPT)

        stored = backend.get_challenge(uuid.UUID(body["id"]))
        assert stored.actual_prompt == TARGET_PROMPT
        assert stored.prompt_embedding == [0.1, 0.2, 0.3]

    def test_create_requires_admin_token(self, client, admin_headers, backend):
        response = client.post("/challenges", json={"actual_prompt": TARGET_PROMPT})
        assert response.status_code == 401
        assert backend.list_challenges() == []

    def test_create_with_embedding_outage_stores_nothing(
        self, client, admin_headers, backend, embedding_provider
    ):
        embedding_provider.embed.side_effect = EmbeddingUnavailableError()

        response = client.post(
            "/challenges", json={"actual_prompt": TARGET_PROMPT}, headers=admin_headers
        )
        assert response.status_code == 503
        assert backend.list_challenges() == []

    def test_create_with_blank_prompt_is_400(self, client, admin_headers, backend):
        response = client.post(
            "/challenges", json={"actual_prompt": "   "}, headers=admin_headers
        )
        assert response.status_code == 400
        assert backend.list_challenges() == []


class TestAdmin:
    def test_requires_token(self, client, admin_headers):
        assert client.get("/admin/emission").status_code == 401
        response = client.get(
            "/admin/emission", headers={"Authorization": "Bearer wrong"}
        )
        assert response.status_code == 401

    def test_disabled_without_configured_token(self, client):
        with patch("promptguess.api.dependencies.config") as mock_config:
            mock_config.api.admin_auth = ""
            response = client.get(
                "/admin/emission", headers={"Authorization": "Bearer anything"}
            )
        assert response.status_code == 401

    def test_emission_state(self, client, admin_headers):
        response = client.get("/admin/emission", headers=admin_headers)

        assert response.status_code == 200
        assert response.json()["current_reward"] == 100
        assert response.json()["authority"] == AUTHORITY

    def test_set_reward(self, client, admin_headers, ledger):
        response = client.post(
            "/admin/reward",
            headers=admin_headers,
            json={"caller_identity": AUTHORITY, "new_reward": 42},
        )

        assert response.status_code == 200
        assert ledger.get_emission_state().current_reward == 42

    def test_set_reward_by_non_authority_is_403(self, client, admin_headers, ledger):
        response = client.post(
            "/admin/reward",
            headers=admin_headers,
            json={"caller_identity": "mallory", "new_reward": 42},
        )

        assert response.status_code == 403
        assert ledger.get_emission_state().current_reward == 100

    def test_set_reward_zero_is_400(self, client, admin_headers):
        response = client.post(
            "/admin/reward",
            headers=admin_headers,
            json={"caller_identity": AUTHORITY, "new_reward": 0},
        )
        assert response.status_code == 400

    def test_transfer_authority(self, client, admin_headers, ledger):
        response = client.post(
            "/admin/authority",
            headers=admin_headers,
            json={"caller_identity": AUTHORITY, "new_authority": "new-wallet"},
        )

        assert response.status_code == 200
        assert ledger.get_emission_state().authority == "new-wallet"
