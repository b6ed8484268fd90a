"""Shared fixtures: every test gets its own in-memory ledger."""

import pytest

from promptguess.backend.memory import MemoryBackend
from promptguess.backend.models import ChallengeCreate
from promptguess.services.ledger.ledger_store import LedgerStore

AUTHORITY = "authority-wallet"
TARGET_PROMPT = "A futuristic city at sunset with flying cars"


@pytest.fixture
def backend() -> MemoryBackend:
    return MemoryBackend()


@pytest.fixture
def ledger(backend: MemoryBackend) -> LedgerStore:
    store = LedgerStore(backend, max_retries=3, retry_delay=0)
    store.initialize(AUTHORITY, initial_reward=100, halving_threshold=100_000)
    return store


@pytest.fixture
def challenge(backend: MemoryBackend):
    return backend.create_challenge(ChallengeCreate(actual_prompt=TARGET_PROMPT))
