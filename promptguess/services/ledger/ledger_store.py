import random
import time
from functools import wraps
from typing import Any, Callable, List, Optional

from promptguess.backend.abstract import AbstractBackend
from promptguess.backend.models import (
    UUID,
    EmissionState,
    EmissionStateCreate,
    EmissionStateUpdate,
    GuessRecord,
    GuessRecordCreate,
    GuessRecordFilter,
    LeaderboardEntry,
    LedgerCommit,
    RewardOutcome,
    ScoringAlgorithm,
    UserAccount,
    UserStats,
)
from promptguess.config import config
from promptguess.lib.exceptions import (
    ConcurrentModificationError,
    InvalidInputError,
    LedgerNotFoundError,
)
from promptguess.lib.logger import configure_logger
from promptguess.services.ledger.authority import AuthorityGuard
from promptguess.services.ledger.reward_schedule import EmissionTriple, RewardSchedule

logger = configure_logger(__name__)


def _retry_on_conflict(func: Callable[..., Any]) -> Callable[..., Any]:
    """Re-run a read-modify-write when the backend reports a conflicting write."""

    @wraps(func)
    def wrapper(self, *args, **kwargs):
        for attempt in range(self.max_retries + 1):
            try:
                return func(self, *args, **kwargs)
            except ConcurrentModificationError as e:
                if attempt == self.max_retries:
                    logger.error(
                        "Ledger commit failed after all retry attempts",
                        extra={
                            "function": func.__name__,
                            "max_retries": self.max_retries,
                            "error": str(e),
                        },
                    )
                    raise
                retry_delay = self.retry_delay * (2**attempt) * random.uniform(0.5, 1.5)
                logger.warning(
                    "Ledger commit conflicted, retrying",
                    extra={
                        "function": func.__name__,
                        "attempt": attempt + 1,
                        "max_retries": self.max_retries,
                        "retry_delay_seconds": round(retry_delay, 4),
                    },
                )
                if retry_delay > 0:
                    time.sleep(retry_delay)

    return wrapper


class LedgerStore:
    """Atomic operations on the emission state and per-user accounts.

    The store owns no state itself; everything lives in the injected backend.
    Emission writes are compare-and-swap on the state version, so concurrent
    rewards are linearized and a conflicting commit is re-read and retried.
    """

    def __init__(
        self,
        backend: AbstractBackend,
        schedule: Optional[RewardSchedule] = None,
        guard: Optional[AuthorityGuard] = None,
        max_retries: Optional[int] = None,
        retry_delay: float = 0.01,
    ):
        self.backend = backend
        self.schedule = schedule or RewardSchedule()
        self.guard = guard or AuthorityGuard()
        self.max_retries = (
            config.ledger.max_commit_retries if max_retries is None else max_retries
        )
        self.retry_delay = retry_delay

    # ---------------------------------------------------------------
    # EMISSION STATE
    # ---------------------------------------------------------------
    def initialize(
        self, authority: str, initial_reward: int, halving_threshold: int
    ) -> EmissionState:
        """Create the emission state. Fails with AlreadyInitializedError on a second call."""
        if not authority:
            raise InvalidInputError("Authority identity is required")
        self.schedule.validate(
            EmissionTriple(
                total_minted=0,
                current_reward=initial_reward,
                halving_threshold=halving_threshold,
            )
        )
        state = self.backend.create_emission_state(
            EmissionStateCreate(
                total_minted=0,
                current_reward=initial_reward,
                halving_threshold=halving_threshold,
                authority=authority,
            )
        )
        logger.info(
            "Emission state initialized",
            extra={
                "authority": authority,
                "initial_reward": initial_reward,
                "halving_threshold": halving_threshold,
                "event_type": "ledger_initialized",
            },
        )
        return state

    def get_emission_state(self) -> EmissionState:
        state = self.backend.get_emission_state()
        if state is None:
            raise LedgerNotFoundError()
        return state

    @_retry_on_conflict
    def set_reward(self, caller_identity: str, new_reward: int) -> EmissionState:
        """Overwrite the current reward directly, bypassing the halving schedule."""
        state = self.get_emission_state()
        self.guard.authorize(caller_identity, state, operation="set_reward")
        if new_reward < 1:
            raise InvalidInputError(
                "Reward must be positive", {"new_reward": new_reward}
            )
        updated = self.backend.update_emission_state(
            state.version, EmissionStateUpdate(current_reward=new_reward)
        )
        logger.info(
            "Reward updated by authority",
            extra={
                "previous_reward": state.current_reward,
                "new_reward": new_reward,
                "event_type": "reward_set",
            },
        )
        return updated

    @_retry_on_conflict
    def transfer_authority(
        self, caller_identity: str, new_authority: str
    ) -> EmissionState:
        state = self.get_emission_state()
        self.guard.authorize(caller_identity, state, operation="transfer_authority")
        if not new_authority:
            raise InvalidInputError("New authority identity is required")
        updated = self.backend.update_emission_state(
            state.version, EmissionStateUpdate(authority=new_authority)
        )
        logger.info(
            "Authority transferred",
            extra={"new_authority": new_authority, "event_type": "authority_transfer"},
        )
        return updated

    # ---------------------------------------------------------------
    # USER ACCOUNTS
    # ---------------------------------------------------------------
    def get_or_create_user(self, user_id: str) -> UserAccount:
        _require_user_id(user_id)
        return self.backend.create_user_account(user_id)

    @_retry_on_conflict
    def apply_reward(
        self,
        user_id: str,
        algorithm: ScoringAlgorithm,
        score: float,
        challenge_id: Optional[UUID] = None,
        guess_text: str = "",
    ) -> RewardOutcome:
        """Credit a correct guess with the current reward and advance the schedule.

        The emission write, the account increments and the guess record are
        committed together or not at all.
        """
        _require_user_id(user_id)
        state = self.get_emission_state()
        transition = self.schedule.apply(
            EmissionTriple(
                total_minted=state.total_minted,
                current_reward=state.current_reward,
                halving_threshold=state.halving_threshold,
            )
        )

        receipt = self.backend.commit_guess(
            LedgerCommit(
                user_id=user_id,
                expected_version=state.version,
                emission_update=EmissionStateUpdate(
                    total_minted=transition.total_minted,
                    current_reward=transition.current_reward,
                    halvings=state.halvings + (1 if transition.halved else 0),
                ),
                record=GuessRecordCreate(
                    user_id=user_id,
                    challenge_id=challenge_id,
                    guess_text=guess_text,
                    algorithm=algorithm,
                    score=score,
                    is_correct=True,
                    tokens_earned=transition.reward,
                ),
            )
        )

        if transition.halved:
            logger.info(
                "Reward halved",
                extra={
                    "previous_reward": transition.reward,
                    "new_reward": transition.current_reward,
                    "total_minted": transition.total_minted,
                    "event_type": "reward_halving",
                },
            )
        logger.debug(
            "Reward applied",
            extra={
                "user_id": user_id,
                "tokens_earned": transition.reward,
                "new_balance": receipt.account.tokens_earned,
            },
        )

        return RewardOutcome(
            tokens_earned=transition.reward,
            new_balance=receipt.account.tokens_earned,
            guess_id=receipt.record.id,
            emission=receipt.emission,
        )

    def record_incorrect_guess(
        self,
        user_id: str,
        algorithm: Optional[ScoringAlgorithm] = None,
        score: float = 0.0,
        challenge_id: Optional[UUID] = None,
        guess_text: str = "",
    ) -> RewardOutcome:
        """Count a guess without a reward. The emission state is not touched."""
        _require_user_id(user_id)
        receipt = self.backend.commit_guess(
            LedgerCommit(
                user_id=user_id,
                record=GuessRecordCreate(
                    user_id=user_id,
                    challenge_id=challenge_id,
                    guess_text=guess_text,
                    algorithm=algorithm,
                    score=score,
                    is_correct=False,
                    tokens_earned=0,
                ),
            )
        )
        return RewardOutcome(
            tokens_earned=0,
            new_balance=receipt.account.tokens_earned,
            guess_id=receipt.record.id,
        )

    # ---------------------------------------------------------------
    # READ MODELS
    # ---------------------------------------------------------------
    def get_user_stats(self, user_id: str) -> UserStats:
        _require_user_id(user_id)
        account = self.backend.get_user_account(user_id)
        if account is None:
            return UserStats(user_id=user_id)
        return UserStats(
            user_id=user_id,
            total_guesses=account.total_guesses,
            correct_guesses=account.correct_guesses,
            tokens_earned=account.tokens_earned,
            accuracy=accuracy(account),
        )

    def leaderboard(self, limit: int = 10) -> List[LeaderboardEntry]:
        if limit < 1:
            raise InvalidInputError("Limit must be positive", {"limit": limit})
        accounts = self.backend.list_user_accounts(limit=limit)
        return [
            LeaderboardEntry(
                rank=rank,
                user_id=account.user_id,
                tokens_earned=account.tokens_earned,
                accuracy=accuracy(account),
            )
            for rank, account in enumerate(accounts, start=1)
        ]

    def guess_history(self, user_id: str, limit: int = 50) -> List[GuessRecord]:
        _require_user_id(user_id)
        if limit < 1:
            raise InvalidInputError("Limit must be positive", {"limit": limit})
        return self.backend.list_guess_records(
            GuessRecordFilter(user_id=user_id), limit=limit, newest_first=True
        )

    def rebuild_user_account(self, user_id: str) -> Optional[UserAccount]:
        """Recompute a user's aggregates by replaying their guess records.

        Returns None when the user has no account and no records.
        """
        _require_user_id(user_id)
        records = self.backend.list_guess_records(GuessRecordFilter(user_id=user_id))
        existing = self.backend.get_user_account(user_id)
        if existing is None and not records:
            return None

        created_at = existing.created_at if existing else records[0].created_at
        updated_at = records[-1].created_at if records else created_at
        return UserAccount(
            user_id=user_id,
            total_guesses=len(records),
            correct_guesses=sum(1 for r in records if r.is_correct),
            tokens_earned=sum(r.tokens_earned for r in records),
            created_at=created_at,
            updated_at=updated_at,
        )


def accuracy(account: UserAccount) -> float:
    if account.total_guesses == 0:
        return 0.0
    return account.correct_guesses / account.total_guesses


def _require_user_id(user_id: str) -> None:
    if not user_id or not str(user_id).strip():
        raise InvalidInputError("User id is required")
