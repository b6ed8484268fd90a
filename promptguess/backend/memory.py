import threading
import uuid
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Dict, Iterator, List, Optional

from promptguess.backend.abstract import AbstractBackend
from promptguess.backend.models import (
    UUID,
    Challenge,
    ChallengeCreate,
    ChallengeFilter,
    CommitReceipt,
    EmissionState,
    EmissionStateCreate,
    EmissionStateUpdate,
    GuessRecord,
    GuessRecordCreate,
    GuessRecordFilter,
    LedgerCommit,
    UserAccount,
    UserAccountFilter,
)
from promptguess.lib.exceptions import (
    AlreadyInitializedError,
    ConcurrentModificationError,
    LedgerNotFoundError,
)
from promptguess.lib.logger import configure_logger

logger = configure_logger(__name__)


def _now() -> datetime:
    return datetime.now(timezone.utc)


class MemoryBackend(AbstractBackend):
    """In-process ledger backend.

    All writes are serialized by a single lock, so this backend behaves as a
    single-writer store. Each commit runs inside a snapshot that is restored
    if any step raises.
    """

    def __init__(self):
        self._lock = threading.RLock()
        self._emission_state: Optional[EmissionState] = None
        # Insertion order doubles as account creation order
        self._accounts: Dict[str, UserAccount] = {}
        self._records: List[GuessRecord] = []
        self._challenges: Dict[UUID, Challenge] = {}

    @contextmanager
    def _transaction(self) -> Iterator[None]:
        emission_snapshot = self._emission_state
        accounts_snapshot = dict(self._accounts)
        records_length = len(self._records)
        try:
            yield
        except Exception:
            self._emission_state = emission_snapshot
            self._accounts = accounts_snapshot
            del self._records[records_length:]
            logger.warning(
                "Ledger commit rolled back", extra={"event_type": "ledger_rollback"}
            )
            raise

    # ---------------------------------------------------------------
    # EMISSION STATE
    # ---------------------------------------------------------------
    def create_emission_state(self, new_state: EmissionStateCreate) -> EmissionState:
        with self._lock:
            if self._emission_state is not None:
                raise AlreadyInitializedError()
            now = _now()
            self._emission_state = EmissionState(
                **new_state.model_dump(), version=0, created_at=now, updated_at=now
            )
            return self._emission_state

    def get_emission_state(self) -> Optional[EmissionState]:
        with self._lock:
            return self._emission_state

    def update_emission_state(
        self, expected_version: int, update_data: EmissionStateUpdate
    ) -> EmissionState:
        with self._lock:
            with self._transaction():
                return self._write_emission(expected_version, update_data)

    def _write_emission(
        self, expected_version: Optional[int], update_data: EmissionStateUpdate
    ) -> EmissionState:
        current = self._emission_state
        if current is None:
            raise LedgerNotFoundError()
        if expected_version is None or current.version != expected_version:
            raise ConcurrentModificationError(expected_version, current.version)
        payload = update_data.model_dump(exclude_none=True)
        self._emission_state = current.model_copy(
            update={**payload, "version": current.version + 1, "updated_at": _now()}
        )
        return self._emission_state

    # ---------------------------------------------------------------
    # USER ACCOUNTS
    # ---------------------------------------------------------------
    def get_user_account(self, user_id: str) -> Optional[UserAccount]:
        with self._lock:
            return self._accounts.get(user_id)

    def create_user_account(self, user_id: str) -> UserAccount:
        with self._lock:
            existing = self._accounts.get(user_id)
            if existing is not None:
                return existing
            now = _now()
            account = UserAccount(user_id=user_id, created_at=now, updated_at=now)
            self._accounts[user_id] = account
            logger.debug("User account created", extra={"user_id": user_id})
            return account

    def list_user_accounts(
        self,
        filters: Optional[UserAccountFilter] = None,
        limit: Optional[int] = None,
    ) -> List[UserAccount]:
        with self._lock:
            accounts = list(self._accounts.values())
        if filters and filters.min_tokens_earned is not None:
            accounts = [
                a for a in accounts if a.tokens_earned >= filters.min_tokens_earned
            ]
        # Stable sort keeps creation order for ties
        accounts.sort(key=lambda a: a.tokens_earned, reverse=True)
        if limit is not None:
            accounts = accounts[:limit]
        return accounts

    def _apply_account_delta(
        self, user_id: str, record: GuessRecordCreate
    ) -> UserAccount:
        account = self.create_user_account(user_id)
        updated = account.model_copy(
            update={
                "total_guesses": account.total_guesses + 1,
                "correct_guesses": account.correct_guesses
                + (1 if record.is_correct else 0),
                "tokens_earned": account.tokens_earned + record.tokens_earned,
                "updated_at": _now(),
            }
        )
        self._accounts[user_id] = updated
        return updated

    # ---------------------------------------------------------------
    # GUESS RECORDS
    # ---------------------------------------------------------------
    def commit_guess(self, commit: LedgerCommit) -> CommitReceipt:
        with self._lock:
            with self._transaction():
                emission = None
                if commit.emission_update is not None:
                    emission = self._write_emission(
                        commit.expected_version, commit.emission_update
                    )
                account = self._apply_account_delta(commit.user_id, commit.record)
                record = self._append_record(commit.record)
        return CommitReceipt(account=account, record=record, emission=emission)

    def _append_record(self, new_record: GuessRecordCreate) -> GuessRecord:
        record = GuessRecord(
            **new_record.model_dump(), id=uuid.uuid4(), created_at=_now()
        )
        self._records.append(record)
        return record

    def list_guess_records(
        self,
        filters: Optional[GuessRecordFilter] = None,
        limit: Optional[int] = None,
        newest_first: bool = False,
    ) -> List[GuessRecord]:
        with self._lock:
            records = list(self._records)
        if filters:
            if filters.user_id is not None:
                records = [r for r in records if r.user_id == filters.user_id]
            if filters.challenge_id is not None:
                records = [r for r in records if r.challenge_id == filters.challenge_id]
            if filters.is_correct is not None:
                records = [r for r in records if r.is_correct == filters.is_correct]
        if newest_first:
            records.reverse()
        if limit is not None:
            records = records[:limit]
        return records

    # ---------------------------------------------------------------
    # CHALLENGES
    # ---------------------------------------------------------------
    def create_challenge(self, new_challenge: ChallengeCreate) -> Challenge:
        challenge = Challenge(
            **new_challenge.model_dump(), id=uuid.uuid4(), created_at=_now()
        )
        with self._lock:
            self._challenges[challenge.id] = challenge
        return challenge

    def get_challenge(self, challenge_id: UUID) -> Optional[Challenge]:
        with self._lock:
            return self._challenges.get(challenge_id)

    def list_challenges(
        self,
        filters: Optional[ChallengeFilter] = None,
        limit: Optional[int] = None,
    ) -> List[Challenge]:
        with self._lock:
            challenges = list(self._challenges.values())
        if filters:
            if filters.is_active is not None:
                challenges = [c for c in challenges if c.is_active == filters.is_active]
            if filters.difficulty is not None:
                challenges = [
                    c for c in challenges if c.difficulty == filters.difficulty
                ]
        challenges.sort(key=lambda c: c.created_at, reverse=True)
        if limit is not None:
            challenges = challenges[:limit]
        return challenges
