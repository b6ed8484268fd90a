from abc import ABC, abstractmethod
from typing import List, Optional

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
    GuessRecordFilter,
    LedgerCommit,
    UserAccount,
    UserAccountFilter,
)


class AbstractBackend(ABC):
    # ----------- EMISSION STATE -----------
    @abstractmethod
    def create_emission_state(self, new_state: EmissionStateCreate) -> EmissionState:
        """Persist the singleton emission state.

        Raises:
            AlreadyInitializedError: If an emission state already exists
        """
        pass

    @abstractmethod
    def get_emission_state(self) -> Optional[EmissionState]:
        pass

    @abstractmethod
    def update_emission_state(
        self, expected_version: int, update_data: EmissionStateUpdate
    ) -> EmissionState:
        """Compare-and-swap write of the emission state.

        Raises:
            LedgerNotFoundError: If the emission state does not exist
            ConcurrentModificationError: If the stored version differs
        """
        pass

    # ----------- USER ACCOUNTS -----------
    @abstractmethod
    def get_user_account(self, user_id: str) -> Optional[UserAccount]:
        pass

    @abstractmethod
    def create_user_account(self, user_id: str) -> UserAccount:
        """Create a zeroed account, or return the existing one untouched."""
        pass

    @abstractmethod
    def list_user_accounts(
        self,
        filters: Optional[UserAccountFilter] = None,
        limit: Optional[int] = None,
    ) -> List[UserAccount]:
        """List accounts by tokens earned descending, then creation order."""
        pass

    # ----------- GUESS RECORDS -----------
    @abstractmethod
    def commit_guess(self, commit: LedgerCommit) -> CommitReceipt:
        """Atomically apply a ledger commit.

        Writes the emission update (if any), upserts and increments the user
        account, and appends the guess record. Either every write is applied
        or none is.

        Raises:
            LedgerNotFoundError: If an emission update targets a missing state
            ConcurrentModificationError: If ``commit.expected_version`` is stale
        """
        pass

    @abstractmethod
    def list_guess_records(
        self,
        filters: Optional[GuessRecordFilter] = None,
        limit: Optional[int] = None,
        newest_first: bool = False,
    ) -> List[GuessRecord]:
        pass

    # ----------- CHALLENGES -----------
    @abstractmethod
    def create_challenge(self, new_challenge: ChallengeCreate) -> Challenge:
        pass

    @abstractmethod
    def get_challenge(self, challenge_id: UUID) -> Optional[Challenge]:
        pass

    @abstractmethod
    def list_challenges(
        self,
        filters: Optional[ChallengeFilter] = None,
        limit: Optional[int] = None,
    ) -> List[Challenge]:
        pass
