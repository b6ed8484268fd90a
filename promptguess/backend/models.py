from datetime import datetime
from enum import Enum
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class CustomBaseModel(BaseModel):
    model_config = ConfigDict(
        json_encoders={UUID: str, datetime: lambda v: v.isoformat()},
        arbitrary_types_allowed=True,
    )


class ScoringAlgorithm(str, Enum):
    EXACT = "exact"
    CONTAINMENT = "containment"
    EDIT_DISTANCE = "edit_distance"
    EMBEDDING_COSINE = "embedding_cosine"

    def __str__(self):
        return self.value

    @property
    def is_semantic(self) -> bool:
        return self is ScoringAlgorithm.EMBEDDING_COSINE


class Difficulty(str, Enum):
    EASY = "easy"
    MEDIUM = "medium"
    HARD = "hard"

    def __str__(self):
        return self.value


# ---------------------------------------------------------------
# EMISSION STATE
# ---------------------------------------------------------------
class EmissionStateBase(CustomBaseModel):
    """Global token emission record for one game instance."""

    total_minted: int = 0
    current_reward: int
    halving_threshold: int
    authority: str
    halvings: int = 0


class EmissionStateCreate(EmissionStateBase):
    pass


class EmissionState(EmissionStateBase):
    version: int = 0
    created_at: datetime
    updated_at: datetime


class EmissionStateUpdate(CustomBaseModel):
    """Fields written by a ledger commit. Unset fields are left untouched."""

    total_minted: Optional[int] = None
    current_reward: Optional[int] = None
    authority: Optional[str] = None
    halvings: Optional[int] = None


# ---------------------------------------------------------------
# USER ACCOUNTS
# ---------------------------------------------------------------
class UserAccountBase(CustomBaseModel):
    total_guesses: int = 0
    correct_guesses: int = 0
    tokens_earned: int = 0


class UserAccount(UserAccountBase):
    user_id: str
    created_at: datetime
    updated_at: datetime


class UserAccountFilter(CustomBaseModel):
    min_tokens_earned: Optional[int] = None


# ---------------------------------------------------------------
# CHALLENGES
# ---------------------------------------------------------------
class ChallengeBase(CustomBaseModel):
    actual_prompt: str
    prompt_embedding: Optional[List[float]] = None
    difficulty: Difficulty = Difficulty.MEDIUM
    image_url: Optional[str] = None
    is_active: bool = True


class ChallengeCreate(ChallengeBase):
    pass


class Challenge(ChallengeBase):
    id: UUID
    created_at: datetime


class ChallengeFilter(CustomBaseModel):
    is_active: Optional[bool] = None
    difficulty: Optional[Difficulty] = None


class PublicChallenge(CustomBaseModel):
    """Challenge as shown to players, without the prompt or its embedding."""

    id: UUID
    difficulty: Difficulty
    image_url: Optional[str] = None
    created_at: datetime

    @classmethod
    def from_challenge(cls, challenge: Challenge) -> "PublicChallenge":
        return cls(
            id=challenge.id,
            difficulty=challenge.difficulty,
            image_url=challenge.image_url,
            created_at=challenge.created_at,
        )


# ---------------------------------------------------------------
# GUESS RECORDS
# ---------------------------------------------------------------
class GuessRecordBase(CustomBaseModel):
    user_id: str
    challenge_id: Optional[UUID] = None
    guess_text: str = ""
    algorithm: Optional[ScoringAlgorithm] = None
    score: float = 0.0
    is_correct: bool = False
    tokens_earned: int = 0


class GuessRecordCreate(GuessRecordBase):
    pass


class GuessRecord(GuessRecordBase):
    id: UUID
    created_at: datetime


class GuessRecordFilter(CustomBaseModel):
    user_id: Optional[str] = None
    challenge_id: Optional[UUID] = None
    is_correct: Optional[bool] = None


# ---------------------------------------------------------------
# LEDGER COMMITS
# ---------------------------------------------------------------
class LedgerCommit(CustomBaseModel):
    """One all-or-nothing ledger mutation.

    When ``emission_update`` is set the backend must only apply the commit if
    the stored emission state still has ``expected_version``.
    """

    user_id: str
    expected_version: Optional[int] = None
    emission_update: Optional[EmissionStateUpdate] = None
    record: GuessRecordCreate


class CommitReceipt(CustomBaseModel):
    account: UserAccount
    record: GuessRecord
    emission: Optional[EmissionState] = None


# ---------------------------------------------------------------
# RESULTS
# ---------------------------------------------------------------
class RewardOutcome(CustomBaseModel):
    tokens_earned: int
    new_balance: int
    guess_id: UUID
    emission: Optional[EmissionState] = None


class GuessResult(CustomBaseModel):
    is_correct: bool
    score: float
    tokens_earned: int
    new_balance: int
    algorithm: ScoringAlgorithm
    fallback_used: bool = False
    guess_id: Optional[UUID] = None


class UserStats(CustomBaseModel):
    user_id: str
    total_guesses: int = 0
    correct_guesses: int = 0
    tokens_earned: int = 0
    accuracy: float = 0.0


class LeaderboardEntry(CustomBaseModel):
    rank: int = Field(..., ge=1)
    user_id: str
    tokens_earned: int
    accuracy: float
