from typing import Optional

from pydantic import BaseModel, Field

from promptguess.backend.models import Difficulty, ScoringAlgorithm
from promptguess.config import config


class SubmitGuessRequest(BaseModel):
    """Request body for submitting a guess against a challenge."""

    user_id: str = Field(..., description="Stable wallet or user identifier")
    challenge_id: str = Field(..., description="ID of the challenge being guessed")
    guess_text: str = Field(
        ...,
        max_length=config.scoring.max_guess_length,
        description="The player's guess of the prompt",
    )
    algorithm: Optional[ScoringAlgorithm] = Field(
        None,
        description="Scoring algorithm; defaults to the configured algorithm",
    )


class SetRewardRequest(BaseModel):
    """Request body for overwriting the current per-guess reward."""

    caller_identity: str = Field(..., description="Identity of the caller")
    new_reward: int = Field(..., description="New reward per correct guess")


class TransferAuthorityRequest(BaseModel):
    """Request body for handing rate-policy authority to another identity."""

    caller_identity: str = Field(..., description="Identity of the current authority")
    new_authority: str = Field(..., description="Identity of the new authority")


class CreateChallengeRequest(BaseModel):
    """Request body for creating a challenge from a hidden prompt."""

    actual_prompt: str = Field(..., min_length=1, description="The hidden prompt")
    difficulty: Difficulty = Field(Difficulty.MEDIUM, description="Challenge difficulty")
    image_url: Optional[str] = Field(None, description="URL of the generated image")
    is_active: bool = Field(True, description="Whether players can be served it")
