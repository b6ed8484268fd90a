import asyncio
import uuid

from fastapi import APIRouter, Depends, HTTPException, Query
from starlette.responses import JSONResponse

from promptguess.api.dependencies import (
    get_challenge_service,
    get_ledger,
    to_http_exception,
    verify_admin_auth,
)
from promptguess.api.models import CreateChallengeRequest
from promptguess.backend.models import ChallengeCreate, ChallengeFilter, PublicChallenge
from promptguess.lib.exceptions import PromptGuessError
from promptguess.lib.logger import configure_logger
from promptguess.services.core.challenge_service import ChallengeService
from promptguess.services.ledger.ledger_store import LedgerStore

# Configure logger
logger = configure_logger(__name__)

# Create the router
router = APIRouter(prefix="/challenges", tags=["challenges"])


@router.get("")
async def list_active_challenges(
    limit: int = Query(10, ge=1, le=100),
    ledger: LedgerStore = Depends(get_ledger),
) -> JSONResponse:
    """List active challenges, newest first. Prompts are never returned."""
    challenges = await asyncio.to_thread(
        ledger.backend.list_challenges, ChallengeFilter(is_active=True), limit=limit
    )
    return JSONResponse(
        content={
            "challenges": [
                PublicChallenge.from_challenge(c).model_dump(mode="json")
                for c in challenges
            ]
        }
    )


@router.post("", dependencies=[Depends(verify_admin_auth)])
async def create_challenge(
    payload: CreateChallengeRequest,
    service: ChallengeService = Depends(get_challenge_service),
) -> JSONResponse:
    """Create a challenge, embedding its prompt before it is stored.

    Raises:
        HTTPException: 400 for an empty prompt, 503 when the embedding
        provider is unavailable.
    """
    try:
        challenge = await service.create_challenge(
            ChallengeCreate(
                actual_prompt=payload.actual_prompt,
                difficulty=payload.difficulty,
                image_url=payload.image_url,
                is_active=payload.is_active,
            )
        )
        content = challenge.model_dump(mode="json", exclude={"prompt_embedding"})
        content["embedding_dimensions"] = len(challenge.prompt_embedding or [])
        return JSONResponse(status_code=201, content=content)
    except PromptGuessError as e:
        logger.warning("Challenge creation rejected", extra={"error": str(e)})
        raise to_http_exception(e)
    except Exception as e:
        logger.error("Failed to create challenge", extra={"error": str(e)}, exc_info=e)
        raise HTTPException(
            status_code=500, detail=f"Failed to create challenge: {str(e)}"
        )


@router.get("/random")
async def get_random_challenge(
    service: ChallengeService = Depends(get_challenge_service),
) -> JSONResponse:
    """Serve a random active challenge without its prompt."""
    challenge = await service.random_active_challenge()
    if challenge is None:
        raise HTTPException(status_code=404, detail="No active challenges found")
    return JSONResponse(
        content=PublicChallenge.from_challenge(challenge).model_dump(mode="json")
    )


@router.get("/{challenge_id}")
async def get_challenge(
    challenge_id: str,
    ledger: LedgerStore = Depends(get_ledger),
) -> JSONResponse:
    """Get a single challenge without its prompt."""
    try:
        challenge_uuid = uuid.UUID(challenge_id)
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid challenge ID")

    challenge = await asyncio.to_thread(ledger.backend.get_challenge, challenge_uuid)
    if not challenge:
        logger.warning("Challenge not found", extra={"challenge_id": challenge_id})
        raise HTTPException(
            status_code=404, detail=f"No challenge found with ID: {challenge_id}"
        )
    return JSONResponse(
        content=PublicChallenge.from_challenge(challenge).model_dump(mode="json")
    )
