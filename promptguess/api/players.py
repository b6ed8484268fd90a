import asyncio

from fastapi import APIRouter, Depends, HTTPException, Query
from starlette.responses import JSONResponse

from promptguess.api.dependencies import get_ledger, to_http_exception
from promptguess.lib.exceptions import PromptGuessError
from promptguess.lib.logger import configure_logger
from promptguess.services.ledger.ledger_store import LedgerStore

# Configure logger
logger = configure_logger(__name__)

# Create the router
router = APIRouter(tags=["players"])


@router.get("/users/{user_id}/stats")
async def get_user_stats(
    user_id: str,
    ledger: LedgerStore = Depends(get_ledger),
) -> JSONResponse:
    """Get guess totals, tokens earned and accuracy for a user.

    Unknown users get zeroed stats rather than a 404.
    """
    try:
        stats = await asyncio.to_thread(ledger.get_user_stats, user_id)
        return JSONResponse(content=stats.model_dump(mode="json"))
    except PromptGuessError as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(
            "Failed to fetch user stats",
            extra={"user_id": user_id, "error": str(e)},
            exc_info=e,
        )
        raise HTTPException(
            status_code=500, detail=f"Failed to fetch user stats: {str(e)}"
        )


@router.get("/users/{user_id}/history")
async def get_guess_history(
    user_id: str,
    limit: int = Query(50, ge=1, le=500),
    ledger: LedgerStore = Depends(get_ledger),
) -> JSONResponse:
    """Get a user's most recent guesses, newest first."""
    try:
        records = await asyncio.to_thread(ledger.guess_history, user_id, limit=limit)
        return JSONResponse(
            content={"history": [r.model_dump(mode="json") for r in records]}
        )
    except PromptGuessError as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(
            "Failed to fetch guess history",
            extra={"user_id": user_id, "error": str(e)},
            exc_info=e,
        )
        raise HTTPException(
            status_code=500, detail=f"Failed to fetch guess history: {str(e)}"
        )


@router.get("/leaderboard")
async def get_leaderboard(
    limit: int = Query(10, ge=1, le=100),
    ledger: LedgerStore = Depends(get_ledger),
) -> JSONResponse:
    """Get users ordered by tokens earned, earliest account first on ties."""
    try:
        entries = await asyncio.to_thread(ledger.leaderboard, limit)
        return JSONResponse(
            content={"leaderboard": [e.model_dump(mode="json") for e in entries]}
        )
    except PromptGuessError as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error("Failed to fetch leaderboard", extra={"error": str(e)}, exc_info=e)
        raise HTTPException(
            status_code=500, detail=f"Failed to fetch leaderboard: {str(e)}"
        )
