from fastapi import APIRouter, Depends, HTTPException, Request
from starlette.responses import JSONResponse

from promptguess.api.dependencies import get_guess_service, to_http_exception
from promptguess.api.models import SubmitGuessRequest
from promptguess.lib.exceptions import PromptGuessError
from promptguess.lib.logger import configure_logger
from promptguess.services.core.guess_service import GuessEvaluationService

# Configure logger
logger = configure_logger(__name__)

# Create the router
router = APIRouter(prefix="/guesses", tags=["guesses"])


@router.post("")
async def submit_guess(
    request: Request,
    payload: SubmitGuessRequest,
    service: GuessEvaluationService = Depends(get_guess_service),
) -> JSONResponse:
    """Evaluate a guess and settle the reward ledger.

    Args:
        request: The FastAPI request object.
        payload: The guess submission.

    Returns:
        JSONResponse: ``is_correct``, ``score``, ``tokens_earned`` and
        ``new_balance`` for the submission.

    Raises:
        HTTPException: 400 for invalid input, 404 for an unknown challenge,
        503 when the embedding provider is unavailable.
    """
    try:
        result = await service.evaluate_by_id(
            user_id=payload.user_id,
            challenge_id=payload.challenge_id,
            guess_text=payload.guess_text,
            algorithm=payload.algorithm,
        )
        return JSONResponse(content=result.model_dump(mode="json"))

    except PromptGuessError as e:
        logger.warning(
            "Guess submission rejected",
            extra={
                "user_id": payload.user_id,
                "challenge_id": payload.challenge_id,
                "error": str(e),
            },
        )
        raise to_http_exception(e)
    except HTTPException as he:
        raise he
    except Exception as e:
        logger.error(
            "Guess submission failed",
            extra={"user_id": payload.user_id, "error": str(e)},
            exc_info=e,
        )
        raise HTTPException(
            status_code=500,
            detail=f"Failed to submit guess: {str(e)}",
        )
