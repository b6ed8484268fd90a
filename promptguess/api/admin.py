import asyncio

from fastapi import APIRouter, Depends, HTTPException
from starlette.responses import JSONResponse

from promptguess.api.dependencies import (
    get_ledger,
    to_http_exception,
    verify_admin_auth,
)
from promptguess.api.models import SetRewardRequest, TransferAuthorityRequest
from promptguess.lib.exceptions import PromptGuessError
from promptguess.lib.logger import configure_logger
from promptguess.services.ledger.ledger_store import LedgerStore

# Configure logger
logger = configure_logger(__name__)

# Create the router
router = APIRouter(
    prefix="/admin", tags=["admin"], dependencies=[Depends(verify_admin_auth)]
)


@router.get("/emission")
async def get_emission_state(
    ledger: LedgerStore = Depends(get_ledger),
) -> JSONResponse:
    """Get the current emission state."""
    try:
        state = await asyncio.to_thread(ledger.get_emission_state)
        return JSONResponse(content=state.model_dump(mode="json"))
    except PromptGuessError as e:
        raise to_http_exception(e)


@router.post("/reward")
async def set_reward(
    payload: SetRewardRequest,
    ledger: LedgerStore = Depends(get_ledger),
) -> JSONResponse:
    """Overwrite the per-guess reward. Only the registered authority may call this.

    Raises:
        HTTPException: 403 if the caller is not the authority, 400 for a
        non-positive reward.
    """
    try:
        state = await asyncio.to_thread(
            ledger.set_reward, payload.caller_identity, payload.new_reward
        )
        return JSONResponse(content=state.model_dump(mode="json"))
    except PromptGuessError as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error("Failed to set reward", extra={"error": str(e)}, exc_info=e)
        raise HTTPException(status_code=500, detail=f"Failed to set reward: {str(e)}")


@router.post("/authority")
async def transfer_authority(
    payload: TransferAuthorityRequest,
    ledger: LedgerStore = Depends(get_ledger),
) -> JSONResponse:
    """Hand rate-policy authority to another identity."""
    try:
        state = await asyncio.to_thread(
            ledger.transfer_authority, payload.caller_identity, payload.new_authority
        )
        return JSONResponse(content=state.model_dump(mode="json"))
    except PromptGuessError as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(
            "Failed to transfer authority", extra={"error": str(e)}, exc_info=e
        )
        raise HTTPException(
            status_code=500, detail=f"Failed to transfer authority: {str(e)}"
        )
