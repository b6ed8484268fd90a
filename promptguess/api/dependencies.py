from typing import Optional

from fastapi import Header, HTTPException

from promptguess.backend.factory import backend
from promptguess.config import config
from promptguess.lib.exceptions import (
    AlreadyInitializedError,
    ChallengeNotFoundError,
    ConcurrentModificationError,
    EmbeddingUnavailableError,
    InvalidInputError,
    PromptGuessError,
    UnauthorizedError,
)
from promptguess.lib.logger import configure_logger
from promptguess.services.ai.embeddings import EmbeddingProvider
from promptguess.services.core.challenge_service import ChallengeService
from promptguess.services.core.guess_service import GuessEvaluationService
from promptguess.services.ledger.ledger_store import LedgerStore

# Configure logger
logger = configure_logger(__name__)

ERROR_STATUS_CODES = {
    InvalidInputError: 400,
    UnauthorizedError: 403,
    ChallengeNotFoundError: 404,
    AlreadyInitializedError: 409,
    ConcurrentModificationError: 409,
    EmbeddingUnavailableError: 503,
}

_ledger: Optional[LedgerStore] = None
_guess_service: Optional[GuessEvaluationService] = None
_challenge_service: Optional[ChallengeService] = None
_embedding_provider: Optional[EmbeddingProvider] = None


def get_ledger() -> LedgerStore:
    """Return the process-wide ledger store bound to the configured backend."""
    global _ledger
    if _ledger is None:
        _ledger = LedgerStore(backend)
    return _ledger


def get_embedding_provider() -> EmbeddingProvider:
    global _embedding_provider
    if _embedding_provider is None:
        _embedding_provider = EmbeddingProvider()
    return _embedding_provider


def get_guess_service() -> GuessEvaluationService:
    global _guess_service
    if _guess_service is None:
        _guess_service = GuessEvaluationService(
            ledger=get_ledger(),
            embedding_provider=get_embedding_provider(),
        )
    return _guess_service


def get_challenge_service() -> ChallengeService:
    global _challenge_service
    if _challenge_service is None:
        _challenge_service = ChallengeService(
            challenge_store=backend,
            embedding_provider=get_embedding_provider(),
        )
    return _challenge_service


def to_http_exception(error: PromptGuessError) -> HTTPException:
    """Map a domain error onto an HTTP error response."""
    status_code = 500
    for error_type, code in ERROR_STATUS_CODES.items():
        if isinstance(error, error_type):
            status_code = code
            break
    return HTTPException(status_code=status_code, detail=error.message)


async def verify_admin_auth(authorization: Optional[str] = Header(None)) -> None:
    """
    Verify admin authentication using Bearer token.

    Args:
        authorization: The Authorization header value

    Raises:
        HTTPException: If authentication fails
    """
    if not config.api.admin_auth:
        logger.error("Admin authentication token is not configured")
        raise HTTPException(status_code=401, detail="Admin access is disabled")

    if not authorization:
        logger.error("Missing Authorization header for admin request")
        raise HTTPException(status_code=401, detail="Missing Authorization header")

    if not authorization.startswith("Bearer "):
        logger.error("Invalid Authorization header format for admin request")
        raise HTTPException(
            status_code=401, detail="Invalid Authorization format. Use 'Bearer <token>'"
        )

    token = authorization.split(" ")[1]
    expected_token = (
        config.api.admin_auth.split(" ")[1]
        if config.api.admin_auth.startswith("Bearer ")
        else config.api.admin_auth
    )

    if token != expected_token:
        logger.error("Invalid admin authentication token")
        raise HTTPException(status_code=401, detail="Invalid authentication token")
