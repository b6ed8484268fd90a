from fastapi import FastAPI

from promptguess.api import admin, challenges, guesses, players
from promptguess.api.dependencies import get_ledger
from promptguess.config import config
from promptguess.lib.exceptions import AlreadyInitializedError
from promptguess.lib.logger import configure_logger, setup_uvicorn_logging
from promptguess.middleware.logging import LoggingMiddleware

# Configure module logger
logger = configure_logger(__name__)

# Define app
app = FastAPI(
    title="Prompt Guess Backend",
    description="Guess evaluation and reward ledger API for the prompt-guessing game",
    version="0.1.0",
)

app.add_middleware(LoggingMiddleware)


# Simple health check endpoint
@app.get("/")
async def health_check():
    """Simple health check endpoint."""
    return {"status": "healthy"}


# Load API routes
app.include_router(guesses.router)
app.include_router(players.router)
app.include_router(challenges.router)
app.include_router(admin.router)


def bootstrap_emission_state() -> None:
    """Initialize the emission state from configuration if it does not exist yet."""
    if not config.reward.authority:
        logger.warning(
            "No reward authority configured, emission state must be initialized manually"
        )
        return

    ledger = get_ledger()
    try:
        ledger.initialize(
            authority=config.reward.authority,
            initial_reward=config.reward.initial_reward,
            halving_threshold=config.reward.halving_threshold,
        )
    except AlreadyInitializedError:
        logger.info("Emission state already initialized")


@app.on_event("startup")
async def startup_event():
    """Run web server startup tasks."""
    setup_uvicorn_logging()

    logger.info("Starting FastAPI web server...")
    bootstrap_emission_state()
    logger.info("Web server startup complete")


@app.on_event("shutdown")
async def shutdown_event():
    """Run web server shutdown tasks."""
    logger.info("Web server shutdown complete")
