from promptguess.backend.abstract import AbstractBackend
from promptguess.backend.memory import MemoryBackend
from promptguess.config import config
from promptguess.lib.logger import configure_logger

logger = configure_logger(__name__)


def get_backend() -> AbstractBackend:
    """Get the backend implementation based on configuration."""
    if config.db.backend == "memory":
        logger.info("Using in-memory ledger backend")
        return MemoryBackend()
    elif config.db.backend == "supabase":
        return _get_supabase_backend()
    else:
        raise ValueError(f"Unsupported backend: {config.db.backend}")


def _get_supabase_backend() -> AbstractBackend:
    """Get a Supabase backend implementation."""
    from sqlalchemy import create_engine
    from sqlalchemy.pool import NullPool
    from supabase import Client, create_client

    from promptguess.backend.supabase import SupabaseBackend

    client: Client = create_client(config.db.url, config.db.service_key)
    DATABASE_URL = f"postgresql+psycopg2://{config.db.user}:{config.db.password}@{config.db.host}:{config.db.port}/{config.db.dbname}?sslmode=require"
    engine = create_engine(DATABASE_URL, poolclass=NullPool)

    return SupabaseBackend(client=client, sqlalchemy_engine=engine)


# Create an instance
backend = get_backend()
