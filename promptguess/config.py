import os
from dataclasses import dataclass, field

from dotenv import load_dotenv

from promptguess.lib.logger import configure_logger

logger = configure_logger(__name__)

load_dotenv()


@dataclass
class DatabaseConfig:
    backend: str = os.getenv("PROMPTGUESS_BACKEND", "memory")
    user: str = os.getenv("PROMPTGUESS_SUPABASE_USER", "")
    password: str = os.getenv("PROMPTGUESS_SUPABASE_PASSWORD", "")
    host: str = os.getenv("PROMPTGUESS_SUPABASE_HOST", "")
    port: str = os.getenv("PROMPTGUESS_SUPABASE_PORT", "")
    dbname: str = os.getenv("PROMPTGUESS_SUPABASE_DBNAME", "")
    url: str = os.getenv("PROMPTGUESS_SUPABASE_URL", "")
    service_key: str = os.getenv("PROMPTGUESS_SUPABASE_SERVICE_KEY", "")


@dataclass
class ScoringConfig:
    """Configuration for guess scoring and correctness thresholds."""

    lexical_threshold: float = float(
        os.getenv("PROMPTGUESS_LEXICAL_THRESHOLD", "70")
    )  # 0-100 scale
    semantic_threshold: float = float(
        os.getenv("PROMPTGUESS_SEMANTIC_THRESHOLD", "0.75")
    )  # cosine scale
    default_algorithm: str = os.getenv(
        "PROMPTGUESS_DEFAULT_ALGORITHM", "edit_distance"
    )
    # Empty means embedding failures are surfaced, never replaced
    embedding_fallback_algorithm: str = os.getenv(
        "PROMPTGUESS_EMBEDDING_FALLBACK_ALGORITHM", ""
    )
    # Edit distance is quadratic in the guess length
    max_guess_length: int = int(os.getenv("PROMPTGUESS_MAX_GUESS_LENGTH", "1000"))


@dataclass
class RewardConfig:
    """Initial emission parameters used when the game is initialized."""

    initial_reward: int = int(os.getenv("PROMPTGUESS_INITIAL_REWARD", "10000"))
    halving_threshold: int = int(
        os.getenv("PROMPTGUESS_HALVING_THRESHOLD", "10000000000")
    )
    authority: str = os.getenv("PROMPTGUESS_AUTHORITY", "")


@dataclass
class LedgerConfig:
    max_commit_retries: int = int(os.getenv("PROMPTGUESS_LEDGER_MAX_RETRIES", "3"))


@dataclass
class EmbeddingConfig:
    """Configuration for embedding models."""

    default_model: str = os.getenv(
        "PROMPTGUESS_EMBEDDING_DEFAULT_MODEL", "text-embedding-3-small"
    )
    api_base: str = os.getenv("PROMPTGUESS_EMBEDDING_API_BASE", "")
    api_key: str = os.getenv("PROMPTGUESS_EMBEDDING_API_KEY", "")
    dimensions: int = int(os.getenv("PROMPTGUESS_EMBEDDING_DIMENSIONS", "1536"))
    timeout_seconds: float = float(
        os.getenv("PROMPTGUESS_EMBEDDING_TIMEOUT_SECONDS", "10")
    )


@dataclass
class APIConfig:
    admin_auth: str = os.getenv("PROMPTGUESS_ADMIN_AUTH_TOKEN", "")


@dataclass
class Config:
    db: DatabaseConfig = field(default_factory=DatabaseConfig)
    scoring: ScoringConfig = field(default_factory=ScoringConfig)
    reward: RewardConfig = field(default_factory=RewardConfig)
    ledger: LedgerConfig = field(default_factory=LedgerConfig)
    embedding: EmbeddingConfig = field(default_factory=EmbeddingConfig)
    api: APIConfig = field(default_factory=APIConfig)

    @classmethod
    def load(cls) -> "Config":
        """Load and validate configuration"""
        config = cls()
        logger.info("Configuration loaded successfully")
        return config


# Global configuration instance
config = Config.load()
