import uuid
from typing import Any, Dict, List, Optional

from sqlalchemy import (
    BigInteger,
    Boolean,
    Column,
    DateTime,
    Engine,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    func,
    select,
    true,
    update,
)
from sqlalchemy.dialects.postgresql import ARRAY
from sqlalchemy.dialects.postgresql import UUID as PG_UUID
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, declarative_base, sessionmaker
from supabase import Client

from promptguess.backend.abstract import AbstractBackend
from promptguess.backend.models import (
    UUID,
    Challenge,
    ChallengeCreate,
    ChallengeFilter,
    CommitReceipt,
    EmissionState,
    EmissionStateCreate,
    EmissionStateUpdate,
    GuessRecord,
    GuessRecordCreate,
    GuessRecordFilter,
    LedgerCommit,
    UserAccount,
    UserAccountFilter,
)
from promptguess.lib.exceptions import (
    AlreadyInitializedError,
    ConcurrentModificationError,
    LedgerNotFoundError,
)
from promptguess.lib.logger import configure_logger

logger = configure_logger(__name__)


Base = declarative_base()

# The emission state is a single row
EMISSION_STATE_ID = 1


class EmissionStateSQL(Base):
    __tablename__ = "emission_states"

    id = Column(Integer, primary_key=True, default=EMISSION_STATE_ID)
    total_minted = Column(BigInteger, nullable=False, default=0)
    current_reward = Column(BigInteger, nullable=False)
    halving_threshold = Column(BigInteger, nullable=False)
    authority = Column(Text, nullable=False)
    halvings = Column(Integer, nullable=False, default=0)
    version = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )


class UserAccountSQL(Base):
    __tablename__ = "user_accounts"

    user_id = Column(String, primary_key=True)
    total_guesses = Column(BigInteger, nullable=False, default=0, server_default="0")
    correct_guesses = Column(BigInteger, nullable=False, default=0, server_default="0")
    tokens_earned = Column(BigInteger, nullable=False, default=0, server_default="0")
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )


class ChallengeSQL(Base):
    __tablename__ = "challenges"

    id = Column(
        PG_UUID(as_uuid=True), primary_key=True, server_default=func.gen_random_uuid()
    )
    actual_prompt = Column(Text, nullable=False)
    prompt_embedding = Column(ARRAY(Float))
    difficulty = Column(String, nullable=False, server_default="medium")
    image_url = Column(Text)
    is_active = Column(Boolean, nullable=False, server_default=true())
    created_at = Column(DateTime(timezone=True), server_default=func.now())


class GuessRecordSQL(Base):
    __tablename__ = "guess_records"

    id = Column(
        PG_UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
        server_default=func.gen_random_uuid(),
    )
    user_id = Column(String, nullable=False, index=True)
    challenge_id = Column(PG_UUID(as_uuid=True), ForeignKey("challenges.id"))
    guess_text = Column(Text, nullable=False, default="")
    algorithm = Column(String)
    score = Column(Float, nullable=False, default=0.0)
    is_correct = Column(Boolean, nullable=False, default=False)
    tokens_earned = Column(BigInteger, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), server_default=func.now())


def emission_to_pydantic(row: EmissionStateSQL) -> EmissionState:
    return EmissionState(
        total_minted=row.total_minted,
        current_reward=row.current_reward,
        halving_threshold=row.halving_threshold,
        authority=row.authority,
        halvings=row.halvings,
        version=row.version,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def account_to_pydantic(row: UserAccountSQL) -> UserAccount:
    return UserAccount(
        user_id=row.user_id,
        total_guesses=row.total_guesses,
        correct_guesses=row.correct_guesses,
        tokens_earned=row.tokens_earned,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def record_to_pydantic(row: GuessRecordSQL) -> GuessRecord:
    return GuessRecord(
        id=row.id,
        user_id=row.user_id,
        challenge_id=row.challenge_id,
        guess_text=row.guess_text,
        algorithm=row.algorithm,
        score=row.score,
        is_correct=row.is_correct,
        tokens_earned=row.tokens_earned,
        created_at=row.created_at,
    )


class SupabaseBackend(AbstractBackend):
    """Ledger backend on Supabase Postgres.

    Ledger writes run in SQLAlchemy transactions guarded by an optimistic
    version check on the emission state row. Reads of challenges, accounts
    and records go through the Supabase client.
    """

    def __init__(self, client: Client, sqlalchemy_engine: Engine, **kwargs):
        self.client = client
        self.sqlalchemy_engine = sqlalchemy_engine
        self.Session = sessionmaker(bind=self.sqlalchemy_engine, expire_on_commit=False)

        if kwargs.get("create_tables", False):
            Base.metadata.create_all(self.sqlalchemy_engine)

        try:
            with self.sqlalchemy_engine.connect():
                logger.info("SQLAlchemy connection successful!")
        except Exception as e:
            logger.error(f"Failed to connect to database: {e}")

    # ---------------------------------------------------------------
    # EMISSION STATE
    # ---------------------------------------------------------------
    def create_emission_state(self, new_state: EmissionStateCreate) -> EmissionState:
        with self.Session() as session:
            try:
                with session.begin():
                    row = EmissionStateSQL(
                        id=EMISSION_STATE_ID, version=0, **new_state.model_dump()
                    )
                    session.add(row)
            except IntegrityError:
                raise AlreadyInitializedError()
            return emission_to_pydantic(row)

    def get_emission_state(self) -> Optional[EmissionState]:
        response = (
            self.client.table("emission_states")
            .select("*")
            .eq("id", EMISSION_STATE_ID)
            .execute()
        )
        data = response.data or []
        if not data:
            return None
        return EmissionState(**data[0])

    def update_emission_state(
        self, expected_version: int, update_data: EmissionStateUpdate
    ) -> EmissionState:
        with self.Session() as session:
            with session.begin():
                row = self._write_emission(session, expected_version, update_data)
            return emission_to_pydantic(row)

    def _write_emission(
        self,
        session: Session,
        expected_version: Optional[int],
        update_data: EmissionStateUpdate,
    ) -> EmissionStateSQL:
        payload = update_data.model_dump(exclude_none=True)
        result = session.execute(
            update(EmissionStateSQL)
            .where(
                EmissionStateSQL.id == EMISSION_STATE_ID,
                EmissionStateSQL.version == expected_version,
            )
            .values(
                **payload,
                version=EmissionStateSQL.version + 1,
                updated_at=func.now(),
            )
            .execution_options(synchronize_session=False)
        )
        row = session.execute(
            select(EmissionStateSQL)
            .where(EmissionStateSQL.id == EMISSION_STATE_ID)
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if row is None:
            raise LedgerNotFoundError()
        if result.rowcount == 0:
            raise ConcurrentModificationError(expected_version, row.version)
        return row

    # ---------------------------------------------------------------
    # USER ACCOUNTS
    # ---------------------------------------------------------------
    def get_user_account(self, user_id: str) -> Optional[UserAccount]:
        response = (
            self.client.table("user_accounts")
            .select("*")
            .eq("user_id", user_id)
            .execute()
        )
        data = response.data or []
        if not data:
            return None
        return UserAccount(**data[0])

    def create_user_account(self, user_id: str) -> UserAccount:
        # Never overwrite an existing account
        self.client.table("user_accounts").upsert(
            {
                "user_id": user_id,
                "total_guesses": 0,
                "correct_guesses": 0,
                "tokens_earned": 0,
            },
            on_conflict="user_id",
            ignore_duplicates=True,
        ).execute()
        account = self.get_user_account(user_id)
        if account is None:
            raise ValueError(f"No data returned for user account {user_id}")
        return account

    def list_user_accounts(
        self,
        filters: Optional[UserAccountFilter] = None,
        limit: Optional[int] = None,
    ) -> List[UserAccount]:
        query = self.client.table("user_accounts").select("*")
        if filters:
            if filters.min_tokens_earned is not None:
                query = query.gte("tokens_earned", filters.min_tokens_earned)
        query = query.order("tokens_earned", desc=True).order("created_at")
        if limit is not None:
            query = query.limit(limit)
        response = query.execute()
        data = response.data or []
        return [UserAccount(**row) for row in data]

    def _apply_account_delta(
        self, session: Session, user_id: str, record: GuessRecordCreate
    ) -> UserAccountSQL:
        session.execute(
            pg_insert(UserAccountSQL)
            .values(user_id=user_id)
            .on_conflict_do_nothing(index_elements=["user_id"])
        )
        session.execute(
            update(UserAccountSQL)
            .where(UserAccountSQL.user_id == user_id)
            .values(
                total_guesses=UserAccountSQL.total_guesses + 1,
                correct_guesses=UserAccountSQL.correct_guesses
                + (1 if record.is_correct else 0),
                tokens_earned=UserAccountSQL.tokens_earned + record.tokens_earned,
                updated_at=func.now(),
            )
            .execution_options(synchronize_session=False)
        )
        return session.execute(
            select(UserAccountSQL)
            .where(UserAccountSQL.user_id == user_id)
            .execution_options(populate_existing=True)
        ).scalar_one()

    # ---------------------------------------------------------------
    # GUESS RECORDS
    # ---------------------------------------------------------------
    def commit_guess(self, commit: LedgerCommit) -> CommitReceipt:
        with self.Session() as session:
            with session.begin():
                emission_row = None
                if commit.emission_update is not None:
                    emission_row = self._write_emission(
                        session, commit.expected_version, commit.emission_update
                    )
                account_row = self._apply_account_delta(
                    session, commit.user_id, commit.record
                )
                record_row = self._append_record(session, commit.record)
            return CommitReceipt(
                account=account_to_pydantic(account_row),
                record=record_to_pydantic(record_row),
                emission=emission_to_pydantic(emission_row) if emission_row else None,
            )

    def _append_record(
        self, session: Session, new_record: GuessRecordCreate
    ) -> GuessRecordSQL:
        payload = new_record.model_dump(mode="json")
        payload["challenge_id"] = new_record.challenge_id
        row = GuessRecordSQL(id=uuid.uuid4(), **payload)
        session.add(row)
        session.flush()
        session.refresh(row)
        return row

    def list_guess_records(
        self,
        filters: Optional[GuessRecordFilter] = None,
        limit: Optional[int] = None,
        newest_first: bool = False,
    ) -> List[GuessRecord]:
        query = self.client.table("guess_records").select("*")
        if filters:
            if filters.user_id is not None:
                query = query.eq("user_id", filters.user_id)
            if filters.challenge_id is not None:
                query = query.eq("challenge_id", str(filters.challenge_id))
            if filters.is_correct is not None:
                query = query.eq("is_correct", filters.is_correct)
        query = query.order("created_at", desc=newest_first)
        if limit is not None:
            query = query.limit(limit)
        response = query.execute()
        data = response.data or []
        return [GuessRecord(**row) for row in data]

    # ---------------------------------------------------------------
    # CHALLENGES
    # ---------------------------------------------------------------
    def create_challenge(self, new_challenge: ChallengeCreate) -> Challenge:
        payload = new_challenge.model_dump(exclude_unset=True, mode="json")
        response = self.client.table("challenges").insert(payload).execute()
        data = response.data or []
        if not data:
            raise ValueError("No data returned from challenges insert.")
        return Challenge(**_normalize_challenge(data[0]))

    def get_challenge(self, challenge_id: UUID) -> Optional[Challenge]:
        response = (
            self.client.table("challenges")
            .select("*")
            .eq("id", str(challenge_id))
            .execute()
        )
        data = response.data or []
        if not data:
            return None
        return Challenge(**_normalize_challenge(data[0]))

    def list_challenges(
        self,
        filters: Optional[ChallengeFilter] = None,
        limit: Optional[int] = None,
    ) -> List[Challenge]:
        query = self.client.table("challenges").select("*")
        if filters:
            if filters.is_active is not None:
                query = query.eq("is_active", filters.is_active)
            if filters.difficulty is not None:
                query = query.eq("difficulty", str(filters.difficulty))
        query = query.order("created_at", desc=True)
        if limit is not None:
            query = query.limit(limit)
        response = query.execute()
        data = response.data or []
        return [Challenge(**_normalize_challenge(row)) for row in data]


def _normalize_challenge(row: Dict[str, Any]) -> Dict[str, Any]:
    """Parse embeddings stored as pgvector, which PostgREST returns as "[0.1,0.2]"."""
    embedding = row.get("prompt_embedding")
    if isinstance(embedding, str):
        stripped = embedding.strip("[]")
        row = {
            **row,
            "prompt_embedding": [float(v) for v in stripped.split(",")]
            if stripped
            else None,
        }
    return row
