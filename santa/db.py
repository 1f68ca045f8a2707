import hashlib
import logging
from datetime import datetime, timedelta, UTC
from typing import Dict, Optional

from sqlalchemy import select, String as SAString, Text, DateTime
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.pool import NullPool

logger = logging.getLogger(__name__)


# ============================================================
# Models
# ============================================================
class Base(DeclarativeBase): pass

class Document(Base):
    """A whole serialized document, rewritten on every save."""
    __tablename__ = "documents"
    name: Mapped[str] = mapped_column(SAString(64), primary_key=True)
    body: Mapped[str] = mapped_column(Text, default="{}")
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), default=lambda: datetime.now(UTC))

class RuntimeLock(Base):
    __tablename__ = "runtime_lock"
    id: Mapped[int] = mapped_column(primary_key=True)
    bot_token_hash: Mapped[str] = mapped_column(SAString(64), unique=True, index=True)
    started_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), default=lambda: datetime.now(UTC))


# ============================================================
# Engine / Session
# ============================================================
def make_engine(database_url: str) -> AsyncEngine:
    connect_args: Dict[str, object] = {}
    if database_url.startswith("postgresql+psycopg://"):
        # Disable server-side prepared statements so PgBouncer in transaction
        # pooling mode doesn't invalidate cached statements between requests.
        connect_args["prepare_threshold"] = None
    return create_async_engine(
        database_url,
        echo=False,
        connect_args=connect_args,
        poolclass=NullPool,  # безопасно за PgBouncer
    )

def make_sessionmaker(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)

async def init_db(engine: AsyncEngine) -> None:
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


# ============================================================
# Runtime lock (single-instance polling)
# ============================================================
def _token_hash(token: str) -> str:
    return hashlib.sha256(token.encode()).hexdigest()

def _aware(dt: Optional[datetime]) -> Optional[datetime]:
    if dt is None: return None
    return dt if dt.tzinfo is not None else dt.replace(tzinfo=UTC)

async def acquire_runtime_lock(Session: async_sessionmaker[AsyncSession], token: str, ttl_seconds: int = 600) -> bool:
    h = _token_hash(token)
    now = datetime.now(UTC)
    ttl_ago = now - timedelta(seconds=ttl_seconds)
    async with Session() as s:
        existing = (await s.execute(select(RuntimeLock).where(RuntimeLock.bot_token_hash == h))).scalar_one_or_none()
        if existing:
            started = _aware(existing.started_at)
            if started and started < ttl_ago:
                logger.info("Dropping stale runtime lock from %s", started)
                await s.delete(existing)
                await s.commit()
            else:
                return False
        s.add(RuntimeLock(bot_token_hash=h, started_at=now))
        try:
            await s.commit()
            return True
        except IntegrityError:
            await s.rollback()
            return False

async def release_runtime_lock(Session: async_sessionmaker[AsyncSession], token: str) -> None:
    h = _token_hash(token)
    async with Session() as s:
        row = (await s.execute(select(RuntimeLock).where(RuntimeLock.bot_token_hash == h))).scalar_one_or_none()
        if row:
            await s.delete(row)
            await s.commit()
