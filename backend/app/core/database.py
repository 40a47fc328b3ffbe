"""Database engine, session factory and dialect-aware upsert."""

from datetime import datetime, timezone
from typing import Any, Dict, Iterable, Optional, Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from backend.app.core.config import get_settings

settings = get_settings()


def build_engine(database_url: Optional[str] = None, echo: Optional[bool] = None) -> AsyncEngine:
    """Async engine for the URL; Postgres gets a sized, pre-pinged pool and optional SSL."""
    url = database_url or settings.database_url
    engine_kwargs: Dict[str, Any] = {"echo": settings.debug if echo is None else echo}

    if url.startswith("postgresql"):
        engine_kwargs.update({
            "pool_size": settings.database_pool_size,
            "max_overflow": settings.database_max_overflow,
            "pool_pre_ping": True,
        })
        if settings.db_ssl_mode == "require":
            engine_kwargs["connect_args"] = {"ssl": "require"}

    return create_async_engine(url, **engine_kwargs)


engine = build_engine()

async_session_maker = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


class Base(DeclarativeBase):
    """Base class for SQLAlchemy models."""
    pass


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """SQLite hands back naive datetimes; everything stored here is UTC."""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


def _dialect_insert(session: AsyncSession):
    dialect = session.bind.dialect.name
    if dialect == "postgresql":
        from sqlalchemy.dialects.postgresql import insert
    elif dialect == "sqlite":
        from sqlalchemy.dialects.sqlite import insert
    else:
        raise NotImplementedError(f"Upsert is not supported for dialect '{dialect}'")
    return insert


async def upsert(
    session: AsyncSession,
    model,
    values: Dict[str, Any],
    conflict_keys: Sequence[str],
    update_keys: Optional[Iterable[str]] = None,
):
    """
    INSERT ... ON CONFLICT on the model's natural key and return the stored row.

    update_keys=None overwrites every supplied column except the key, id and
    created_at. An empty update_keys turns the statement into insert-if-absent.
    """
    insert = _dialect_insert(session)
    stmt = insert(model).values(**values)

    if update_keys is None:
        update_keys = [
            k for k in values if k not in conflict_keys and k not in ("id", "created_at")
        ]
    update_keys = list(update_keys)

    if update_keys:
        stmt = stmt.on_conflict_do_update(
            index_elements=list(conflict_keys),
            set_={k: stmt.excluded[k] for k in update_keys},
        )
    else:
        stmt = stmt.on_conflict_do_nothing(index_elements=list(conflict_keys))

    await session.execute(stmt)

    result = await session.execute(
        select(model)
        .where(*[getattr(model, k) == values[k] for k in conflict_keys])
        .execution_options(populate_existing=True)
    )
    return result.scalar_one()
