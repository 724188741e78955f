"""
SQLAlchemy-backed record store.

Rows come back as sparse dicts: NULL columns are dropped so callers see the
same shape the memory store returns.
"""

from typing import Iterable

from sqlalchemy import String, or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from app.config import Settings
from app.models.database import build_engine, build_session_maker
from app.models.tables import MODELS, Base
from app.store.base import RecordNotFoundError, StoreError, UnknownCollectionError

import structlog

logger = structlog.get_logger()


def _to_document(row: Base) -> dict:
    doc = {}
    for column in row.__table__.columns:
        value = getattr(row, column.key)
        if value is not None:
            doc[column.key] = value
    return doc


def _fit_lengths(model: type[Base], values: dict) -> dict:
    """Trim strings to their VARCHAR length; PostgreSQL rejects the row otherwise."""
    fitted = {}
    for name, value in values.items():
        limit = getattr(model.__table__.columns[name].type, "length", None)
        if limit and isinstance(value, str) and len(value) > limit:
            logger.warning(
                "store_value_truncated",
                table=model.__tablename__,
                field=name,
                length=len(value),
                limit=limit,
            )
            value = value[:limit]
        fitted[name] = value
    return fitted


class SqlRecordStore:
    def __init__(self, session_maker: async_sessionmaker[AsyncSession], engine: AsyncEngine | None = None):
        self._session_maker = session_maker
        self._engine = engine

    @classmethod
    def from_settings(cls, settings: Settings) -> "SqlRecordStore":
        engine = build_engine(settings)
        return cls(build_session_maker(engine), engine)

    async def init_schema(self) -> None:
        """create_all, for tests and local sqlite. Production uses alembic."""
        if self._engine is None:
            raise StoreError("init_schema needs an engine")
        async with self._engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    def _model(self, collection: str) -> type[Base]:
        try:
            return MODELS[collection]
        except KeyError:
            raise UnknownCollectionError(collection) from None

    def _column(self, model: type[Base], name: str):
        if name not in model.__table__.columns:
            raise StoreError(f"Unknown field {model.__tablename__}.{name}")
        return getattr(model, name)

    async def create(self, collection: str, fields: dict) -> str:
        model = self._model(collection)
        columns = model.__table__.columns
        dropped = [k for k in fields if k not in columns]
        if dropped:
            logger.debug("store_fields_dropped", collection=collection, fields=dropped)

        row = model(**_fit_lengths(model, {k: v for k, v in fields.items() if k in columns and v is not None}))
        try:
            async with self._session_maker() as session:
                session.add(row)
                await session.commit()
                return row.id
        except SQLAlchemyError as e:
            raise StoreError(f"create {collection} failed: {e}") from e

    async def get(self, collection: str, record_id: str) -> dict | None:
        model = self._model(collection)
        try:
            async with self._session_maker() as session:
                row = await session.get(model, record_id)
                return _to_document(row) if row is not None else None
        except SQLAlchemyError as e:
            raise StoreError(f"get {collection}/{record_id} failed: {e}") from e

    async def update(self, collection: str, record_id: str, patch: dict) -> None:
        model = self._model(collection)
        for name in patch:
            self._column(model, name)
        patch = _fit_lengths(model, patch)
        try:
            async with self._session_maker() as session:
                row = await session.get(model, record_id)
                if row is None:
                    raise RecordNotFoundError(collection, record_id)
                for name, value in patch.items():
                    if name != "id":
                        setattr(row, name, value)
                await session.commit()
        except SQLAlchemyError as e:
            raise StoreError(f"update {collection}/{record_id} failed: {e}") from e

    async def query(
        self,
        collection: str,
        filters: dict | None = None,
        *,
        present: Iterable[str] = (),
        absent: Iterable[str] = (),
        limit: int | None = None,
    ) -> list[dict]:
        model = self._model(collection)
        stmt = select(model)

        for name, value in (filters or {}).items():
            stmt = stmt.where(self._column(model, name) == value)

        for name in present:
            col = self._column(model, name)
            stmt = stmt.where(col.is_not(None))
            if isinstance(col.type, String):
                stmt = stmt.where(col != "")

        for name in absent:
            col = self._column(model, name)
            if isinstance(col.type, String):
                stmt = stmt.where(or_(col.is_(None), col == ""))
            else:
                stmt = stmt.where(col.is_(None))

        if "timestamp" in model.__table__.columns:
            stmt = stmt.order_by(model.timestamp)
        if limit is not None:
            stmt = stmt.limit(limit)

        try:
            async with self._session_maker() as session:
                result = await session.execute(stmt)
                return [_to_document(row) for row in result.scalars().all()]
        except SQLAlchemyError as e:
            raise StoreError(f"query {collection} failed: {e}") from e

    async def find_by_slug(self, collection: str, slug: str) -> dict | None:
        matches = await self.query(collection, {"slug": slug}, limit=1)
        return matches[0] if matches else None

    async def close(self) -> None:
        if self._engine is not None:
            await self._engine.dispose()
