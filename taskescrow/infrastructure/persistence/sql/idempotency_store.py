"""SQL Implementation of IIdempotencyStore

Records live in ``idempotency_keys`` with a composite primary key of
(key, caller_id, endpoint). Each call runs in its own short transaction,
outside the unit of work of the guarded operation.
"""

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ....core.entities import IdempotencyRecord
from ....core.exceptions import InternalError
from ....core.interfaces import IIdempotencyStore
from .models import IdempotencyKeyModel, as_utc


def _model_to_record(row: IdempotencyKeyModel) -> IdempotencyRecord:
    return IdempotencyRecord(
        key=row.key,
        caller_id=row.caller_id,
        endpoint=row.endpoint,
        request_hash=row.request_hash,
        response=row.response,
        created_at=as_utc(row.created_at),
    )


class SqlIdempotencyStore(IIdempotencyStore):
    """SQL-backed idempotency records"""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def get(self, key: str, caller_id: str, endpoint: str) -> IdempotencyRecord | None:
        try:
            async with self._session_factory() as session:
                row = await session.scalar(
                    select(IdempotencyKeyModel).where(
                        IdempotencyKeyModel.key == key,
                        IdempotencyKeyModel.caller_id == caller_id,
                        IdempotencyKeyModel.endpoint == endpoint,
                    )
                )
                return _model_to_record(row) if row else None
        except SQLAlchemyError as e:
            raise InternalError("Idempotency lookup failed") from e

    async def put_if_absent(self, record: IdempotencyRecord) -> IdempotencyRecord | None:
        try:
            async with self._session_factory() as session, session.begin():
                existing = await session.get(
                    IdempotencyKeyModel, (record.key, record.caller_id, record.endpoint)
                )
                if existing is not None:
                    return _model_to_record(existing)
                session.add(
                    IdempotencyKeyModel(
                        key=record.key,
                        caller_id=record.caller_id,
                        endpoint=record.endpoint,
                        request_hash=record.request_hash,
                        response=record.response,
                        created_at=record.created_at,
                    )
                )
        except IntegrityError:
            # Lost the insert race; the winner's record is authoritative
            existing = await self.get(record.key, record.caller_id, record.endpoint)
            if existing is None:
                raise InternalError("Idempotency record vanished after conflict") from None
            return existing
        except SQLAlchemyError as e:
            raise InternalError("Idempotency write failed") from e
        return None
