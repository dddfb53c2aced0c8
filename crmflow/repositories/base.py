from typing import Any, AsyncContextManager, Dict, TypeVar, Union
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from crmflow.core.exceptions import CollaboratorError

ModelT = TypeVar("ModelT")


def to_uuid(value: Union[UUID, str, None], what: str = "id") -> UUID:
    """Coerce an opaque identifier to the UUID the tables key on."""
    if isinstance(value, UUID):
        return value
    try:
        return UUID(str(value))
    except ValueError:
        raise CollaboratorError(f"Invalid {what} {value!r}")


class BaseRepository:
    """Holds the request's ``AsyncSession``.

    Repositories never commit on their own.  The rule store, execution
    log and every collaborator an action touches share one session, and
    the calling service decides when the unit of work is committed or
    rolled back.
    """

    def __init__(self, db: AsyncSession) -> None:
        self._db = db

    async def commit(self) -> None:
        await self._db.commit()

    async def rollback(self) -> None:
        await self._db.rollback()

    def savepoint(self) -> AsyncContextManager[Any]:
        """``SAVEPOINT`` scope; an error inside undoes only its own writes.

        The outer transaction stays usable afterwards, so a failed step
        can still be recorded on the same session.
        """
        return self._db.begin_nested()

    async def _save(self, obj: ModelT) -> ModelT:
        """Insert *obj* and reload server-generated columns (id, timestamps)."""
        self._db.add(obj)
        await self._db.flush()
        await self._db.refresh(obj)
        return obj

    async def _apply(self, obj: ModelT, changes: Dict[str, Any]) -> ModelT:
        for key, value in changes.items():
            setattr(obj, key, value)
        await self._db.flush()
        await self._db.refresh(obj)
        return obj

    async def _remove(self, obj: Any) -> None:
        await self._db.delete(obj)
        await self._db.flush()
