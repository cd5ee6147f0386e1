"""The user registry: one insert on the write store, one scan on the read store."""

from __future__ import annotations

from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import select

from userhub.db.models import User, UserRead
from userhub.db.session import DatabaseEngines
from userhub.errors import StorageError
from userhub.logging import get_logger
from userhub.tracing import traced

log = get_logger("userhub.users")


class UserRepository:
    def __init__(self, engines: DatabaseEngines) -> None:
        self._engines = engines

    @traced("users.add", attributes={"db.store": "write"})
    async def add_user(self, name: str) -> UserRead:
        try:
            async with self._engines.write_session() as session:
                user = User(name=name)
                session.add(user)
                await session.commit()
                await session.refresh(user)
        except SQLAlchemyError as exc:
            log.error("user_insert_failed", error=str(exc))
            raise StorageError("could not create user") from exc
        return UserRead.model_validate(user)

    @traced("users.list", attributes={"db.store": "read"})
    async def list_users(self) -> list[UserRead]:
        try:
            async with self._engines.read_session() as session:
                result = await session.execute(select(User).order_by(User.id))
                rows = result.scalars().all()
        except SQLAlchemyError as exc:
            log.error("user_query_failed", error=str(exc))
            raise StorageError("could not list users") from exc
        return [UserRead.model_validate(u) for u in rows]
