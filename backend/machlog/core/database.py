"""
Доступ к хранилищу: явно создаваемый BackendClient вместо глобального движка.
Клиент строится один раз в lifespan приложения и кладётся в app.state.backend;
все обработчики получают сессию через зависимость get_db.
"""
import enum
import uuid
from datetime import datetime
from typing import AsyncIterator, Type

from fastapi import Request
from sqlalchemy import Enum
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    pass


def new_id() -> str:
    return str(uuid.uuid4())


def utcnow() -> datetime:
    return datetime.utcnow()


def value_enum(enum_cls: Type[enum.Enum], name: str) -> Enum:
    """Колонка-enum, которая хранит значения ('operator'), а не имена членов ('OPERATOR')."""
    return Enum(
        enum_cls,
        name=name,
        values_callable=lambda members: [m.value for m in members],
    )


class BackendClient:
    def __init__(self, database_url: str, echo: bool = False):
        self.database_url = database_url
        kwargs: dict = {"echo": echo}
        if database_url.startswith("sqlite"):
            kwargs["connect_args"] = {"check_same_thread": False}
        else:
            kwargs["pool_pre_ping"] = True
        self.engine = create_async_engine(database_url, **kwargs)
        self.session_maker = async_sessionmaker(
            bind=self.engine,
            class_=AsyncSession,
            expire_on_commit=False,
            autoflush=False,
        )

    def session(self) -> AsyncSession:
        return self.session_maker()

    async def create_schema(self) -> None:
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def dispose(self) -> None:
        await self.engine.dispose()


def get_backend(request: Request) -> BackendClient:
    return request.app.state.backend


async def get_db(request: Request) -> AsyncIterator[AsyncSession]:
    async with get_backend(request).session() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
