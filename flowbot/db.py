from sqlalchemy import URL
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine
from sqlalchemy.orm import declarative_base, sessionmaker

from flowbot.config import settings

Base = declarative_base()


def build_engine(database_path: str = settings.DATABASE_PATH) -> AsyncEngine:
    return create_async_engine(
        URL.create(drivername="sqlite+aiosqlite", database=database_path),
        echo=settings.SQL_ECHO,
        future=True,
    )


def build_session_factory(bind: AsyncEngine) -> sessionmaker:
    return sessionmaker(
        bind,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


engine = build_engine()
async_session_factory = build_session_factory(engine)


async def create_tables(bind: AsyncEngine = engine) -> None:
    async with bind.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
