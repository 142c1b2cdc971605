from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from .config import get_settings

settings = get_settings()

engine = create_async_engine(
    settings.database_url,
    echo=settings.echo_sql,
    pool_pre_ping=True,
    pool_recycle=3600,
    # Writers serialize on table row locks; their re-check must see rows committed meanwhile.
    execution_options={"isolation_level": "READ COMMITTED"},
)

# Bookings are read back after commit for the response body.
async_session = async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)


async def dispose_engine() -> None:
    await engine.dispose()
