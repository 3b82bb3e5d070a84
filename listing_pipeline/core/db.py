from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from listing_pipeline.core.config import settings


engine = create_async_engine(settings.database_url, pool_pre_ping=True)
SessionLocal = async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)