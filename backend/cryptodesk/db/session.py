# backend/cryptodesk/db/session.py

from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker

from cryptodesk.config.settings import settings

engine = create_async_engine(settings.database_url, echo=False)
AsyncSessionLocal = async_sessionmaker(autoflush=False, bind=engine, expire_on_commit=False)
