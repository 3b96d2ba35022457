from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy import pool
import asyncpg

from ..setup.config import DatabaseConfig
from ..setup.logging import logger


class Database:
    """
    Represents a database connection, session management, and associated SQLAlchemy Base.
    Provides a method to create all tables for its Base.
    """

    def __init__(self, engine, session_maker, base):
        self.engine = engine
        self.session_maker = session_maker
        self.base = base

    def create_tables(self):
        """Create all tables for the associated Base in this database."""
        self.base.metadata.create_all(self.engine)

    def __repr__(self):
        return f"Database(engine={self.engine}, session_maker={self.session_maker}, base={self.base})"


def create_database_instance(uri, base):
    engine = create_engine(
        uri,
        poolclass=pool.QueuePool,
        pool_size=5,
        max_overflow=5,
        pool_recycle=3600,
    )
    SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    return Database(engine=engine, session_maker=SessionLocal, base=base)


async def create_async_pool(config: DatabaseConfig) -> asyncpg.Pool:
    """Create the asyncpg pool the bulk loader writes through."""
    logger.info(
        f"[ConnectionFactory] Creating asyncpg pool for {config.get_safe_connection_string()} "
        f"(min: {config.pool_min_size}, max: {config.pool_max_size})"
    )
    try:
        return await asyncpg.create_pool(
            config.get_connection_string(),
            min_size=config.pool_min_size,
            max_size=config.pool_max_size,
            command_timeout=config.command_timeout,
            server_settings={'application_name': 'contact_loader'},
        )
    except Exception as e:
        logger.error(f"[ConnectionFactory] Failed to create asyncpg pool: {e}")
        raise
