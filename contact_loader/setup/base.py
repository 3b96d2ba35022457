from typing import Union
from sqlalchemy import text
from sqlalchemy.exc import OperationalError
from sqlalchemy_utils import database_exists, create_database

from .config import DatabaseConfig
from ..database.engine import create_database_instance, Database
from .logging import logger


def init_database(database_config: DatabaseConfig, base) -> Union[Database, None]:
    """
    Connect to PostgreSQL, creating the database if it does not exist yet.

    Table creation is left to Database.create_tables().

    Returns:
        Database: A Database object for the connection.
        None: If there was an error connecting to the database.
    """
    db_uri = database_config.get_connection_string()
    database_obj = create_database_instance(db_uri, base)

    try:
        if not database_exists(db_uri):
            create_database(db_uri)
    except OperationalError as e:
        logger.error(f"Error creating database: {e}")
        return None
    try:
        with database_obj.engine.connect() as conn:
            conn.execute(text("SELECT 1"))
            logger.info(f'Connection to database "{database_config.database_name}" established!')
    except OperationalError as e:
        logger.error(f"Error connecting to the database: {e}")
        return None
    return database_obj
