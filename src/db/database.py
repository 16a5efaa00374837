import os
from typing import Optional
from dotenv import load_dotenv
from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, declarative_base, scoped_session, sessionmaker
import logging

load_dotenv()

Base = declarative_base()

# Server databases only; SQLite uses SQLAlchemy's default pool
SERVER_POOL_OPTIONS = {
    'pool_size': 5,
    'max_overflow': 10,
    'pool_timeout': 30,
    'pool_recycle': 1800,
    'pool_pre_ping': True,
}

class DatabaseConnection:
    """Engine and thread-scoped sessions for the position history store"""

    def __init__(self, connection_string: Optional[str] = None):
        self.logger = logging.getLogger(__name__)
        self.connection_string = connection_string or os.getenv('DB_URL')
        if not self.connection_string:
            raise ValueError("No database URL given and DB_URL is not set")

        self.engine = self._create_engine()
        self.Session = scoped_session(sessionmaker(bind=self.engine, autoflush=False))

    @property
    def is_sqlite(self) -> bool:
        return self.connection_string.startswith("sqlite")

    def _create_engine(self) -> Engine:
        options = {} if self.is_sqlite else SERVER_POOL_OPTIONS
        try:
            return create_engine(self.connection_string, echo=False, **options)
        except Exception as e:
            self.logger.error(f"Failed to create engine for {self.engine_label}: {str(e)}")
            raise

    @property
    def engine_label(self) -> str:
        """Connection target without credentials, for logs"""
        return self.connection_string.split('@')[-1]

    def get_session(self) -> Session:
        return self.Session()

    def test_connection(self) -> bool:
        try:
            with self.engine.connect() as conn:
                conn.execute(text("SELECT 1"))
            self.logger.info(f"Position store reachable at {self.engine_label}")
            return True
        except Exception as e:
            self.logger.error(f"Position store unreachable at {self.engine_label}: {str(e)}")
            return False

    def init_db(self):
        """Create the position tables if they are missing"""
        from . import models  # noqa: F401  registers the tables on Base
        try:
            Base.metadata.create_all(self.engine)
            self.logger.info(f"Position tables ready at {self.engine_label}")
        except Exception as e:
            self.logger.error(f"Failed to create position tables: {str(e)}")
            raise

    def dispose(self):
        self.Session.remove()
        self.engine.dispose()
