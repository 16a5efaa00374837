from typing import List, Optional
from .database import DatabaseConnection
from .models import SnipePosition
from core.types import Position
import logging

class DatabaseService:
    def __init__(self, run_id: str, db: Optional[DatabaseConnection] = None):
        self.db = db or DatabaseConnection()
        self.logger = logging.getLogger(__name__)
        self.run_id = run_id

    def init_db(self):
        self.db.init_db()

    def upsert_position(self, position: Position):
        """Insert or update the row for a position snapshot"""
        session = self.db.get_session()
        try:
            record = position.to_record()
            row = session.get(SnipePosition, position.id)
            if row is None:
                row = SnipePosition(run_id=self.run_id, **record)
                session.add(row)
            else:
                for key, value in record.items():
                    setattr(row, key, value)
            session.commit()
        except Exception as e:
            self.logger.error(f"Error saving position {position.id}: {str(e)}")
            session.rollback()
            raise
        finally:
            session.close()

    def get_position_history(self, run_id: Optional[str] = None) -> List[SnipePosition]:
        """All stored positions for a run, oldest entry first"""
        session = self.db.get_session()
        try:
            return (
                session.query(SnipePosition)
                .filter(SnipePosition.run_id == (run_id or self.run_id))
                .order_by(SnipePosition.entry_timestamp)
                .all()
            )
        finally:
            session.close()

    def get_open_positions(self) -> List[SnipePosition]:
        session = self.db.get_session()
        try:
            return (
                session.query(SnipePosition)
                .filter(SnipePosition.run_id == self.run_id, SnipePosition.status != 'closed')
                .all()
            )
        finally:
            session.close()
