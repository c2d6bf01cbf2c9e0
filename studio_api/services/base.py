import logging

from sqlalchemy.orm import Session

logger = logging.getLogger(__name__)


class BaseService:
    """Common base for services bound to one request-scoped session."""

    def __init__(self, db: Session):
        self.db = db

    def _commit(self) -> None:
        try:
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
