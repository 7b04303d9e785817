import logging
from sqlalchemy.orm import Session


class BaseService:
    """Session-bound service. Subclasses own their commit/rollback boundaries."""

    def __init__(self, db: Session):
        self.db = db
        self._logger = logging.getLogger(self.__class__.__module__)

    def log_info(self, message: str):
        self._logger.info(f"[{self.__class__.__name__}] {message}")

    def log_warning(self, message: str):
        self._logger.warning(f"[{self.__class__.__name__}] {message}")

    def _commit(self):
        try:
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
