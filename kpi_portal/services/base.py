import logging
from sqlalchemy.orm import Session


class BaseService:
    """
    Common plumbing for DB-backed services: the request session and a
    logger named after the concrete service module.
    """

    def __init__(self, db: Session):
        self.db = db
        self._logger = logging.getLogger(type(self).__module__)

    def commit(self) -> None:
        try:
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

    def log_info(self, message: str, **extra) -> None:
        self._logger.info(message, extra=extra or None)

    def log_warning(self, message: str, **extra) -> None:
        self._logger.warning(message, extra=extra or None)

    def log_error(self, message: str, **extra) -> None:
        self._logger.error(message, extra=extra or None, exc_info=True)
