from contextlib import contextmanager
from datetime import datetime, timedelta
from typing import Callable, List, Optional

import structlog
from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError

from models import db
from models.login_attempt import LoginAttempt, utcnow
from security.exceptions import StorageUnavailable

logger = structlog.get_logger(__name__)


class AttemptStore:
    """
    Append-only log of login attempts with time-windowed counting.

    Every window query is "occurred_at >= now - seconds". The clock is
    injectable so windows can be tested without sleeping.
    """

    def __init__(self, session=None, clock: Optional[Callable[[], datetime]] = None):
        self._session = session
        self.clock = clock or utcnow

    @property
    def session(self):
        # resolved lazily so the store can be built before the app context exists
        return self._session if self._session is not None else db.session

    def _since(self, seconds: int) -> datetime:
        return self.clock() - timedelta(seconds=seconds)

    @contextmanager
    def _storage_errors(self, operation: str):
        try:
            yield
        except SQLAlchemyError as exc:
            self.session.rollback()
            logger.error("login_throttle_storage_error", operation=operation, error=str(exc))
            raise StorageUnavailable(f"Login attempt storage failed during {operation}") from exc

    def _windowed(self, seconds: int):
        return self.session.query(LoginAttempt).filter(LoginAttempt.occurred_at >= self._since(seconds))

    def _count(self, query) -> int:
        return query.with_entities(func.count(LoginAttempt.id)).scalar() or 0

    def record(self, client_address: str, account_identifier: Optional[str] = None) -> LoginAttempt:
        with self._storage_errors("record"):
            attempt = LoginAttempt(
                client_address=client_address,
                account_identifier=account_identifier,
                occurred_at=self.clock(),
            )
            self.session.add(attempt)
            self.session.commit()

            logger.debug(
                "login_attempt_recorded",
                client_address=client_address,
                account_identifier=account_identifier,
                attempt_id=attempt.id,
            )
        return attempt

    def mark_blocked(self, attempt: LoginAttempt) -> LoginAttempt:
        with self._storage_errors("mark_blocked"):
            attempt.blocked = True
            self.session.commit()
        return attempt

    def count_by_address_and_account(
        self, client_address: str, account_identifier: Optional[str], window_seconds: int
    ) -> int:
        """
        Attempts from this address in the window. When an identifier is given it
        must match too; when it is None the identifier column is not filtered at all.
        """
        with self._storage_errors("count"):
            q = self._windowed(window_seconds).filter(LoginAttempt.client_address == client_address)
            if account_identifier is not None:
                q = q.filter(LoginAttempt.account_identifier == account_identifier)
            return self._count(q)

    def count_by_address(self, client_address: str, window_seconds: int) -> int:
        with self._storage_errors("count_by_address"):
            q = self._windowed(window_seconds).filter(LoginAttempt.client_address == client_address)
            return self._count(q)

    def count_by_account(self, account_identifier: str, window_seconds: int) -> int:
        with self._storage_errors("count_by_account"):
            q = self._windowed(window_seconds).filter(LoginAttempt.account_identifier == account_identifier)
            return self._count(q)

    def is_blocked(
        self, client_address: str, account_identifier: Optional[str], max_attempts: int, window_seconds: int
    ) -> bool:
        return self.count_by_address_and_account(client_address, account_identifier, window_seconds) >= max_attempts

    def list_recent(
        self, client_address: str, account_identifier: Optional[str], window_seconds: int
    ) -> List[LoginAttempt]:
        """
        Newest first. An empty address or a None identifier drops that filter.
        """
        with self._storage_errors("list_recent"):
            q = self._windowed(window_seconds)
            if client_address != "":
                q = q.filter(LoginAttempt.client_address == client_address)
            if account_identifier is not None:
                q = q.filter(LoginAttempt.account_identifier == account_identifier)
            return q.order_by(LoginAttempt.occurred_at.desc(), LoginAttempt.id.desc()).all()

    def cleanup(self, watch_period_seconds: int) -> int:
        """Delete everything older than the watch period. Returns rows deleted."""
        before = self._since(watch_period_seconds)
        with self._storage_errors("cleanup"):
            deleted = (
                self.session.query(LoginAttempt)
                .filter(LoginAttempt.occurred_at < before)
                .delete(synchronize_session=False)
            )
            self.session.commit()

        logger.info("login_attempts_cleaned", deleted=deleted, before=before.isoformat())
        return deleted
