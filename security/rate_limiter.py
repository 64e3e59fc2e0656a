import enum
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timedelta
from threading import Lock
from typing import Callable, Dict, List, Optional, Sequence, Tuple

import structlog

from models.login_attempt import utcnow
from security.attempt_store import AttemptStore
from security.identity import DEFAULT_IDENTIFIER_FIELDS, AttemptSource

logger = structlog.get_logger(__name__)


class StorageKind(str, enum.Enum):
    CACHE = "cache"
    DATABASE = "database"


@dataclass(frozen=True)
class RateLimit:
    """Verdict for one consumed attempt. retry_after is always a concrete time."""

    remaining_attempts: int
    retry_after: datetime
    accepted: bool
    limit: int

    def retry_after_seconds(self, now: Optional[datetime] = None) -> int:
        now = now or utcnow()
        seconds = (self.retry_after - now).total_seconds()
        # round up so a client never comes back a fraction too early
        return max(0, int(seconds) + (1 if seconds > int(seconds) else 0))

    def to_dict(self) -> dict:
        return {
            "remaining_attempts": self.remaining_attempts,
            "retry_after": self.retry_after.isoformat(),
            "accepted": self.accepted,
            "limit": self.limit,
        }


class Limiter(ABC):
    kind: StorageKind

    def __init__(
        self,
        max_attempts: int,
        window_seconds: int,
        identifier_fields: Sequence[str] = DEFAULT_IDENTIFIER_FIELDS,
    ):
        self.max_attempts = max_attempts
        self.window_seconds = window_seconds
        self.identifier_fields = tuple(identifier_fields)

    def _identify(self, source: AttemptSource) -> Tuple[str, Optional[str]]:
        return source.address, source.identifier(self.identifier_fields)

    @abstractmethod
    def consume(self, source: AttemptSource) -> RateLimit:
        ...

    @abstractmethod
    def reset(self, source: AttemptSource) -> None:
        ...


class DatabaseRateLimiter(Limiter):
    """
    Login throttle backed by the attempt log.

    Once a caller is blocked their further calls are rejected without being
    recorded, so the log does not grow while they hammer the form.
    """

    kind = StorageKind.DATABASE

    def __init__(
        self,
        store: AttemptStore,
        max_attempts: int,
        window_seconds: int,
        watch_period_seconds: int,
        identifier_fields: Sequence[str] = DEFAULT_IDENTIFIER_FIELDS,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        super().__init__(max_attempts, window_seconds, identifier_fields)
        self.store = store
        self.watch_period_seconds = watch_period_seconds
        self.clock = clock or store.clock

    def consume(self, source: AttemptSource) -> RateLimit:
        address, identifier = self._identify(source)

        if self.store.is_blocked(address, identifier, self.max_attempts, self.window_seconds):
            logger.warning(
                "login_throttled",
                client_address=address,
                account_identifier=identifier,
                max_attempts=self.max_attempts,
                window_seconds=self.window_seconds,
            )
            return RateLimit(0, self._retry_after(address, identifier), False, self.max_attempts)

        attempt = self.store.record(address, identifier)
        count = self.store.count_by_address_and_account(address, identifier, self.window_seconds)

        if count >= self.max_attempts:
            self.store.mark_blocked(attempt)
            logger.warning(
                "login_throttled",
                client_address=address,
                account_identifier=identifier,
                attempt_count=count,
                max_attempts=self.max_attempts,
            )
            return RateLimit(0, self._retry_after(address, identifier), False, self.max_attempts)

        return RateLimit(self.max_attempts - count, self.clock(), True, self.max_attempts)

    def reset(self, source: AttemptSource) -> None:
        # Attempts are kept for auditing and only expire through cleanup().
        address, identifier = self._identify(source)
        logger.debug("login_throttle_reset_skipped", client_address=address, account_identifier=identifier)

    def cleanup(self) -> int:
        return self.store.cleanup(self.watch_period_seconds)

    def _retry_after(self, address: str, identifier: Optional[str]) -> datetime:
        attempts = self.store.list_recent(address, identifier, self.window_seconds)
        if not attempts:
            return self.clock()
        oldest = attempts[-1]
        return oldest.occurred_at + timedelta(seconds=self.window_seconds)


class CacheRateLimiter(Limiter):
    """
    In-process sliding window. Counts live only as long as the process and
    are not shared between workers.
    """

    kind = StorageKind.CACHE

    def __init__(
        self,
        max_attempts: int,
        window_seconds: int,
        identifier_fields: Sequence[str] = DEFAULT_IDENTIFIER_FIELDS,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        super().__init__(max_attempts, window_seconds, identifier_fields)
        self.clock = clock or utcnow
        self._attempts: Dict[Tuple[str, Optional[str]], List[datetime]] = {}
        self._lock = Lock()
        self._next_sweep = self.clock() + timedelta(seconds=window_seconds)

    def _prune(self, key) -> List[datetime]:
        cutoff = self.clock() - timedelta(seconds=self.window_seconds)
        timestamps = [ts for ts in self._attempts.get(key, ()) if ts >= cutoff]
        if timestamps:
            self._attempts[key] = timestamps
        else:
            self._attempts.pop(key, None)
        return timestamps

    def _sweep(self) -> None:
        # at most once per window, drop keys nobody has come back for
        now = self.clock()
        if now < self._next_sweep:
            return
        self._next_sweep = now + timedelta(seconds=self.window_seconds)
        for key in list(self._attempts):
            self._prune(key)

    def _rejected(self, timestamps: List[datetime]) -> RateLimit:
        retry_after = min(timestamps) + timedelta(seconds=self.window_seconds) if timestamps else self.clock()
        return RateLimit(0, retry_after, False, self.max_attempts)

    def consume(self, source: AttemptSource) -> RateLimit:
        key = self._identify(source)
        with self._lock:
            self._sweep()
            timestamps = self._prune(key)
            if len(timestamps) >= self.max_attempts:
                logger.warning("login_throttled", client_address=key[0], account_identifier=key[1])
                return self._rejected(timestamps)

            timestamps.append(self.clock())
            self._attempts[key] = timestamps
            count = len(timestamps)
            if count >= self.max_attempts:
                logger.warning("login_throttled", client_address=key[0], account_identifier=key[1])
                return self._rejected(timestamps)

            return RateLimit(self.max_attempts - count, self.clock(), True, self.max_attempts)

    def reset(self, source: AttemptSource) -> None:
        key = self._identify(source)
        with self._lock:
            if self._attempts.pop(key, None) is not None:
                logger.debug("login_attempts_cleared", client_address=key[0], account_identifier=key[1])
