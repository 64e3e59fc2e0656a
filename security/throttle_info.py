from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from security.attempt_store import AttemptStore
from security.firewalls import FirewallConfig, FirewallRegistry
from security.identity import AttemptSource
from security.rate_limiter import StorageKind

TRACK_BY_ADDRESS = "ip"
TRACK_BY_ACCOUNT = "username"


@dataclass(frozen=True)
class AttemptInfo:
    current_attempts: int
    max_attempts: int
    remaining_attempts: int
    is_blocked: bool
    retry_after: Optional[datetime]
    tracking_type: str

    def to_dict(self) -> dict:
        return {
            "current_attempts": self.current_attempts,
            "max_attempts": self.max_attempts,
            "remaining_attempts": self.remaining_attempts,
            "is_blocked": self.is_blocked,
            "retry_after": self.retry_after.isoformat() if self.retry_after else None,
            "tracking_type": self.tracking_type,
        }


NEUTRAL_INFO = AttemptInfo(0, 0, 0, False, None, TRACK_BY_ADDRESS)


class ThrottleInfoResolver:
    """
    Read-only view of a caller's throttle state, for login error messages.

    Never records an attempt, so it is safe to call on every failed-login render.
    Counts on a single dimension: by account when an identifier is known
    (whatever address it came from), otherwise by address.
    """

    def __init__(self, registry: FirewallRegistry, store: Optional[AttemptStore] = None):
        self.registry = registry
        self.store = store if store is not None else registry.store

    def get_attempt_info(
        self, firewall_name: str, client_address: str, account_identifier: Optional[str] = None
    ) -> AttemptInfo:
        config = self.registry.resolve(firewall_name)
        if config is None:
            return NEUTRAL_INFO

        tracking = TRACK_BY_ACCOUNT if account_identifier else TRACK_BY_ADDRESS

        if config.storage is not StorageKind.DATABASE or self.store is None:
            # ephemeral counters can't be read without consuming from them
            return AttemptInfo(0, config.max_attempts, 0, False, None, tracking)

        return self._from_store(config, client_address, account_identifier, tracking)

    def get_attempt_info_for_request(
        self, firewall_name: str, request, account_identifier: Optional[str] = None
    ) -> AttemptInfo:
        source = AttemptSource.from_request(request)
        if not account_identifier:
            config = self.registry.resolve(firewall_name)
            if config is not None:
                account_identifier = source.identifier(config.identifier_fields)
        return self.get_attempt_info(firewall_name, source.address, account_identifier)

    def _from_store(
        self, config: FirewallConfig, client_address: str, account_identifier: Optional[str], tracking: str
    ) -> AttemptInfo:
        window = config.window_seconds

        if tracking == TRACK_BY_ACCOUNT:
            current = self.store.count_by_account(account_identifier, window)
        else:
            current = self.store.count_by_address(client_address, window)

        is_blocked = current >= config.max_attempts
        retry_after = None
        if is_blocked:
            if tracking == TRACK_BY_ACCOUNT:
                attempts = self.store.list_recent("", account_identifier, window)
            else:
                attempts = self.store.list_recent(client_address, None, window)
            if attempts:
                retry_after = attempts[-1].occurred_at + timedelta(seconds=window)

        return AttemptInfo(
            current_attempts=current,
            max_attempts=config.max_attempts,
            remaining_attempts=max(0, config.max_attempts - current),
            is_blocked=is_blocked,
            retry_after=retry_after,
            tracking_type=tracking,
        )
