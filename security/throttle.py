from datetime import datetime
from typing import Callable, Optional

import structlog
from flask import current_app

from models.login_attempt import utcnow
from security.attempt_store import AttemptStore
from security.exceptions import ConfigurationMissing
from security.firewalls import FirewallRegistry
from security.identity import AttemptSource
from security.rate_limiter import RateLimit
from security.throttle_info import AttemptInfo, ThrottleInfoResolver

logger = structlog.get_logger(__name__)

EXTENSION_KEY = "login_throttle"


class LoginThrottle:
    """
    Flask extension that builds the store, registry and info resolver once
    from app.config["LOGIN_THROTTLE"].

    Usage:
        throttle = LoginThrottle(app)
        verdict = throttle.consume("main", AttemptSource.from_request(request))
    """

    def __init__(self, app=None, store: Optional[AttemptStore] = None, clock: Optional[Callable[[], datetime]] = None):
        self.clock = clock or utcnow
        self.store = store or AttemptStore(clock=self.clock)
        self.registry: Optional[FirewallRegistry] = None
        self.info: Optional[ThrottleInfoResolver] = None
        if app is not None:
            self.init_app(app)

    def init_app(self, app):
        # InvalidPolicy surfaces here, at startup, never per request
        self.registry = FirewallRegistry.from_config(
            app.config.get("LOGIN_THROTTLE"), store=self.store, clock=self.clock
        )
        self.info = ThrottleInfoResolver(self.registry, self.store)
        app.extensions[EXTENSION_KEY] = self
        logger.info("login_throttle_ready", firewalls=self.registry.names())

    def consume(self, firewall_name: str, source: AttemptSource) -> RateLimit:
        limiter = self.registry.limiter_for(firewall_name)
        if limiter is None:
            raise ConfigurationMissing(firewall_name)
        return limiter.consume(source)

    def reset(self, firewall_name: str, source: AttemptSource) -> None:
        limiter = self.registry.limiter_for(firewall_name)
        if limiter is None:
            raise ConfigurationMissing(firewall_name)
        limiter.reset(source)

    def attempt_info(self, firewall_name: str, client_address: str, account_identifier: Optional[str] = None) -> AttemptInfo:
        return self.info.get_attempt_info(firewall_name, client_address, account_identifier)

    def cleanup(self, watch_period_seconds: Optional[int] = None) -> int:
        """
        Purge the attempt log. Defaults to the longest watch period of any
        database-backed firewall so no firewall loses history it still needs.
        """
        if watch_period_seconds is None:
            watch_period_seconds = self.registry.max_watch_period()
        if watch_period_seconds is None:
            return 0
        return self.store.cleanup(watch_period_seconds)


def get_login_throttle() -> LoginThrottle:
    return current_app.extensions[EXTENSION_KEY]
