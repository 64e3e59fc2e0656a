from functools import wraps

import structlog
from flask import g, jsonify, request

from security.exceptions import StorageUnavailable
from security.identity import AttemptSource
from security.throttle import get_login_throttle

logger = structlog.get_logger(__name__)


def throttle_login(firewall_name: str = "main", fail_open: bool = False):
    """
    Usage: @throttle_login("main")

    Consumes one attempt before the view runs. Rejected callers get a 429 with
    Retry-After; accepted ones reach the view with the verdict on g.login_throttle.
    With fail_open=True a storage outage lets the login through instead of erroring.
    """
    def decorator(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            throttle = get_login_throttle()
            if throttle.registry.is_disabled(firewall_name):
                return fn(*args, **kwargs)

            source = AttemptSource.from_request(request)
            try:
                verdict = throttle.consume(firewall_name, source)
            except StorageUnavailable:
                if not fail_open:
                    raise
                logger.warning("login_throttle_failed_open", firewall=firewall_name, client_address=source.address)
                g.login_throttle = None
                return fn(*args, **kwargs)

            g.login_throttle = verdict
            if not verdict.accepted:
                seconds = verdict.retry_after_seconds(throttle.clock())
                resp = jsonify(
                    error="Too many failed login attempts. Try again later.",
                    retry_after_seconds=seconds,
                    limit=verdict.limit,
                )
                resp.headers["Retry-After"] = str(seconds)
                return resp, 429

            return fn(*args, **kwargs)
        return wrapper
    return decorator
