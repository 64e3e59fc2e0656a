class LoginThrottleError(Exception):
    """Base class for login throttle errors."""


class StorageUnavailable(LoginThrottleError):
    """The attempt log could not be read or written.

    Raised from the underlying SQLAlchemy error. The engine never retries and
    never decides fail-open vs fail-closed; that is up to the caller.
    """


class InvalidPolicy(LoginThrottleError, ValueError):
    """A firewall was configured with values that can never be enforced."""


class ConfigurationMissing(LoginThrottleError, LookupError):
    def __init__(self, firewall_name: str):
        super().__init__(f"No login throttle configured for firewall '{firewall_name}'")
        self.firewall_name = firewall_name
