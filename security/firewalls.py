import hashlib
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Set, Tuple

import structlog

from security.attempt_store import AttemptStore
from security.exceptions import ConfigurationMissing, InvalidPolicy
from security.identity import DEFAULT_IDENTIFIER_FIELDS
from security.rate_limiter import CacheRateLimiter, DatabaseRateLimiter, Limiter, StorageKind
from utils.intervals import interval_to_seconds, seconds_to_interval

logger = structlog.get_logger(__name__)

DEFAULT_FIREWALL = "main"
DEFAULT_MAX_ATTEMPTS = 3
DEFAULT_TIMEOUT_SECONDS = 600
DEFAULT_WATCH_PERIOD_SECONDS = 3600
DEFAULT_STORAGE = StorageKind.CACHE


@dataclass(frozen=True)
class FirewallConfig:
    name: str
    max_attempts: int = DEFAULT_MAX_ATTEMPTS
    window_seconds: int = DEFAULT_TIMEOUT_SECONDS
    watch_period_seconds: int = DEFAULT_WATCH_PERIOD_SECONDS
    storage: StorageKind = DEFAULT_STORAGE
    limiter_id: Optional[str] = None
    identifier_fields: Tuple[str, ...] = DEFAULT_IDENTIFIER_FIELDS
    enabled: bool = True

    @property
    def interval(self) -> str:
        return seconds_to_interval(self.window_seconds)

    @property
    def limiter_key(self) -> str:
        return f"db-{self.max_attempts}-{self.window_seconds}-{self.watch_period_seconds}"

    @classmethod
    def from_mapping(cls, name: str, raw: Mapping[str, Any]) -> "FirewallConfig":
        """
        Build and validate one zone from the bundle-style keys:
        max_count_attempts, timeout (or interval), watch_period, storage,
        rate_limiter, identifier_fields, enabled.
        """
        if "timeout" in raw:
            timeout = raw["timeout"]
        elif "interval" in raw:
            try:
                timeout = interval_to_seconds(raw["interval"])
            except ValueError as exc:
                raise InvalidPolicy(f"[{name}] {exc}") from exc
        else:
            timeout = DEFAULT_TIMEOUT_SECONDS

        try:
            storage = StorageKind(raw.get("storage", DEFAULT_STORAGE))
        except ValueError as exc:
            raise InvalidPolicy(f"[{name}] storage must be 'cache' or 'database'") from exc

        max_attempts = _positive_int(name, "max_count_attempts", raw.get("max_count_attempts", DEFAULT_MAX_ATTEMPTS))
        window = _positive_int(name, "timeout", timeout)
        watch = _positive_int(name, "watch_period", raw.get("watch_period", DEFAULT_WATCH_PERIOD_SECONDS))

        fields = tuple(raw.get("identifier_fields") or DEFAULT_IDENTIFIER_FIELDS)
        if not all(isinstance(f, str) and f for f in fields):
            raise InvalidPolicy(f"[{name}] identifier_fields must be non-empty strings")

        return cls(
            name=name,
            max_attempts=max_attempts,
            window_seconds=window,
            watch_period_seconds=watch,
            storage=storage,
            limiter_id=raw.get("rate_limiter") or None,
            identifier_fields=fields,
            enabled=bool(raw.get("enabled", True)),
        )


def _positive_int(firewall: str, key: str, value: Any) -> int:
    # bool is an int subclass, "True" attempts would be nonsense
    if isinstance(value, bool):
        raise InvalidPolicy(f"[{firewall}] {key} must be an integer, got {value!r}")
    if isinstance(value, float) and not value.is_integer():
        raise InvalidPolicy(f"[{firewall}] {key} must be a whole number, got {value!r}")
    try:
        number = int(value)
    except (TypeError, ValueError) as exc:
        raise InvalidPolicy(f"[{firewall}] {key} must be an integer, got {value!r}") from exc
    if number < 1:
        raise InvalidPolicy(f"[{firewall}] {key} must be at least 1, got {number}")
    return number


def _policy(config: FirewallConfig) -> Tuple[int, int, int, StorageKind]:
    return config.max_attempts, config.window_seconds, config.watch_period_seconds, config.storage


def shared_limiter_id(config: FirewallConfig) -> str:
    digest = hashlib.md5(config.limiter_key.encode("utf-8")).hexdigest()
    return f"database_rate_limiter.shared_{digest}"


class FirewallRegistry:
    """
    Firewall name -> config, plus the limiter each firewall consumes from.

    Built once at startup. Durable zones with the same
    (max attempts, window, watch period) and no explicit rate_limiter id share
    one limiter; an explicit id is shared by every zone that names it, and those
    zones must agree on the policy.
    """

    def __init__(
        self,
        configs: Sequence[FirewallConfig],
        store: Optional[AttemptStore] = None,
        clock: Optional[Callable[[], datetime]] = None,
        single_zone: bool = False,
    ):
        self.store = store
        self.clock = clock
        self.single_zone = single_zone
        self._configs: Dict[str, FirewallConfig] = {}
        self._limiter_ids: Dict[str, str] = {}
        self._limiters: Dict[str, Limiter] = {}
        self._limiter_owners: Dict[str, FirewallConfig] = {}
        self._disabled: Set[str] = set()

        for config in configs:
            if not config.enabled:
                self._disabled.add(config.name)
                logger.info("firewall_disabled", firewall=config.name)
                continue
            if config.name in self._configs:
                raise InvalidPolicy(f"Firewall '{config.name}' configured twice")
            self._register(config)

    @classmethod
    def from_config(
        cls,
        settings: Optional[Mapping[str, Any]],
        store: Optional[AttemptStore] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> "FirewallRegistry":
        settings = settings or {}
        firewalls = settings.get("firewalls")

        if firewalls:
            if not isinstance(firewalls, Mapping):
                raise InvalidPolicy("'firewalls' must map firewall names to settings")
            configs = [FirewallConfig.from_mapping(name, raw or {}) for name, raw in firewalls.items()]
            return cls(configs, store=store, clock=clock)

        # legacy single firewall shape
        name = settings.get("firewall", DEFAULT_FIREWALL)
        return cls([FirewallConfig.from_mapping(name, settings)], store=store, clock=clock, single_zone=True)

    def _register(self, config: FirewallConfig) -> None:
        if config.limiter_id:
            limiter_id = config.limiter_id
        elif config.storage is StorageKind.DATABASE:
            limiter_id = shared_limiter_id(config)
        else:
            limiter_id = f"cache_rate_limiter.{config.name}"

        owner = self._limiter_owners.get(limiter_id)
        if owner is None:
            self._limiters[limiter_id] = self._build_limiter(config)
            self._limiter_owners[limiter_id] = config
        elif _policy(owner) != _policy(config):
            # zones sharing a limiter share its policy
            raise InvalidPolicy(
                f"[{config.name}] rate_limiter '{limiter_id}' is already used by '{owner.name}' "
                "with a different max_count_attempts, timeout, watch_period or storage"
            )

        self._configs[config.name] = config
        self._limiter_ids[config.name] = limiter_id
        logger.debug(
            "firewall_registered",
            firewall=config.name,
            storage=config.storage.value,
            limiter=limiter_id,
            max_attempts=config.max_attempts,
            interval=config.interval,
        )

    def _build_limiter(self, config: FirewallConfig) -> Limiter:
        if config.storage is StorageKind.DATABASE:
            if self.store is None:
                raise InvalidPolicy(f"[{config.name}] database storage needs an attempt store")
            return DatabaseRateLimiter(
                self.store,
                config.max_attempts,
                config.window_seconds,
                config.watch_period_seconds,
                identifier_fields=config.identifier_fields,
                clock=self.clock,
            )
        return CacheRateLimiter(
            config.max_attempts,
            config.window_seconds,
            identifier_fields=config.identifier_fields,
            clock=self.clock,
        )

    def resolve(self, firewall_name: str) -> Optional[FirewallConfig]:
        return self._configs.get(firewall_name)

    def require(self, firewall_name: str) -> FirewallConfig:
        config = self.resolve(firewall_name)
        if config is None:
            raise ConfigurationMissing(firewall_name)
        return config

    def limiter_for(self, firewall_name: str) -> Optional[Limiter]:
        limiter_id = self._limiter_ids.get(firewall_name)
        return self._limiters.get(limiter_id) if limiter_id else None

    def limiter_id_for(self, firewall_name: str) -> Optional[str]:
        return self._limiter_ids.get(firewall_name)

    def names(self) -> List[str]:
        return list(self._configs)

    def configs(self) -> List[FirewallConfig]:
        return list(self._configs.values())

    def limiters(self) -> Dict[str, Limiter]:
        return dict(self._limiters)

    def max_watch_period(self) -> Optional[int]:
        periods = [c.watch_period_seconds for c in self._configs.values() if c.storage is StorageKind.DATABASE]
        return max(periods) if periods else None

    def is_disabled(self, firewall_name: str) -> bool:
        return firewall_name in self._disabled
