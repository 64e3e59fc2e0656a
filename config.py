import os

BASE_DIR = os.path.abspath(os.path.dirname(__file__))


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() == "true"


class Config:
    # SQLite database file stored next to the app as login_throttle.db
    SQLALCHEMY_DATABASE_URI = os.getenv(
        "DATABASE_URL",
        "sqlite:///" + os.path.join(BASE_DIR, "login_throttle.db")
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Logging
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
    LOG_FORMAT = os.getenv("LOG_FORMAT", "console")  # "json" in production

    # Number of reverse proxies in front of the app. 0 means X-Forwarded-For is ignored
    # and the socket address is the client.
    PROXY_FIX_X_FOR = int(os.getenv("PROXY_FIX_X_FOR", "0"))

    # Brute-force protection (single firewall shape).
    # For several firewalls replace with {"firewalls": {"main": {...}, "api": {...}}}
    LOGIN_THROTTLE = {
        "enabled": _env_bool("LOGIN_THROTTLE_ENABLED", "true"),
        "firewall": os.getenv("LOGIN_THROTTLE_FIREWALL", "main"),
        "max_count_attempts": int(os.getenv("LOGIN_THROTTLE_MAX_ATTEMPTS", "3")),
        "timeout": int(os.getenv("LOGIN_THROTTLE_TIMEOUT", "600")),            # 10 minutes
        "watch_period": int(os.getenv("LOGIN_THROTTLE_WATCH_PERIOD", "3600")),  # 1 hour retention
        "storage": os.getenv("LOGIN_THROTTLE_STORAGE", "database"),
    }

    DEBUG = False
