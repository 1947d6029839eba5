# backend/posledger/config.py
from __future__ import annotations
import os


def _env_bool(name: str, default: bool) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # Remote (primary) durable store
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///posledger.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Local fallback cache used once the remote store is unreachable.
    # Registered as a Flask-SQLAlchemy bind so Flask-Migrate sees the URL too.
    LOCAL_CACHE_URL = os.environ.get("LOCAL_CACHE_URL", "sqlite:///posledger-local.sqlite3")
    LOCAL_CACHE_WRITE_THROUGH = _env_bool("LOCAL_CACHE_WRITE_THROUGH", True)

    STORE_RETRY_ATTEMPTS = int(os.environ.get("STORE_RETRY_ATTEMPTS", "3"))
    STORE_RETRY_BACKOFF = float(os.environ.get("STORE_RETRY_BACKOFF", "0.05"))

    # Peer channel (disabled when no relay URL is configured)
    PEER_RELAY_URL = os.environ.get("PEER_RELAY_URL") or None
    PEER_RECONNECT_BASE_DELAY = float(os.environ.get("PEER_RECONNECT_BASE_DELAY", "1.0"))
    PEER_MAX_RECONNECT_ATTEMPTS = int(os.environ.get("PEER_MAX_RECONNECT_ATTEMPTS", "5"))
    PEER_POLL_TIMEOUT = float(os.environ.get("PEER_POLL_TIMEOUT", "25"))

    RELAY_BUFFER_SIZE = int(os.environ.get("RELAY_BUFFER_SIZE", "1000"))
    # Peers silent for this long are dropped from the relay (keep above the poll timeout)
    RELAY_PEER_TTL = float(os.environ.get("RELAY_PEER_TTL", "90"))

    # Initialize the gateway (schema + remote probe) while building the app
    LEDGER_AUTO_INITIALIZE = _env_bool("LEDGER_AUTO_INITIALIZE", True)

    # Actor id stamped on events published by this terminal
    TERMINAL_ID = os.environ.get("TERMINAL_ID", "terminal")
    TERMINAL_NAME = os.environ.get("TERMINAL_NAME") or None
