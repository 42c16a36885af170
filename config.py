"""
Runtime settings

Everything is read from the environment (a local .env file is honoured).
"""
import logging
import os
import sys

from dotenv import load_dotenv

load_dotenv()


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    return int(value) if value else default


# Database
DATABASE_URL = os.getenv("DATABASE_URL")
DATABASE_NAME = os.getenv("DATABASE_NAME")
# Multi-document transactions need a replica set
MONGO_TRANSACTIONS = _env_bool("MONGO_TRANSACTIONS", True)

# JWT
SECRET_KEY = os.getenv("JWT_SECRET", "dev-secret-change")
ALGORITHM = "HS256"
ACCESS_TOKEN_EXPIRE_MINUTES = _env_int("ACCESS_TOKEN_EXPIRE_MINUTES", 60)
BCRYPT_ROUNDS = _env_int("BCRYPT_ROUNDS", 12)

# Login lockout
MAX_LOGIN_ATTEMPTS = _env_int("MAX_LOGIN_ATTEMPTS", 5)
TEMPORARY_LOCK_MINUTES = _env_int("TEMPORARY_LOCK_MINUTES", 1)
FAILED_ATTEMPT_RESET_MINUTES = _env_int("FAILED_ATTEMPT_RESET_MINUTES", 30)

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
PORT = _env_int("PORT", 8000)


def setup_logging():
    """Configures the root logger once."""
    root = logging.getLogger()
    if root.handlers:
        root.setLevel(LOG_LEVEL)
        return
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter(
        "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    ))
    root.addHandler(handler)
    root.setLevel(LOG_LEVEL)
