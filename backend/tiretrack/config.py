from __future__ import annotations
import os


DEFAULT_TIRE_SIZES = "295/80R22.5,315/80R22.5,12R22.5,11R22.5,385/65R22.5"
DEFAULT_MIGRATIONS_DIR = os.path.join(os.path.dirname(os.path.dirname(os.path.abspath(__file__))), "migrations")


def _csv_env(name: str, default: str) -> list[str]:
    raw = os.environ.get(name, default)
    return [part.strip() for part in raw.split(",") if part.strip()]


class Config:
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored next to the instance folder unless DATABASE_URL is set
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",
        "sqlite:///tiretrack.sqlite3",
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Alembic scripts for `flask db upgrade`
    MIGRATIONS_DIR = os.environ.get("MIGRATIONS_DIR", DEFAULT_MIGRATIONS_DIR)

    # Accepted tire sizes for purchase lines; an empty list disables the check
    TIRE_SIZES = _csv_env("TIRE_SIZES", DEFAULT_TIRE_SIZES)

    CURRENCY = os.environ.get("CURRENCY", "USD")

    # Chart-of-accounts codes used by the posting engine
    INVENTORY_ACCOUNT_CODE = os.environ.get("INVENTORY_ACCOUNT_CODE", "1200")
    ACCOUNTS_PAYABLE_ACCOUNT_CODE = os.environ.get("ACCOUNTS_PAYABLE_ACCOUNT_CODE", "2000")
    CASH_ACCOUNT_CODE = os.environ.get("CASH_ACCOUNT_CODE", "1000")

    # Retry policy for composite write transactions
    TRANSACTION_RETRY_ATTEMPTS = int(os.environ.get("TRANSACTION_RETRY_ATTEMPTS", "3"))
    TRANSACTION_RETRY_BACKOFF = float(os.environ.get("TRANSACTION_RETRY_BACKOFF", "0.1"))

    MOVEMENT_HISTORY_BATCH_SIZE = int(os.environ.get("MOVEMENT_HISTORY_BATCH_SIZE", "200"))

    # Optional callable user_id -> Actor | None; defaults to the users table
    ACTOR_RESOLVER = None
