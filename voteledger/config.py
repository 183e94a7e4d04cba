"""
Service configuration — read once from the environment at import time.

Environment variables:
    LEDGER_STORE       Snapshot backend: file | postgres | memory (default: file)
    DATA_FILE          Path of the JSON snapshot for the file backend
    DB_HOST            PostgreSQL host           (default: postgres)
    DB_PORT            PostgreSQL port           (default: 5432)
    DB_NAME            PostgreSQL database       (default: voting_db)
    DB_USER            PostgreSQL user           (default: voting_user)
    DB_PASSWORD        PostgreSQL password       (default: voting_pass)
    ADMIN_KEY          Plain admin key, hashed at startup when no hash is given
    ADMIN_KEY_HASH     passlib hash of the admin key (preferred over ADMIN_KEY)
    ADMIN_ADDRESSES    Comma-separated wallets allowed to create elections and
                       candidates. Empty means no gating.
    GOOGLE_SHEET_ID    Spreadsheet used for off-box backup (empty disables sync)
    GOOGLE_CREDENTIALS Path to the service-account JSON key
    CORS_ORIGINS       Comma-separated allowed origins (default: *)
    HOST / PORT        Bind address for `python -m voteledger`
    LOG_LEVEL          Root log level (default: INFO)
"""
import os


def _csv_list(raw: str) -> list[str]:
    return [item.strip() for item in raw.split(",") if item.strip()]


SERVICE_NAME = "ledger"

# ── Persistence ──────────────────────────────────────────────────────────────
LEDGER_STORE = os.getenv("LEDGER_STORE", "file").strip().lower()
DATA_FILE = os.getenv("DATA_FILE", os.path.join("data", "database.json"))

DB_HOST = os.getenv("DB_HOST", "postgres")
DB_PORT = int(os.getenv("DB_PORT", "5432").strip() or "5432")
DB_NAME = os.getenv("DB_NAME", "voting_db")
DB_USER = os.getenv("DB_USER", "voting_user")
DB_PASSWORD = os.getenv("DB_PASSWORD", "voting_pass")

# ── Admin ────────────────────────────────────────────────────────────────────
ADMIN_KEY = os.getenv("ADMIN_KEY", "change-me-in-production")
ADMIN_KEY_HASH = os.getenv("ADMIN_KEY_HASH", "")
ADMIN_ADDRESSES = [a.lower() for a in _csv_list(os.getenv("ADMIN_ADDRESSES", ""))]

# ── Spreadsheet sync ─────────────────────────────────────────────────────────
GOOGLE_SHEET_ID = os.getenv("GOOGLE_SHEET_ID", "")
GOOGLE_CREDENTIALS = os.getenv(
    "GOOGLE_CREDENTIALS", os.path.join("google", "service-account.json")
)

# ── HTTP ─────────────────────────────────────────────────────────────────────
CORS_ORIGINS = _csv_list(os.getenv("CORS_ORIGINS", "*"))
HOST = os.getenv("HOST", "0.0.0.0")
PORT = int(os.getenv("PORT", "3002").strip() or "3002")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
