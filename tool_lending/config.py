import logging
import os

from dotenv import load_dotenv


load_dotenv()


def _int_env(name: str, default: int) -> int:
    raw = (os.environ.get(name) or "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise RuntimeError(f"Environment variable {name} must be an integer, got {raw!r}") from exc


def _bool_env(name: str, default: bool) -> bool:
    raw = (os.environ.get(name) or "").strip().lower()
    if not raw:
        return default
    return raw in {"1", "true", "yes", "on"}


def _parse_csv_env(name: str, default: str) -> list[str]:
    raw = os.environ.get(name, default)
    return [item.strip() for item in str(raw).split(",") if item.strip()]


LOG_LEVEL = (os.environ.get("LOG_LEVEL") or "INFO").strip().upper()

CORS_ALLOW_ORIGINS = _parse_csv_env(
    "CORS_ALLOW_ORIGINS",
    "http://127.0.0.1,http://localhost,http://127.0.0.1:5173,http://localhost:5173",
)
CORS_ALLOW_CREDENTIALS = _bool_env("CORS_ALLOW_CREDENTIALS", True)
if "*" in CORS_ALLOW_ORIGINS:
    # Browsers reject wildcard origins with credentials.
    CORS_ALLOW_CREDENTIALS = False

OVERDUE_RECONCILE_INTERVAL_SECONDS = _int_env("OVERDUE_RECONCILE_INTERVAL_SECONDS", 3600)
MAINTENANCE_DUE_SOON_DAYS = _int_env("MAINTENANCE_DUE_SOON_DAYS", 14)
MEMBERSHIP_EXPIRING_DAYS = _int_env("MEMBERSHIP_EXPIRING_DAYS", 30)
DEFAULT_MEMBERSHIP_MONTHS = _int_env("DEFAULT_MEMBERSHIP_MONTHS", 12)
REQUIRE_FRIDAY_DATES = _bool_env("REQUIRE_FRIDAY_DATES", False)


def configure_logging(level: str | None = None) -> None:
    logging.basicConfig(
        level=(level or LOG_LEVEL),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
