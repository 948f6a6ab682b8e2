import os

from dotenv import load_dotenv

load_dotenv()


def _flag(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


DATABASE_URL = os.getenv("DATABASE_URL", "").strip()
DATABASE_NAME = os.getenv("DATABASE_NAME", "").strip()

CORS_ORIGINS = [
    x.strip()
    for x in os.getenv("CORS_ORIGINS", "*").split(",")
    if x.strip()
]

# Dashboard and current-month revenue are refreshed on every authenticated request
RECOMPUTE_ON_REQUEST = _flag("RECOMPUTE_ON_REQUEST", "true")

CASCADE_MAX_WORKERS = int(os.getenv("CASCADE_MAX_WORKERS", "4"))
UPCOMING_WINDOW_DAYS = int(os.getenv("UPCOMING_WINDOW_DAYS", "30"))

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").strip().upper()
PORT = int(os.getenv("PORT", "8000"))
