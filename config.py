import os
from dotenv import load_dotenv

# -------------------------------------------------
# LOAD ENVIRONMENT VARIABLES
# -------------------------------------------------
load_dotenv()


def _database_url():
    url = os.getenv("DATABASE_URL")
    if url:
        return url

    # fallback for local development
    db_user = os.getenv("DB_USER", "postgres")
    db_password = os.getenv("DB_PASSWORD", "")
    db_host = os.getenv("DB_HOST", "localhost")
    db_port = os.getenv("DB_PORT", "5432")
    db_name = os.getenv("DB_NAME", "klasquiz_db")
    return f"postgresql://{db_user}:{db_password}@{db_host}:{db_port}/{db_name}"


def _origins(raw):
    # comma-separated in FRONTEND_URL, duplicates removed preserving order
    origins = [url.strip() for url in raw.split(",") if url.strip()]
    origins += ["http://localhost:5500", "http://127.0.0.1:5500"]
    seen = set()
    return [x for x in origins if not (x in seen or seen.add(x))]


class Config:
    DATABASE_URL = _database_url()
    JWT_SECRET = os.getenv("JWT_SECRET", "devsecret")
    JWT_ALGORITHM = "HS256"
    ALLOWED_ORIGINS = _origins(os.getenv("FRONTEND_URL", "http://127.0.0.1:5500"))
    PORT = int(os.getenv("PORT", 5000))
    FLASK_ENV = os.getenv("FLASK_ENV", "development")
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

    # live session tuning
    PRESENCE_TIMEOUT_SECONDS = int(os.getenv("PRESENCE_TIMEOUT_SECONDS", 120))
    STREAM_KEEPALIVE_SECONDS = float(os.getenv("STREAM_KEEPALIVE_SECONDS", 15))
    STREAM_QUEUE_SIZE = int(os.getenv("STREAM_QUEUE_SIZE", 100))
    RECENT_ANSWERS_LIMIT = int(os.getenv("RECENT_ANSWERS_LIMIT", 50))

    # shared secret for /notify-session-update, disabled when unset
    UPDATE_SECRET = os.getenv("UPDATE_SECRET") or None
