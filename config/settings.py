"""App settings: loaded from environment."""
from __future__ import annotations

import os
from dotenv import load_dotenv

load_dotenv()


class Settings:
    # API
    API_HOST = os.getenv("API_HOST", "0.0.0.0")
    API_PORT = int(os.getenv("API_PORT", "8000"))

    # Durable store (SQLite for dev, PostgreSQL in prod)
    DATABASE_URL = os.getenv("DATABASE_URL", "sqlite+aiosqlite:///safereport.db")

    # Backend selection: "auto" probes the durable store on every request,
    # "durable" / "memory" pin one backend.
    STORE_BACKEND = os.getenv("STORE_BACKEND", "auto")
    STORE_PROBE_TIMEOUT_SECONDS = float(os.getenv("STORE_PROBE_TIMEOUT_SECONDS", "2.0"))

    # Seed the campus-provided privileged accounts into the durable store on startup
    SEED_PRIVILEGED_ACCOUNTS = os.getenv("SEED_PRIVILEGED_ACCOUNTS", "true").lower() == "true"

    # Auth (tokens are issued by the campus identity provider; we only verify them)
    JWT_SECRET = os.getenv("JWT_SECRET", "safereport-dev-secret-change-in-prod")
    ACCESS_TOKEN_TTL_SECONDS = int(os.getenv("ACCESS_TOKEN_TTL_SECONDS", str(3600 * 24)))

    # CORS origins (comma-separated, or * for dev)
    CORS_ORIGINS = [
        o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",")
    ]

    # Observability
    SENTRY_DSN = os.getenv("SENTRY_DSN", "")
    SENTRY_ENVIRONMENT = os.getenv("SENTRY_ENVIRONMENT", "development")
    SENTRY_TRACES_SAMPLE_RATE = float(os.getenv("SENTRY_TRACES_SAMPLE_RATE", "0.1"))

    # Logging
    LOG_FORMAT = os.getenv("LOG_FORMAT", "text")  # "text" or "json"
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")


settings = Settings()
