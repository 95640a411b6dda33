import os
import logging
from pydantic import BaseModel, Field
from typing import List
from dotenv import load_dotenv

load_dotenv()

class ReviewServiceSettings(BaseModel):
    base_url: str = Field(default=os.getenv("REVIEW_SERVICE_URL", "http://localhost:8000/api"))
    timeout_seconds: float = Field(default=float(os.getenv("REVIEW_SERVICE_TIMEOUT", "30")))

class Config(BaseModel):
    app_name: str = "KPI Review Portal"
    environment: str = os.getenv("APP_ENV", "development")
    api_prefix: str = "/api"

    # Database
    database_url: str = os.getenv("DATABASE_URL", "sqlite:///./kpi_portal.db")

    version: str = "1.0.0"
    build_id: str = os.getenv("BUILD_ID", "local")
    request_id_header: str = "X-Request-ID"

    # CORS: comma-separated origins loaded from env.
    cors_origins: List[str] = Field(
        default_factory=lambda: [
            o.strip()
            for o in os.getenv(
                "CORS_ORIGINS",
                "http://localhost:3000,http://localhost:5173,"
                "http://127.0.0.1:3000,http://127.0.0.1:5173",
            ).split(",")
            if o.strip()
        ]
    )

    # Remote review service (used by the async client)
    review_service: ReviewServiceSettings = ReviewServiceSettings()

    # Review rules
    min_accomplishments: int = int(os.getenv("MIN_ACCOMPLISHMENTS", "2"))
    draft_dir: str = os.getenv("DRAFT_DIR", ".drafts")
    seed_rating_options: bool = os.getenv("SEED_RATING_OPTIONS", "true").lower() == "true"

settings = Config()

_logger = logging.getLogger(__name__)
if settings.min_accomplishments < 0:
    raise RuntimeError(
        f"FATAL: MIN_ACCOMPLISHMENTS must be zero or positive, got {settings.min_accomplishments}."
    )
if settings.environment != "development" and settings.database_url.startswith("sqlite:///./"):
    _logger.warning("Using a local SQLite file outside development.")
