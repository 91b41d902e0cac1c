import os
from dotenv import load_dotenv

load_dotenv()


class Config:
    """Runtime settings read from the environment (.env supported)."""

    # MongoDB
    MONGODB_URL: str = os.getenv("MONGODB_URL", "mongodb://localhost:27017")
    DATABASE_NAME: str = os.getenv("DATABASE_NAME", "survey_insights")

    # HTTP
    API_TITLE: str = os.getenv("API_TITLE", "Survey Insights API")
    CORS_ORIGINS: list = os.getenv("CORS_ORIGINS", "http://localhost:3000").split(",")

    # Logging
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()
    LOG_DIR: str = os.getenv("LOG_DIR", "logs")
