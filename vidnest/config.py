"""
Configuration

Settings are read from environment variables. A local .env file is loaded
first when present, so development setups can keep secrets out of the shell.
"""

import os
import re
import logging
from datetime import timedelta
from typing import List, Optional

from dotenv import load_dotenv

load_dotenv()

logger = logging.getLogger(__name__)

WEAK_SECRET_PATTERNS = [
    "your_super_secret",
    "changeme",
    "secret",
    "password",
    "generate_your_own",
    "123456",
    "min_32_chars",
    "do_not_use_this",
]

MIN_SECRET_LENGTH = 64
MIN_SECRET_UNIQUE_CHARS = 16

_DURATION_RE = re.compile(r"^\s*(\d+)\s*([smhd]?)\s*$")
_DURATION_UNITS = {"": "seconds", "s": "seconds", "m": "minutes", "h": "hours", "d": "days"}


class EnvironmentValidationError(Exception):
    pass


def parse_duration(value: str) -> timedelta:
    """Parse expiry strings such as '15m', '1d' or '3600' into a timedelta."""
    match = _DURATION_RE.match(str(value))
    if not match:
        raise ValueError(f"Invalid duration: {value!r}")
    amount, unit = match.groups()
    return timedelta(**{_DURATION_UNITS[unit]: int(amount)})


def _as_bool(value: Optional[str], default: bool) -> bool:
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


class Settings:
    def __init__(self):
        self.environment = os.getenv("ENVIRONMENT", "development")
        self.port = int(os.getenv("PORT", 8000))
        self.log_level = os.getenv("LOG_LEVEL", "INFO")

        self.database_url = os.getenv("DATABASE_URL", "mongodb://localhost:27017")
        self.database_name = os.getenv("DATABASE_NAME", "VidNest")

        self.cors_origin = os.getenv("CORS_ORIGIN", "*")

        self.access_token_secret = os.getenv("ACCESS_TOKEN_SECRET", "")
        self.refresh_token_secret = os.getenv("REFRESH_TOKEN_SECRET", "")
        self.access_token_expiry = parse_duration(os.getenv("ACCESS_TOKEN_EXPIRY", "1d"))
        self.refresh_token_expiry = parse_duration(os.getenv("REFRESH_TOKEN_EXPIRY", "10d"))
        self.cookie_secure = _as_bool(os.getenv("COOKIE_SECURE"), True)
        self.cookie_samesite = os.getenv("COOKIE_SAMESITE", "lax")

        self.cloudinary_cloud_name = os.getenv("CLOUDINARY_CLOUD_NAME")
        self.cloudinary_api_key = os.getenv("CLOUDINARY_API_KEY")
        self.cloudinary_api_secret = os.getenv("CLOUDINARY_API_SECRET")
        self.storage_dir = os.getenv("STORAGE_DIR", "uploads")
        self.temp_dir = os.getenv("TEMP_DIR", os.path.join("public", "temp"))

        self.rate_limit_enabled = _as_bool(os.getenv("RATE_LIMIT_ENABLED"), True)
        self.rate_limit_storage_uri = os.getenv("RATE_LIMIT_STORAGE_URI", "memory://")

    @property
    def is_production(self) -> bool:
        return self.environment.lower() == "production"

    @property
    def cors_origins(self) -> List[str]:
        return [o.strip() for o in self.cors_origin.split(",") if o.strip()]

    @property
    def cloudinary_enabled(self) -> bool:
        return all([self.cloudinary_cloud_name, self.cloudinary_api_key, self.cloudinary_api_secret])


settings = Settings()


def check_secret(secret: str, name: str) -> List[str]:
    if not secret:
        return [f"{name} is not defined in the environment"]
    problems = []
    if len(secret) < MIN_SECRET_LENGTH:
        problems.append(f"{name} must be at least {MIN_SECRET_LENGTH} characters long")
    lowered = secret.lower()
    for pattern in WEAK_SECRET_PATTERNS:
        if pattern in lowered:
            problems.append(f"{name} contains a weak pattern ({pattern})")
            break
    unique_chars = len(set(secret))
    if unique_chars < MIN_SECRET_UNIQUE_CHARS:
        problems.append(
            f"{name} has insufficient entropy. Unique characters: "
            f"{unique_chars}/{MIN_SECRET_UNIQUE_CHARS} minimum"
        )
    return problems


def validate_environment(config: Optional[Settings] = None) -> List[str]:
    """
    Check the settings needed to run safely.

    Returns the list of problems found. In production any problem raises
    EnvironmentValidationError; elsewhere problems are only logged.
    """
    config = config or settings
    problems = []
    problems += check_secret(config.access_token_secret, "ACCESS_TOKEN_SECRET")
    problems += check_secret(config.refresh_token_secret, "REFRESH_TOKEN_SECRET")

    if not config.database_url.startswith(("mongodb://", "mongodb+srv://")):
        problems.append("DATABASE_URL must start with mongodb:// or mongodb+srv://")

    if config.is_production and "localhost" in config.cors_origin:
        logger.warning("Using a localhost CORS_ORIGIN in production")

    if problems:
        for problem in problems:
            logger.warning("Environment problem: %s", problem)
        if config.is_production:
            raise EnvironmentValidationError("; ".join(problems))
        return problems

    logger.info("Environment configuration validated")
    logger.info("ACCESS_TOKEN_SECRET: %d characters", len(config.access_token_secret))
    logger.info("REFRESH_TOKEN_SECRET: %d characters", len(config.refresh_token_secret))
    logger.info("Database: %s", config.database_url.split("@")[-1])
    logger.info("CORS origin: %s", config.cors_origin)
    return problems
