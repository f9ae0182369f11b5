import os
import sys
import logging

from dotenv import load_dotenv
from pydantic import BaseModel, Field

from errors import ConfigurationError


class Settings(BaseModel):
    secret_key: str = Field(..., min_length=1)
    database_url: str = "mongodb://localhost:27017"
    database_name: str = "Ecommerce"
    db_timeout_ms: int = Field(5000, gt=0)
    bcrypt_rounds: int = Field(12, ge=4, le=31)
    log_level: str = "INFO"
    port: int = 8000

    @classmethod
    def from_env(cls, env_file: str = ".env") -> "Settings":
        """Reads settings from the environment after loading ``env_file`` if it exists.

        Variables already set in the process environment win over the file.
        """
        load_dotenv(env_file)
        secret = os.getenv("SECRET_KEY")
        if not secret:
            raise ConfigurationError("SECRET_KEY must be set")
        return cls(
            secret_key=secret,
            database_url=os.getenv("DATABASE_URL", "mongodb://localhost:27017"),
            database_name=os.getenv("DATABASE_NAME", "Ecommerce"),
            db_timeout_ms=int(os.getenv("DB_TIMEOUT_MS", 5000)),
            bcrypt_rounds=int(os.getenv("BCRYPT_ROUNDS", 12)),
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            port=int(os.getenv("PORT", 8000)),
        )


def setup_logging(level: str = "INFO") -> None:
    """Configures the root logger once; repeated calls only adjust the level."""
    root = logging.getLogger()
    root.setLevel(level.upper())
    if root.hasHandlers():
        return
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter(
        "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    ))
    root.addHandler(handler)
