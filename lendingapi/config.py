import os
from dataclasses import dataclass, field
from typing import List

from dotenv import load_dotenv

load_dotenv()


def _env(name: str, default: str) -> str:
    return os.getenv(name, default)


@dataclass
class Settings:
    # Database
    mongodb_url: str = field(
        default_factory=lambda: _env("MONGODB_URL", "mongodb://localhost:27017")
    )
    mongodb_db: str = field(default_factory=lambda: _env("MONGODB_DB", "library_db"))
    # "mongo" or "memory"
    storage_backend: str = field(
        default_factory=lambda: _env("STORAGE_BACKEND", "mongo").lower()
    )

    # Auth
    jwt_secret: str = field(
        default_factory=lambda: _env("JWT_SECRET", "change-me-in-production")
    )
    jwt_algorithm: str = field(default_factory=lambda: _env("JWT_ALGORITHM", "HS256"))
    jwt_expires_minutes: int = field(
        default_factory=lambda: int(_env("JWT_EXPIRES_MINUTES", "60"))
    )
    bcrypt_rounds: int = field(
        default_factory=lambda: int(_env("BCRYPT_ROUNDS", "10"))
    )

    # HTTP
    host: str = field(default_factory=lambda: _env("HOST", "0.0.0.0"))
    port: int = field(default_factory=lambda: int(_env("PORT", "5000")))
    cors_origins: List[str] = field(
        default_factory=lambda: [
            origin.strip()
            for origin in _env("CORS_ORIGINS", "*").split(",")
            if origin.strip()
        ]
    )
    static_dir: str = field(default_factory=lambda: _env("STATIC_DIR", "public"))

    log_level: str = field(default_factory=lambda: _env("LOG_LEVEL", "INFO").upper())


settings = Settings()
