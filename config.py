import os
from typing import Optional

from dotenv import load_dotenv
from pydantic import BaseModel

load_dotenv()


class Settings(BaseModel):
    database_url: str = "mongodb://localhost:27017"
    database_name: str = "shop"
    jwt_secret: str = "devsecret"
    token_expire_days: int = 30
    bcrypt_rounds: int = 10
    port: int = 8000
    admin_email: Optional[str] = None
    admin_password: Optional[str] = None
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "Settings":
        """Read settings once from the process environment (and .env)."""
        env = {
            "database_url": os.getenv("DATABASE_URL"),
            "database_name": os.getenv("DATABASE_NAME"),
            "jwt_secret": os.getenv("JWT_SECRET"),
            "token_expire_days": os.getenv("TOKEN_EXPIRE_DAYS"),
            "bcrypt_rounds": os.getenv("BCRYPT_ROUNDS"),
            "port": os.getenv("PORT"),
            "admin_email": os.getenv("ADMIN_EMAIL"),
            "admin_password": os.getenv("ADMIN_PASSWORD"),
            "log_level": os.getenv("LOG_LEVEL"),
        }
        return cls(**{k: v for k, v in env.items() if v})
