import os
from enum import Enum
from typing import List, Optional

from pydantic import model_validator
from pydantic_settings import BaseSettings
from dotenv import load_dotenv

# Always load .env from root
BASE_DIR = os.path.dirname(os.path.dirname(os.path.dirname(__file__)))
load_dotenv(os.path.join(BASE_DIR, ".env"))


class PaymentMode(str, Enum):
    LIVE = "live"
    SIMULATED = "simulated"


class Settings(BaseSettings):
    DB_USER: Optional[str] = None
    DB_PASS: Optional[str] = None
    DB_HOST: Optional[str] = None
    DB_PORT: Optional[str] = None
    PAYMENTS_DB_NAME: Optional[str] = None
    # Full URL override, e.g. sqlite:///./payments.db for local runs
    DATABASE_URL: Optional[str] = None

    # Gateway
    PAYMENT_MODE: PaymentMode = PaymentMode.SIMULATED
    PAYSTACK_SECRET_KEY: Optional[str] = None
    PAYSTACK_WEBHOOK_SECRET: Optional[str] = None
    PAYSTACK_BASE_URL: str = "https://api.paystack.co"
    PAYSTACK_TIMEOUT_SECONDS: float = 15.0
    # Developer-only: accept webhooks without a signature check when no secret is set
    ALLOW_UNSIGNED_WEBHOOKS: bool = False

    FRONTEND_URL: str = "http://localhost:8080"
    DEFAULT_CURRENCY: str = "NGN"

    LOG_LEVEL: str = "INFO"
    CORS_ORIGINS: List[str] = [
        "http://localhost:8080",
        "http://127.0.0.1:8003",
    ]

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"

    @model_validator(mode="after")
    def check_payment_mode(self):
        if self.PAYMENT_MODE == PaymentMode.LIVE and not self.PAYSTACK_SECRET_KEY:
            raise ValueError("PAYMENT_MODE=live requires PAYSTACK_SECRET_KEY")
        if self.PAYMENT_MODE == PaymentMode.SIMULATED and self.PAYSTACK_SECRET_KEY:
            raise ValueError(
                "PAYSTACK_SECRET_KEY is set while PAYMENT_MODE=simulated; "
                "set PAYMENT_MODE=live or remove the key")
        return self

    @property
    def database_url(self) -> str:
        if self.DATABASE_URL:
            return self.DATABASE_URL
        if not self.DB_HOST:
            return "sqlite:///./payments.db"
        return (
            f"postgresql+psycopg2://{self.DB_USER}:{self.DB_PASS}@{self.DB_HOST}:{self.DB_PORT}/{self.PAYMENTS_DB_NAME}"
        )


settings = Settings()
