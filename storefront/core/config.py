from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import field_validator

class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    ENV: str = "local"
    APP_NAME: str = "Vego Rentals Storefront"
    # Comma-separated origins for CORS (e.g. https://vegobike.in,https://www.vegobike.in). If empty, uses localhost defaults.
    CORS_ORIGINS: str = ""
    LOG_LEVEL: str = "INFO"

    # Local store for the handoff slot, payment attempts and audit log
    DATABASE_URL: str = "sqlite:///./storefront.db"

    @field_validator("DATABASE_URL", mode="after")
    @classmethod
    def normalize_database_url(cls, v: str) -> str:
        """Render and others give postgres://; SQLAlchemy expects postgresql+psycopg2://."""
        if v and v.startswith("postgres://"):
            return "postgresql+psycopg2://" + v[11:]
        return v

    # Rental backend (system of record for bookings)
    RENTAL_API_BASE_URL: str = "http://localhost:8081"
    RENTAL_API_TIMEOUT: int = 30

    # Pricing
    GST_RATE: float = 0.05
    DEFAULT_DEPOSIT: float = 2000
    LONG_RENTAL_MIN_DAYS: int = 7
    LONG_RENTAL_DISCOUNT_RATE: float = 0.05
    MIN_RENTAL_HOURS: float = 1
    MAX_RENTAL_HOURS: float = 720  # 30 days

    # Coupon table: value < 1 is a fraction of subtotal, otherwise a flat amount.
    # Override with a JSON object, e.g. COUPONS='{"OFF10": 0.1, "FIRST50": 50}'
    COUPONS: dict[str, float] = {"OFF10": 0.1, "SAVE20": 0.2, "FIRST50": 50}

    # Payment gateway widget (opened by the browser with the order handle)
    GATEWAY_KEY_ID: str = ""
    GATEWAY_CURRENCY: str = "INR"
    GATEWAY_MERCHANT_NAME: str = "Vego Rentals"


settings = Settings()
