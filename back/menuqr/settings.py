from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


_PROJECT_ROOT = Path(__file__).resolve().parents[2]


class Settings(BaseSettings):
    """
    App configuration.

    This project uses `config.env` (non-dot env file) because some environments
    block creating `.env*` files. If you do have a `.env`, it will also be read.
    """

    model_config = SettingsConfigDict(
        env_file=(
            str(_PROJECT_ROOT / "config.env"),
            str(_PROJECT_ROOT / ".env"),
            "config.env",
            ".env",
        ),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    environment: str = Field(default="development", validation_alias="ENVIRONMENT")

    db_host: str = Field(default="localhost", validation_alias="DB_HOST")
    db_port: int = Field(default=5432, validation_alias="DB_PORT")
    db_user: str = Field(default="menuqr", validation_alias="DB_USER")
    db_password: str = Field(default="menuqr", validation_alias="DB_PASSWORD")
    db_name: str = Field(default="menuqr", validation_alias="DB_NAME")
    # Full URL wins over the DB_* parts (e.g. sqlite:///./menuqr.db for local runs)
    database_url_override: str | None = Field(default=None, validation_alias="DATABASE_URL")

    secret_key: str = Field(default="CHANGE_THIS_IN_PRODUCTION", validation_alias="SECRET_KEY")
    algorithm: str = Field(default="HS256", validation_alias="ALGORITHM")
    access_token_expire_minutes: int = Field(default=24 * 60, validation_alias="ACCESS_TOKEN_EXPIRE_MINUTES")

    stripe_secret_key: str = Field(default="", validation_alias="STRIPE_SECRET_KEY")
    stripe_webhook_secret: str = Field(default="", validation_alias="STRIPE_WEBHOOK_SECRET")
    # When empty, a product/price pair is created in Stripe on each new subscription
    stripe_price_id: str = Field(default="", validation_alias="STRIPE_PRICE_ID")
    stripe_currency: str = Field(default="brl", validation_alias="STRIPE_CURRENCY")
    premium_price_cents: int = Field(default=2490, validation_alias="PREMIUM_PRICE_CENTS")
    premium_product_name: str = Field(default="MenuQR Premium", validation_alias="PREMIUM_PRODUCT_NAME")
    # Pinned because the client secret is read from latest_invoice.payment_intent
    stripe_api_version: str = Field(default="2024-06-20", validation_alias="STRIPE_API_VERSION")

    free_plan_product_limit: int = Field(default=5, validation_alias="FREE_PLAN_PRODUCT_LIMIT")

    uploads_dir: Path = Field(default=_PROJECT_ROOT / "uploads", validation_alias="UPLOADS_DIR")
    max_upload_mb: int = Field(default=50, validation_alias="MAX_UPLOAD_MB")

    # Origin embedded in QR codes; falls back to the request's scheme and host
    public_base_url: str = Field(default="", validation_alias="PUBLIC_BASE_URL")

    cors_origins: str = Field(
        default="http://localhost:5173",
        validation_alias="CORS_ORIGINS"
    )

    @property
    def is_production(self) -> bool:
        return self.environment.lower() == "production"

    @property
    def database_url(self) -> str:
        if self.database_url_override:
            return self.database_url_override
        # SQLModel uses SQLAlchemy under the hood; this uses the psycopg driver (v3).
        return (
            f"postgresql+psycopg://{self.db_user}:{self.db_password}"
            f"@{self.db_host}:{self.db_port}/{self.db_name}"
        )


settings = Settings()
