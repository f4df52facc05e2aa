from functools import lru_cache
from pathlib import Path
from dotenv import load_dotenv
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field, AliasChoices

ROOT = Path(__file__).resolve().parents[2]
load_dotenv(ROOT / ".env", override=False)


class Settings(BaseSettings):
    environment: str = Field("development", validation_alias=AliasChoices("APP_ENV", "NODE_ENV"))
    port: int = Field(3001, validation_alias="PORT")

    # ───────────────── Firebase / Firestore / Storage ───────────────
    firebase_project_id: str | None = Field(
        None,
        validation_alias=AliasChoices(
            "FIREBASE_PROJECT_ID",
            "GCP_PROJECT_ID",
            "GOOGLE_CLOUD_PROJECT",
        ),
    )
    storage_bucket: str | None = Field(
        None,
        validation_alias=AliasChoices("FIREBASE_STORAGE_BUCKET", "GCS_BUCKET"),
    )
    credentials_path: str | None = Field(
        None,
        validation_alias=AliasChoices("GOOGLE_APPLICATION_CREDENTIALS", "FIREBASE_CREDENTIALS"),
    )

    # ───────────────── Stripe ───────────────────────
    stripe_secret_key: str | None = Field(None, validation_alias="STRIPE_SECRET_KEY")
    stripe_webhook_secret: str | None = Field(None, validation_alias="STRIPE_WEBHOOK_SECRET")
    stripe_currency: str = Field("jpy", validation_alias="STRIPE_CURRENCY")

    frontend_url: str = Field(
        "http://localhost:3000",
        validation_alias=AliasChoices("FRONTEND_URL", "UI_ORIGIN"),
    )
    # comma separated
    cors_origins: str = Field("http://localhost:3000", validation_alias="CORS_ORIGINS")
    # per client IP, in slowapi limit syntax
    rate_limit: str = Field("100/15minutes", validation_alias="RATE_LIMIT")

    # ───────────────── Mock marketplace submission ──────
    submission_step_delay_s: float = Field(0.5, validation_alias="SUBMISSION_STEP_DELAY_S")
    submission_final_delay_s: float = Field(2.0, validation_alias="SUBMISSION_FINAL_DELAY_S")
    line_creators_username: str | None = Field(None, validation_alias="LINE_CREATORS_USERNAME")
    line_creators_password: str | None = Field(None, validation_alias="LINE_CREATORS_PASSWORD")

    model_config = SettingsConfigDict(case_sensitive=False, env_file=".env", extra="ignore", populate_by_name=True)

    @property
    def is_production(self) -> bool:
        return self.environment.lower() == "production"

    @property
    def firebase_configured(self) -> bool:
        return bool(self.firebase_project_id or self.credentials_path)

    @property
    def allowed_origins(self) -> list[str]:
        origins = [o.strip() for o in self.cors_origins.split(",") if o.strip()]
        if self.frontend_url and self.frontend_url not in origins:
            origins.append(self.frontend_url)
        return origins


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Build the process-wide settings once; the app stores the result on its state."""
    return Settings()
