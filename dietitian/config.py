from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # Redis (geo cache). Empty string falls back to the in-process cache.
    REDIS_URL: str = ""

    # Geolocation
    GEO_LOOKUP_URL: str = "https://ipapi.co/{ip}/json/"
    GEO_LOOKUP_TIMEOUT: float = 3.0
    GEO_CACHE_TTL_SECONDS: int = 3600
    GEO_USER_AGENT: str = "AI-Dietitian/1.0"

    # Consent
    CONSENT_POLICY_VERSION: str = "1.0"
    CONSENT_MAX_AGE_DAYS: int = 365
    COOKIE_SECURE: bool = True
    AUDIT_BASE_URL: str = "http://localhost:8000"

    # Third-party trackers (empty → integration disabled)
    GA_MEASUREMENT_ID: str = ""
    GTM_ID: str = ""
    META_PIXEL_ID: str = ""
    GOOGLE_ADS_CONVERSION_ID: str = ""

    # PII encryption (64 hex chars or base64 of 32 bytes)
    ENCRYPTION_KEY: str = ""

    # Locales
    SUPPORTED_LOCALES: str = "en,de,fr,es,it"

    # App
    APP_ENV: str = "development"
    CORS_ORIGINS: str = "http://localhost:3000"

    @property
    def locales(self) -> list[str]:
        return [loc.strip() for loc in self.SUPPORTED_LOCALES.split(",") if loc.strip()]

    @property
    def consent_max_age_seconds(self) -> int:
        return self.CONSENT_MAX_AGE_DAYS * 24 * 60 * 60


settings = Settings()
