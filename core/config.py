from pydantic_settings import BaseSettings

class Settings(BaseSettings):
    DB_USER: str = "root"
    DB_PASSWORD: str = ""
    DB_HOST: str = "localhost"
    DB_PORT: str = "3306"
    DB_NAME: str = "saas"
    # Full SQLAlchemy URL; wins over the DB_* parts when set
    DATABASE_URL: str | None = None

    BASE_URL: str = "http://localhost:3000"
    AUTH_BASE_PATH: str = "/api/auth"
    SIGN_IN_PATH: str = "/auth/"
    AFTER_SIGN_IN_PATH: str = "/dashboard"

    SESSION_COOKIE_NAME: str = "session_token"
    SESSION_LIFETIME_SECONDS: int = 60 * 60 * 24 * 7
    SESSION_RENEWAL_ENABLED: bool = False
    SESSION_UPDATE_AGE_SECONDS: int = 60 * 60 * 24
    COOKIE_SECURE: bool | None = None

    # Comma separated provider ids allowed to link onto an existing user by email
    ACCOUNT_LINKING_TRUSTED_PROVIDERS: str = ""

    AUTH_GOOGLE_ID: str = ""
    AUTH_GOOGLE_SECRET: str = ""
    AUTH_APPLE_ID: str = ""
    AUTH_APPLE_SECRET: str = ""
    AUTH_TWITTER_ID: str = ""
    AUTH_TWITTER_SECRET: str = ""

    STORAGE_RETRY_ATTEMPTS: int = 3
    STORAGE_RETRY_BACKOFF_SECONDS: float = 0.05
    SWEEP_INTERVAL_SECONDS: int = 60 * 60

    LOG_LEVEL: str = "INFO"

    @property
    def SQLALCHEMY_DATABASE_URI(self):
        if self.DATABASE_URL:
            return self.DATABASE_URL
        return (
            f"mysql+pymysql://{self.DB_USER}:{self.DB_PASSWORD}"
            f"@{self.DB_HOST}:{self.DB_PORT}/{self.DB_NAME}"
        )

    @property
    def cookie_secure(self) -> bool:
        if self.COOKIE_SECURE is not None:
            return self.COOKIE_SECURE
        return self.BASE_URL.startswith("https://")

    @property
    def trusted_linking_providers(self) -> set[str]:
        items = (p.strip().lower() for p in self.ACCOUNT_LINKING_TRUSTED_PROVIDERS.split(","))
        return {p for p in items if p}

    @property
    def provider_credentials(self) -> dict[str, tuple[str, str]]:
        """Client id/secret pairs of the providers that are switched on.

        A provider counts as enabled only when both halves are configured.
        The secrets are handed to the exchange adapter untouched.
        """
        pairs = {
            "google": (self.AUTH_GOOGLE_ID, self.AUTH_GOOGLE_SECRET),
            "apple": (self.AUTH_APPLE_ID, self.AUTH_APPLE_SECRET),
            "twitter": (self.AUTH_TWITTER_ID, self.AUTH_TWITTER_SECRET),
        }
        return {name: pair for name, pair in pairs.items() if pair[0] and pair[1]}

    class Config:
        env_file = ".env"

settings = Settings()
