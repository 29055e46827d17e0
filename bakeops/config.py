from pydantic_settings import BaseSettings, SettingsConfigDict
class Settings(BaseSettings):
    APP_ENV: str = "dev"
    HOST: str = "127.0.0.1"
    PORT: int = 8000
    DB_URL: str = "sqlite:///./bakeops.db"
    TZ: str = "UTC"
    LOG_LEVEL: str = "INFO"

    # Distance provider (Google Distance Matrix compatible); no key => straight-line estimate
    DISTANCE_API_KEY: str | None = None
    DISTANCE_API_URL: str = "https://maps.googleapis.com/maps/api/distancematrix/json"
    DISTANCE_TIMEOUT_S: float = 3.0
    BAKERY_LAT: float | None = None
    BAKERY_LNG: float | None = None

    # Pricing defaults, overridden by Setting rows at calculation time
    DEFAULT_MARKUP_PERCENT: float = 0.70
    BAKER_HOURLY_RATE: float = 25.0
    DECORATOR_HOURLY_RATE: float = 35.0
    ASSISTANT_HOURLY_RATE: float = 18.0
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")
settings = Settings()
