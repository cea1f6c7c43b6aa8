from typing import List

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    app_name: str = "EcoEvents API"
    log_level: str = "INFO"

    jwt_secret: str = "dev-only-secret-change-me-in-production"
    jwt_alg: str = "HS256"
    access_ttl_min: int = 30

    use_mongo: bool = False
    mongo_uri: str = "mongodb://localhost:27017"
    mongo_db: str = "ecoevents"

    donation_points: int = 10
    default_radius_km: float = 50.0
    min_radius_km: float = 1.0
    max_radius_km: float = 1000.0
    default_page_size: int = 20
    max_page_size: int = 50
    # bucket size of the in-memory geo index, in degrees
    geo_cell_deg: float = 0.5

    cors_origins: List[str] = ["*"]

    model_config = SettingsConfigDict(env_prefix="ECO_", env_file=".env", extra="ignore")

settings = Settings()
