from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # App
    environment: str = "development"
    debug: bool = True
    allowed_origins: str = "http://localhost:3000,http://localhost:4000"
    log_level: str = "INFO"

    # Remote marketplace API
    marketplace_api_url: str = "http://localhost:4000/api"
    request_timeout_seconds: float = 15.0

    # Listing wizard limits
    max_images: int = 10
    max_custom_features: int = 3
    max_title_length: int = 200

    # Open wizards idle longer than this are dropped
    wizard_idle_ttl_seconds: int = 3600

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}


settings = Settings()
