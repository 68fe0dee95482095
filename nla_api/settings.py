from pathlib import Path
from typing import List

from pydantic_settings import BaseSettings, SettingsConfigDict


def choose_env_file() -> str:
    return ".env.local" if Path(".env.local").exists() else ".env"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=choose_env_file(),
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",  # tolerate unrelated env vars
    )

    # CouchDB
    COUCHDB_HOST: str = "localhost"
    COUCHDB_PORT: int = 5984
    COUCHDB_USERNAME: str = "admin"
    COUCHDB_PASSWORD: str = ""
    COUCHDB_DATABASE: str = "nla_posts"

    # Cloudinary
    CLOUDINARY_CLOUD_NAME: str = ""
    CLOUDINARY_API_KEY: str = ""
    CLOUDINARY_API_SECRET: str = ""
    CLOUDINARY_API_URL: str = "https://api.cloudinary.com/v1_1"
    CLOUDINARY_DELIVERY_URL: str = "https://res.cloudinary.com"
    THUMBNAIL_FOLDER: str = "thumbnails"
    CONTENT_IMAGE_FOLDER: str = "content-images"
    ARCHIVE_FOLDER: str = "archive"

    # Brevo newsletter
    BREVO_SUBSCRIBE_API: str = ""
    BREVO_LIST_ID: int = 0
    BREVO_SENDER_EMAIL: str = "noreply@nolifeanime.com"
    BREVO_SENDER_NAME: str = "No Life Anime"
    BREVO_API_URL: str = "https://api.brevo.com/v3"
    NEWSLETTER_LOGO_URL: str = ""

    # Site
    BASE_URL: str = "http://localhost:3000"
    ENVIRONMENT: str = "development"
    CORS_ORIGINS: List[str] = ["*"]

    # Logging
    LOG_LEVEL: str = "INFO"

    # Our own API Key
    NLA_API_KEY: str = ""

    # Daily quote
    ANIMECHAN_URL: str = "https://api.animechan.io/v1/quotes/random"
    QUOTE_CACHE_PATH: str = "data/quote.json"
    QUOTE_TTL_HOURS: int = 24

    # Posts
    DEFAULT_POST_STATUS: bool = True
    REQUIRE_THUMBNAIL: bool = True
    STRICT_CONTENT_IMAGES: bool = False
    SEARCH_RESULT_LIMIT: int = 50
    POPULAR_TAGS_LIMIT: int = 10

    @property
    def couchdb_url(self) -> str:
        return f"http://{self.COUCHDB_USERNAME}:{self.COUCHDB_PASSWORD}@{self.COUCHDB_HOST}:{self.COUCHDB_PORT}"

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT.lower() == "production"

    def newsletter_config_errors(self) -> List[str]:
        errors = []
        if not self.BREVO_SUBSCRIBE_API:
            errors.append("BREVO_SUBSCRIBE_API is required")
        elif not self.BREVO_SUBSCRIBE_API.startswith("xkeysib-"):
            errors.append('BREVO_SUBSCRIBE_API must start with "xkeysib-"')

        if self.BREVO_LIST_ID <= 0:
            errors.append("BREVO_LIST_ID must be a positive number")

        if "@" not in self.BREVO_SENDER_EMAIL:
            errors.append("BREVO_SENDER_EMAIL must be a valid email address")
        return errors


# Global settings instance (evaluated at import, but reads env on construction)
settings = Settings()
