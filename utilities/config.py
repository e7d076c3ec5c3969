"""
Configuration management using environment variables.
Handles store and logging settings with proper validation and defaults.
"""

from typing import Optional
from pydantic import Field, validator
from pydantic_settings import BaseSettings
from pathlib import Path


class CatalogConfig(BaseSettings):
    """
    Configuration class for the catalog engine.
    Uses pydantic BaseSettings for environment variable management.
    """

    # MongoDB Configuration
    mongodb_url: str = Field(default="mongodb://localhost:27017", env="MONGODB_URL")
    mongodb_database: str = Field(default="book_catalog", env="MONGODB_DATABASE")
    books_collection: str = Field(default="books", env="BOOKS_COLLECTION")
    reviews_collection: str = Field(default="reviews", env="REVIEWS_COLLECTION")
    counters_collection: str = Field(default="counters", env="COUNTERS_COLLECTION")

    # Sequential ID Configuration
    book_counter_name: str = Field(default="book_id", env="BOOK_COUNTER_NAME")

    # Logging Configuration
    log_level: str = Field(default="INFO", env="LOG_LEVEL")
    log_format: str = Field(default="json", env="LOG_FORMAT")
    log_file: Optional[str] = Field(default=None, env="LOG_FILE")

    # Development/Testing
    debug: bool = Field(default=False, env="DEBUG")

    @validator('book_counter_name')
    def validate_counter_name(cls, v):
        """Counter names are used as document keys and must not be blank."""
        if not v or not v.strip():
            raise ValueError('book_counter_name must not be empty')
        return v.strip()

    @validator('log_level')
    def validate_log_level(cls, v):
        """Ensure log level is valid."""
        valid_levels = ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']
        if v.upper() not in valid_levels:
            raise ValueError(f'log_level must be one of: {valid_levels}')
        return v.upper()

    @validator('log_format')
    def validate_log_format(cls, v):
        """Ensure log format is valid."""
        valid_formats = ['json', 'console']
        if v.lower() not in valid_formats:
            raise ValueError(f'log_format must be one of: {valid_formats}')
        return v.lower()

    class Config:
        """Pydantic configuration."""
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = False
        extra = "ignore"  # Ignore extra fields from .env

    def get_log_file_path(self) -> Optional[Path]:
        """Get log file path as Path object."""
        if self.log_file:
            return Path(self.log_file)
        return None


# Global configuration instance
config = CatalogConfig()
