"""
Application configuration settings loaded from environment variables.
Uses pydantic_settings for validation and type conversion.
"""
from pydantic_settings import BaseSettings
from typing import List

class Settings(BaseSettings):
    """
    Application settings class with environment variable validation.
    
    Attributes:
        database_url: SQLAlchemy connection string (PostgreSQL in production)
        secret_key: Secret key used to verify bearer tokens
        algorithm: Algorithm used for JWT encoding (typically HS256)
        access_token_expire_minutes: Lifetime of tokens minted by create_access_token
        
        # Scheduling settings
        default_timezone: IANA zone used when a request does not name one
        slot_grid_minutes: Grid that appointment times are snapped to
        
        # Frontend settings
        cors_origins: Origins allowed by the CORS middleware
    """
    # Database settings
    database_url: str = "sqlite:///./dental_clinic.db"
    
    # JWT settings
    secret_key: str
    algorithm: str = "HS256"
    access_token_expire_minutes: int = 30
    
    # Scheduling settings
    default_timezone: str = "Africa/Cairo"
    slot_grid_minutes: int = 5
    
    # Frontend settings
    cors_origins: List[str] = [
        "http://localhost:3000",
        "http://localhost:5173",
    ]

    class Config:
        """Configuration for environment variables loading"""
        env_file = ".env"
        case_sensitive = False

# Create settings instance
settings = Settings()
