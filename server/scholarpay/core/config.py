"""
scholarpay/core/config.py
Configuration settings using Pydantic
"""
from pydantic_settings import BaseSettings
from typing import List
from functools import lru_cache

class Settings(BaseSettings):
    """Application settings"""

    # Application
    PROJECT_NAME: str = "Scholarship Payments Reconciliation"
    VERSION: str = "1.0.0"
    ENVIRONMENT: str = "development"  # development, staging, production
    API_V1_PREFIX: str = "/api/v1"

    # Security
    SECRET_KEY: str  # Generate with: openssl rand -hex 32
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60

    # Supabase
    SUPABASE_URL: str
    SUPABASE_SERVICE_KEY: str  # service_role key, payment tables are behind RLS

    # CORS
    ALLOWED_ORIGINS: List[str] = [
        "http://localhost:3000",
        "http://localhost:5173",
    ]

    # Pagination
    DEFAULT_PAGE_SIZE: int = 25
    MAX_PAGE_SIZE: int = 100

    # Fee schedule (dollars)
    DEFAULT_APPLICATION_FEE: float = 350.0
    DEFAULT_I20_CONTROL_FEE: float = 900.0
    FEE_PLAUSIBILITY_TOLERANCE: float = 0.5

    # Legacy rows hidden from the admin view
    EXCLUDED_SCHOLARSHIP_IDS: List[str] = ["31c9b8e6-af11-4462-8494-c79854f3f66e"]
    EXCLUDED_SCHOLARSHIP_TITLES: List[str] = ["Current Students Scholarship"]

    # Source loaders
    LOADER_BATCH_SIZE: int = 50
    LOADER_TIMEOUT_SECONDS: float = 60.0
    EXCLUDED_EMAIL_DOMAINS: List[str] = ["@uorak.com"]  # QA accounts, kept in development

    # CSV export (Supabase edge function)
    CSV_EXPORT_FUNCTION: str = "export-admin-payments-csv"
    EXPORT_TIMEOUT_SECONDS: float = 30.0

    class Config:
        env_file = ".env"
        case_sensitive = True

    @property
    def exclude_test_accounts(self) -> bool:
        return self.ENVIRONMENT != "development"

@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()

settings = get_settings()
