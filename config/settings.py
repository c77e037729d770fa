"""
Configuration management for the timetable generation API.
"""
from pydantic_settings import BaseSettings
from typing import List


class Settings(BaseSettings):
    """Application settings."""

    # Application
    app_name: str = "Timetable Generation API"
    app_version: str = "1.0.0"
    debug: bool = False

    # Server
    host: str = "0.0.0.0"
    port: int = 8080
    reload: bool = False

    # Database
    database_url: str = "sqlite:///./timetable.db"
    database_echo: bool = False

    # School instance the generation lock is keyed by
    school_id: str = "default"

    # Days used for grades without a calendar entry and when a request omits activeDays
    default_active_days: List[str] = ["MONDAY", "TUESDAY", "WEDNESDAY", "THURSDAY", "FRIDAY"]

    # Generation
    generation_lock_timeout_seconds: float = 30.0

    # Solver (CP-SAT strategy)
    solver_timeout_seconds: int = 30
    solver_random_seed: int = 42
    solver_num_workers: int = 1

    # Logging
    log_level: str = "INFO"

    # CORS
    cors_origins: List[str] = ["http://localhost:3000"]

    class Config:
        env_file = ".env"
        case_sensitive = False


settings = Settings()
