"""
Configuration management for the candidate sync engine.

Loads settings from environment variables with sensible defaults.
"""

import os
from pathlib import Path

from dotenv import load_dotenv

# Load .env file from project root
_project_root = Path(__file__).parent.parent.parent
_env_file = _project_root / '.env'
if _env_file.exists():
    load_dotenv(_env_file)


class Config:
    """Configuration settings loaded from environment."""

    # Relational store
    DATABASE_URL: str = os.getenv('DATABASE_URL', '')

    # Stage reconciliation: a WEBHOOK transition landing this close to the
    # SYSTEM initial-stage entry with the same destination is an echo.
    DEBOUNCE_WINDOW_SECONDS: float = float(os.getenv('DEBOUNCE_WINDOW_SECONDS', '30'))

    # CRM side channel (optional)
    CRM_API_BASE_URL: str = os.getenv('CRM_API_BASE_URL', '')
    CRM_API_KEY: str = os.getenv('CRM_API_KEY', '')
    CRM_API_VERSION: str = os.getenv('CRM_API_VERSION', '2021-07-28')
    CRM_TIMEOUT_SECONDS: float = float(os.getenv('CRM_TIMEOUT_SECONDS', '10'))

    LOG_LEVEL: str = os.getenv('LOG_LEVEL', 'INFO')
    LOG_JSON: bool = os.getenv('LOG_JSON', '').lower() in ('1', 'true', 'yes')

    @classmethod
    def validate(cls) -> list[str]:
        """
        Validate that required configuration is present.

        Returns:
            List of missing required configuration keys
        """
        missing = []
        if not cls.DATABASE_URL:
            missing.append('DATABASE_URL')
        if cls.CRM_API_BASE_URL and not cls.CRM_API_KEY:
            missing.append('CRM_API_KEY')
        return missing


# Singleton config instance
config = Config()
