"""
Database configuration for PostgreSQL
Supports local development, testing and production
Environment-aware configuration based on APP_ENV
"""

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Literal, Optional

from dotenv import load_dotenv

logger = logging.getLogger(__name__)

# Environment modes
EnvironmentMode = Literal["development", "test", "production"]


def load_app_environment(mode: Optional[str] = None) -> str:
    """
    Load environment variables from the appropriate .env file.

    Priority:
    1. Explicit 'mode' argument
    2. APP_ENV environment variable
    3. Default to 'development'

    Loads .env.{mode} if it exists, falling back to .env
    """
    if not mode:
        mode = os.getenv('APP_ENV', 'development')

    base_path = Path(__file__).parent
    env_file = base_path / f'.env.{mode}'

    if env_file.exists():
        logger.info(f"Loading config from {env_file}")
        # override=False lets variables already set by the host win over the file
        load_dotenv(env_file, override=False)
    elif (base_path / '.env').exists():
        load_dotenv(base_path / '.env', override=False)
    else:
        logger.debug(f"No config file found for mode '{mode}' at {env_file}")

    return mode


@dataclass
class DatabaseConfig:
    """PostgreSQL database configuration"""

    host: str
    port: int
    database: str
    user: str
    password: str

    # Connection pool settings
    min_pool_size: int = 2
    max_pool_size: int = 10
    command_timeout: int = 60  # seconds

    ssl_mode: str = "prefer"

    @property
    def ssl(self):
        """SSL setting in the form asyncpg expects: True, False or 'prefer'"""
        if self.ssl_mode == 'require':
            return True
        if self.ssl_mode == 'disable':
            return False
        return 'prefer'

    @classmethod
    def from_environment(cls, mode: Optional[EnvironmentMode] = None) -> 'DatabaseConfig':
        """
        Load configuration from environment variables

        Environment variables:
        - APP_ENV: Environment mode (development, test, production)
        - DB_HOST: Database host (default: localhost)
        - DB_PORT: Database port (default: 5432)
        - DB_NAME: Database name (default: events_db, events_test in test mode)
        - DB_USER: Database user (default: postgres)
        - DB_PASSWORD: Database password
        - DB_SSL_MODE: SSL mode (default: require in production, prefer otherwise)
        - DB_MIN_POOL_SIZE / DB_MAX_POOL_SIZE: Pool bounds
        - DB_COMMAND_TIMEOUT: Per-statement timeout in seconds

        Args:
            mode: Override environment mode (default: reads from APP_ENV)
        """
        mode = load_app_environment(mode)

        config = cls(
            host=os.getenv('DB_HOST', 'localhost'),
            port=int(os.getenv('DB_PORT', '5432')),
            database=os.getenv('DB_NAME', 'events_test' if mode == 'test' else 'events_db'),
            user=os.getenv('DB_USER', 'postgres'),
            password=os.getenv('DB_PASSWORD', ''),
            ssl_mode=os.getenv('DB_SSL_MODE', 'require' if mode == 'production' else 'prefer'),
            min_pool_size=int(os.getenv('DB_MIN_POOL_SIZE', '2')),
            max_pool_size=int(os.getenv('DB_MAX_POOL_SIZE', '10')),
            command_timeout=int(os.getenv('DB_COMMAND_TIMEOUT', '60')),
        )

        config.validate_safety(mode)

        return config

    def validate_safety(self, mode: str):
        """Ensure configuration is safe for the requested mode"""
        if mode == 'test':
            if 'test' not in self.database:
                raise ValueError(
                    f"SAFETY ERROR: Test mode requested but database is '{self.database}'. "
                    f"Test database must contain 'test'."
                )
            if 'prod' in self.database:
                raise ValueError(
                    f"SAFETY ERROR: Test mode requested but database '{self.database}' appears to be production."
                )

        if mode == 'production' and self.ssl_mode != 'require':
            logger.warning(f"Production database configured with ssl_mode='{self.ssl_mode}'")

