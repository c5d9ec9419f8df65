"""Application configuration management"""

import json
import sys
import tempfile
from functools import lru_cache
from pathlib import Path
from typing import Annotated, Any, List

from pydantic import field_validator
from pydantic_settings import BaseSettings, NoDecode

# Base directory: repository root
_BASE_DIR = Path(__file__).resolve().parent.parent


class Settings(BaseSettings):
    """Application settings with environment variable support"""

    # Application
    APP_NAME: str = "Codegrade Execution Engine"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False
    ENVIRONMENT: str = "development"

    # Server
    HOST: str = "0.0.0.0"
    PORT: int = 8000
    WORKERS: int = 4

    # Code Execution
    CODE_EXECUTION_TIMEOUT_MS: int = 10000
    COMPILE_TIMEOUT_MS: int = 30000
    CODE_EXECUTION_MEMORY_LIMIT: int = 256
    EXECUTION_RESOURCE_LIMITS: bool = True
    EXECUTION_MAX_PROCESSES: int = 10
    MAX_CODE_SIZE: int = 51200
    MAX_TEST_CASES: int = 100
    TEMP_DIR: str = ""

    # Toolchains
    PYTHON_COMMAND: str = ""
    NODE_COMMAND: str = "node"

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_FILE: str = ""

    # CORS
    CORS_ORIGINS: Annotated[List[str], NoDecode] = ["http://localhost:3000"]

    class Config:
        env_file = ".env"
        case_sensitive = True

    @field_validator("CORS_ORIGINS", mode="before")
    @classmethod
    def _parse_cors_origins(cls, value: Any) -> Any:
        """
        Accept JSON array or comma-separated origins from env.

        Examples:
            CORS_ORIGINS=["http://localhost:3000","http://example.com"]
            CORS_ORIGINS=http://localhost:3000,http://example.com
        """
        if not isinstance(value, str):
            return value

        raw = value.strip()
        if not raw:
            return []

        try:
            parsed = json.loads(raw)
        except json.JSONDecodeError:
            parsed = None

        if isinstance(parsed, str):
            return [parsed]
        if isinstance(parsed, list):
            return [str(origin).strip() for origin in parsed if str(origin).strip()]

        return [origin.strip() for origin in raw.split(",") if origin.strip()]

    @field_validator("CODE_EXECUTION_TIMEOUT_MS", "COMPILE_TIMEOUT_MS", "EXECUTION_MAX_PROCESSES")
    @classmethod
    def _positive(cls, value: int) -> int:
        if value <= 0:
            raise ValueError("must be > 0")
        return value

    def get_temp_dir(self) -> str:
        """Scratch root shared (via per-job sub-directories) by all executions"""
        if not self.TEMP_DIR:
            return str(Path(tempfile.gettempdir()) / "codegrade-execution")
        return self.TEMP_DIR

    def get_python_command(self) -> str:
        return self.PYTHON_COMMAND or sys.executable or "python3"

    def get_log_file(self) -> str:
        p = self.LOG_FILE
        if not p or p.startswith(".."):
            return str(_BASE_DIR / "logs" / "app.log")
        return p


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()


settings = get_settings()
