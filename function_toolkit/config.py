import os
from enum import Enum
from functools import lru_cache
from typing import Literal, Mapping

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# Any of these being set means we run on a serverless platform rather than locally.
PLATFORM_ENV_VARS = (
    "K_SERVICE",
    "FUNCTION_TARGET",
    "FUNCTION_NAME",
    "AWS_LAMBDA_FUNCTION_NAME",
    "AWS_EXECUTION_ENV",
    "FUNCTIONS_WORKER_RUNTIME",
    "WEBSITE_SITE_NAME",
    "VERCEL",
    "NETLIFY",
)


class LoggingMode(str, Enum):
    STRUCTURED = "structured"
    CONSOLE = "console"


def detect_logging_mode(environ: Mapping[str, str] | None = None) -> LoggingMode:
    env = os.environ if environ is None else environ
    if any(env.get(name) for name in PLATFORM_ENV_VARS):
        return LoggingMode.STRUCTURED
    return LoggingMode.CONSOLE


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    log_format: Literal["auto", "json", "console"] = Field(default="auto", alias="LOG_FORMAT")
    correlation_header: str = Field(default="X-Correlation-ID", alias="CORRELATION_ID_HEADER")
    correlation_id_length: int = Field(default=10, ge=4, le=64, alias="CORRELATION_ID_LENGTH")

    @property
    def logging_mode(self) -> LoggingMode:
        if self.log_format == "json":
            return LoggingMode.STRUCTURED
        if self.log_format == "console":
            return LoggingMode.CONSOLE
        return detect_logging_mode()


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
