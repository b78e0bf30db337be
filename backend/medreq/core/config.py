from __future__ import annotations

import logging
from pathlib import Path
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


logger = logging.getLogger("medreq_config")


def _find_env_file() -> str | None:
    # Look for .env in current working directory or any parent of this file.
    cwd_env = Path.cwd() / ".env"
    if cwd_env.is_file():
        return str(cwd_env)
    here = Path(__file__).resolve()
    for parent in [here.parent, *here.parents]:
        candidate = parent / ".env"
        if candidate.is_file():
            return str(candidate)
    return None


_ENV_FILE_PATH = _find_env_file()


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=_ENV_FILE_PATH, extra="ignore")

    # App
    env: str = "dev"
    log_level: str = "INFO"

    # DB
    database_url: str = "sqlite+aiosqlite:///./medreq.db"

    # JWT
    jwt_secret: str = "change-me"
    jwt_issuer: str = "medreq-api"
    jwt_audience: str = "medreq-frontend"
    access_token_expire_minutes: int = 60

    # Named approvers bound to the chairman-class and auditor-class stages
    chairman_name: str = "Chairman"
    auditor_name: str = "Auditor"

    currency_label: str = "NGN"

    # Proof of payment storage
    proof_storage_dir: str | None = None
    max_proof_size: int = 5 * 1024 * 1024

    # Invoice extraction assistant
    openai_api_key: str | None = Field(default=None, alias="OPENAI_API_KEY")
    openai_base_url: str = "https://api.openai.com/v1"
    extraction_model: str = "gpt-4o-mini"
    extraction_timeout_seconds: float = 30.0

    # CORS
    cors_origins: str = Field(default="", alias="CORS_ORIGINS")

    def parsed_cors_origins(self) -> list[str]:
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]


settings = Settings()  # singleton

if getattr(settings, "env", "dev").lower() == "dev":
    if _ENV_FILE_PATH:
        logger.info("Loaded .env from %s", _ENV_FILE_PATH)
    else:
        logger.info("No .env found; relying on environment variables only")
