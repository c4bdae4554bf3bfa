"""Pydantic settings loaded from environment variables and an optional .env file."""

from __future__ import annotations

import os
from pathlib import Path

from dotenv import load_dotenv
from pydantic import ConfigDict
from pydantic_settings import BaseSettings


def get_tokenledger_dir() -> Path:
    """Resolve the tokenledger data directory. TOKENLEDGER_DIR env var or ~/.config/tokenledger."""
    d = os.environ.get("TOKENLEDGER_DIR", "")
    return Path(d).expanduser() if d else Path.home() / ".config" / "tokenledger"


_env_file = get_tokenledger_dir() / ".env"
load_dotenv(_env_file)


class Settings(BaseSettings):
    TOKENIZER_ENCODING: str = "cl100k_base"

    LOG_LEVEL: str = "INFO"
    LOG_FILE: str = ""
    LOG_MAX_BYTES: int = 10_485_760
    LOG_BACKUP_COUNT: int = 5

    model_config = ConfigDict(
        env_file=str(_env_file),
        env_file_encoding="utf-8",
        extra="ignore",
    )


settings = Settings()
