"""Summary: Application configuration for ChatShare.

Importance: Centralizes environment, .env, and config defaults for consistent behavior.
Alternatives: Use a dedicated settings library like Pydantic Settings.
"""

from __future__ import annotations

import json
import os
from pathlib import Path
from dataclasses import dataclass


@dataclass(frozen=True)
class AppConfig:
    """Summary: Holds configuration values for providers and storage.

    Importance: Ensures all services derive settings from a single source of truth.
    Alternatives: Store settings in a shared config file and parse at startup.
    """

    db_path: str
    ai_provider: str
    gemini_api_key: str | None
    gemini_model: str
    gemini_base_url: str
    openai_api_key: str | None
    openai_model: str
    ollama_url: str
    ollama_model: str
    ai_timeout_seconds: float
    api_host: str
    api_port: int
    token_secret: str
    append_attempts: int = 3

    @property
    def model_name(self) -> str:
        if self.ai_provider == "gemini":
            return self.gemini_model
        if self.ai_provider == "openai":
            return self.openai_model
        if self.ai_provider == "ollama":
            return self.ollama_model
        return "mock"

    @staticmethod
    def from_env() -> "AppConfig":
        """Summary: Build configuration from defaults, .env, and environment.

        Importance: Keeps all variables defined in config defaults while allowing overrides.
        Alternatives: Parse only environment variables without a defaults file.
        """

        defaults = load_defaults(Path("config") / "defaults.json")
        load_dotenv(Path(".env"))
        return AppConfig(
            db_path=os.getenv("CHATSHARE_DB_PATH", defaults["db_path"]),
            ai_provider=os.getenv("CHATSHARE_AI_PROVIDER", defaults["ai_provider"]),
            gemini_api_key=os.getenv("GEMINI_API_KEY") or defaults["gemini_api_key"] or None,
            gemini_model=os.getenv("GEMINI_MODEL", defaults["gemini_model"]),
            gemini_base_url=os.getenv("GEMINI_BASE_URL", defaults["gemini_base_url"]),
            openai_api_key=os.getenv("OPENAI_API_KEY") or defaults["openai_api_key"] or None,
            openai_model=os.getenv("OPENAI_MODEL", defaults["openai_model"]),
            ollama_url=os.getenv("OLLAMA_URL", defaults["ollama_url"]),
            ollama_model=os.getenv("OLLAMA_MODEL", defaults["ollama_model"]),
            ai_timeout_seconds=float(
                os.getenv("CHATSHARE_AI_TIMEOUT_SECONDS", defaults["ai_timeout_seconds"])
            ),
            api_host=os.getenv("CHATSHARE_API_HOST", defaults["api_host"]),
            api_port=int(os.getenv("CHATSHARE_API_PORT", defaults["api_port"])),
            token_secret=os.getenv("CHATSHARE_TOKEN_SECRET", defaults["token_secret"]),
            append_attempts=int(
                os.getenv("CHATSHARE_APPEND_ATTEMPTS", defaults.get("append_attempts", "3"))
            ),
        )


def load_defaults(path: Path) -> dict[str, str]:
    """Summary: Load configuration defaults from JSON.

    Importance: Ensures all variables exist in a single config file.
    Alternatives: Inline defaults in the AppConfig initializer.
    """

    if not path.exists():
        raise FileNotFoundError(f"Defaults file not found: {path}")
    return json.loads(path.read_text(encoding="utf-8"))


def load_dotenv(path: Path) -> None:
    """Summary: Load key-value pairs from a .env file into the environment.

    Importance: Keeps secrets out of code while supporting local workflows.
    Alternatives: Use python-dotenv or OS-specific secret stores.
    """

    if not path.exists():
        return
    for raw_line in path.read_text(encoding="utf-8").splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, value = line.split("=", 1)
        os.environ.setdefault(key.strip(), value.strip())
