"""
Runtime configuration.

Values come from the process environment after an optional ``.env`` file has
been loaded with python-dotenv. Arguments passed explicitly to ``Client`` or
to the CLI always take precedence over anything resolved here.
"""

from __future__ import annotations

import logging
import os
from typing import Any, Dict, Optional

from dotenv import find_dotenv, load_dotenv
from rich.logging import RichHandler


class Config:
    """Settings resolved from ``OPENAI_*`` / ``OPENAIKIT_*`` variables."""

    DEFAULT_MODEL = "gpt-4o-mini"
    DEFAULT_EMBEDDING_MODEL = "text-embedding-3-small"
    DEFAULT_IMAGE_MODEL = "dall-e-3"
    DEFAULT_MODERATION_MODEL = "omni-moderation-latest"
    CODE_THEME = "monokai"
    HISTORY_FILE = ".openaikit_history"

    # Set by the CLI when the user switches model mid-session
    ACTIVE_MODEL: Optional[str] = None

    _env_loaded = False

    @classmethod
    def load_env(cls, path: str = None, override: bool = False) -> bool:
        """Load a ``.env`` file once; returns whether a file was found."""
        if cls._env_loaded and path is None:
            return False
        cls._env_loaded = True
        dotenv_path = path or find_dotenv(usecwd=True)
        if not dotenv_path:
            return False
        return load_dotenv(dotenv_path, override=override)

    @staticmethod
    def _get(name: str) -> Optional[str]:
        value = os.environ.get(name)
        if value is None or not value.strip():
            return None
        return value.strip()

    @classmethod
    def _get_float(cls, name: str) -> Optional[float]:
        value = cls._get(name)
        if value is None:
            return None
        try:
            return float(value)
        except ValueError:
            raise ValueError(f"{name} must be a number, got {value!r}") from None

    @classmethod
    def _get_int(cls, name: str) -> Optional[int]:
        value = cls._get(name)
        if value is None:
            return None
        try:
            return int(value)
        except ValueError:
            raise ValueError(f"{name} must be an integer, got {value!r}") from None

    @classmethod
    def api_key(cls) -> Optional[str]:
        return cls._get("OPENAI_API_KEY")

    @classmethod
    def base_url(cls) -> Optional[str]:
        return cls._get("OPENAI_BASE_URL")

    @classmethod
    def organization(cls) -> Optional[str]:
        return cls._get("OPENAI_ORG_ID")

    @classmethod
    def project(cls) -> Optional[str]:
        return cls._get("OPENAI_PROJECT_ID")

    @classmethod
    def timeout(cls) -> Optional[float]:
        return cls._get_float("OPENAI_TIMEOUT")

    @classmethod
    def max_retries(cls) -> Optional[int]:
        return cls._get_int("OPENAI_MAX_RETRIES")

    @classmethod
    def get_model(cls) -> str:
        return cls.ACTIVE_MODEL or cls._get("OPENAIKIT_MODEL") or cls.DEFAULT_MODEL

    @classmethod
    def log_level(cls) -> str:
        return (cls._get("OPENAIKIT_LOG") or "WARNING").upper()

    @classmethod
    def code_theme(cls) -> str:
        return cls._get("OPENAIKIT_CODE_THEME") or cls.CODE_THEME

    @classmethod
    def client_kwargs(cls) -> Dict[str, Any]:
        """Connection settings from the environment, unset ones omitted."""
        values = {
            "api_key": cls.api_key(),
            "base_url": cls.base_url(),
            "organization": cls.organization(),
            "project": cls.project(),
            "timeout": cls.timeout(),
            "max_retries": cls.max_retries(),
        }
        return {k: v for k, v in values.items() if v is not None}


def configure_logging(level: str = None):
    """Route library logs through rich; used by the CLI only."""
    level = (level or Config.log_level()).upper()
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(rich_tracebacks=True, show_path=False)],
        force=True,
    )
    for noisy in ("urllib3", "httpx", "httpcore"):
        logging.getLogger(noisy).setLevel(logging.WARNING)
