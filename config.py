"""
Corn Doctor - runtime configuration

Settings are resolved once from the process environment (and an optional
.env file) and handed to the components that need them.
"""

import os
import logging
from dataclasses import dataclass
from typing import Mapping, Optional

from dotenv import load_dotenv

logger = logging.getLogger("corn-doctor.config")

DEFAULT_MODEL = "gemini-2.5-flash"
DEFAULT_API_BASE = "https://generativelanguage.googleapis.com/v1beta"
DEFAULT_MAX_CONTENT_LENGTH = 16 * 1024 * 1024  # 16MB max file size


def _optional_float(value):
    if value is None or not str(value).strip():
        return None
    return float(value)


@dataclass(frozen=True)
class Settings:
    gemini_api_key: Optional[str] = None
    gemini_model: str = DEFAULT_MODEL
    gemini_api_base: str = DEFAULT_API_BASE
    request_timeout: Optional[float] = None
    max_content_length: int = DEFAULT_MAX_CONTENT_LENGTH

    @property
    def has_api_key(self) -> bool:
        return bool(self.gemini_api_key)

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "Settings":
        """Build settings from `environ`, or from os.environ after loading .env."""
        if environ is None:
            load_dotenv()
            environ = os.environ

        api_key = (environ.get("GEMINI_API_KEY") or "").strip() or None
        if api_key is None:
            logger.warning("GEMINI_API_KEY is not set; diagnoses will be refused")

        return cls(
            gemini_api_key=api_key,
            gemini_model=environ.get("GEMINI_MODEL") or DEFAULT_MODEL,
            gemini_api_base=(environ.get("GEMINI_API_BASE") or DEFAULT_API_BASE).rstrip("/"),
            request_timeout=_optional_float(environ.get("GEMINI_TIMEOUT")),
            max_content_length=int(environ.get("MAX_CONTENT_LENGTH") or DEFAULT_MAX_CONTENT_LENGTH),
        )
