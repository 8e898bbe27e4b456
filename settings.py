import os
from dataclasses import dataclass

from dotenv import load_dotenv
from google import genai
from google.genai import types

DEFAULT_IMAGE_MODEL = "gemini-2.5-flash-image"
DEFAULT_CHAT_MODEL = "gemini-2.5-flash"
DEFAULT_TIMEOUT_MS = 300_000
DEFAULT_MAX_UPLOAD_BYTES = 20 * 1024 * 1024


@dataclass(frozen=True)
class Settings:
    api_key: str | None = None
    image_model: str = DEFAULT_IMAGE_MODEL
    chat_model: str = DEFAULT_CHAT_MODEL
    timeout_ms: int = DEFAULT_TIMEOUT_MS
    port: int = 5001
    log_level: str = "INFO"
    max_upload_bytes: int = DEFAULT_MAX_UPLOAD_BYTES

    @classmethod
    def from_env(cls, environ=None):
        """Read settings from the environment, loading `.env` first when reading os.environ."""
        if environ is None:
            load_dotenv()
            environ = os.environ

        api_key = (environ.get("GEMINI_API_KEY") or environ.get("API_KEY") or "").strip()
        return cls(
            api_key=api_key or None,
            image_model=environ.get("GEMINI_IMAGE_MODEL", DEFAULT_IMAGE_MODEL),
            chat_model=environ.get("GEMINI_CHAT_MODEL", DEFAULT_CHAT_MODEL),
            timeout_ms=int(environ.get("GEMINI_TIMEOUT_MS", DEFAULT_TIMEOUT_MS)),
            port=int(environ.get("PORT", 5001)),
            log_level=environ.get("LOG_LEVEL", "INFO").upper(),
            max_upload_bytes=int(environ.get("MAX_UPLOAD_BYTES", DEFAULT_MAX_UPLOAD_BYTES)),
        )


def create_client(settings):
    """Build the Gemini client, or return None when no API key is configured."""
    if not settings.api_key:
        return None
    return genai.Client(
        api_key=settings.api_key,
        http_options=types.HttpOptions(timeout=settings.timeout_ms),
    )
