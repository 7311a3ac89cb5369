"""
Configuration file for the Agentic Video backend.
Contains the environment-backed settings, global constants and prompt
engineering templates.
"""

import os
from functools import lru_cache

from pydantic import AliasChoices, Field, ValidationInfo, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# --- Constants ---
MIN_SCRIPT_LENGTH = 100
CORS_ORIGINS = ["http://localhost:3000", "http://127.0.0.1:3000"]

# Narration (OpenAI-compatible speech endpoint)
DEFAULT_VOICE_ID = "alloy"
TTS_MAX_CHARS = 4000

# Footage (Pexels video search)
PEXELS_VIDEO_SEARCH_URL = "https://api.pexels.com/videos/search"
MAX_FOOTAGE_CLIPS = 6

# Publishing (YouTube Data API v3)
YOUTUBE_TOKEN_URL = "https://oauth2.googleapis.com/token"
YOUTUBE_UPLOAD_URL = "https://www.googleapis.com/upload/youtube/v3/videos"
YOUTUBE_CATEGORY_ID = "28"  # Science & Technology

# Render output
VIDEO_WIDTH = 1920
VIDEO_HEIGHT = 1080
VIDEO_FPS = 30
MUSIC_VOLUME = 0.12

HTTP_TIMEOUT = 120
# (connect, read) for the video upload PUT
UPLOAD_TIMEOUT = (10, 600)


class AgentSettings(BaseSettings):
    """Application settings loaded from environment variables (AGENT_* unless noted)."""

    # Whole-request ceiling, in seconds
    max_duration_seconds: float = Field(300, gt=0)

    host: str = "127.0.0.1"
    port: int = Field(8000, gt=0, lt=65536)

    media_dir: str = os.path.join(os.getcwd(), "media")
    jobs_dir: str = Field("", validate_default=True)
    music_library_dir: str = Field(
        "", validate_default=True, validation_alias=AliasChoices("MUSIC_LIBRARY_DIR", "music_library_dir")
    )

    # Narration
    tts_api_url: str = Field(
        "https://api.openai.com/v1/audio/speech", validation_alias=AliasChoices("TTS_API_URL", "tts_api_url")
    )
    tts_model: str = Field("tts-1", validation_alias=AliasChoices("TTS_MODEL", "tts_model"))
    openai_api_key: str = Field("", validation_alias=AliasChoices("OPENAI_API_KEY", "openai_api_key"))

    # Footage
    pexels_api_key: str = Field("", validation_alias=AliasChoices("PEXELS_API_KEY", "pexels_api_key"))

    # Metadata (Ollama chat)
    ollama_api_url: str = Field(
        "http://localhost:11434/api/chat", validation_alias=AliasChoices("OLLAMA_API_URL", "ollama_api_url")
    )
    ollama_model: str = Field("llama3.1:8b", validation_alias=AliasChoices("OLLAMA_MODEL", "ollama_model"))

    # Publishing
    youtube_client_id: str = Field("", validation_alias=AliasChoices("YOUTUBE_CLIENT_ID", "youtube_client_id"))
    youtube_client_secret: str = Field("", validation_alias=AliasChoices("YOUTUBE_CLIENT_SECRET", "youtube_client_secret"))
    youtube_refresh_token: str = Field("", validation_alias=AliasChoices("YOUTUBE_REFRESH_TOKEN", "youtube_refresh_token"))

    model_config = SettingsConfigDict(env_prefix="AGENT_", env_file=".env", extra="ignore")

    @field_validator(
        "openai_api_key", "pexels_api_key", "youtube_client_id",
        "youtube_client_secret", "youtube_refresh_token", mode="before",
    )
    @classmethod
    def strip_secrets(cls, v):
        """Strip whitespace and newlines from keys loaded from secrets."""
        if isinstance(v, str):
            return v.strip()
        return v

    @field_validator("jobs_dir")
    @classmethod
    def default_jobs_dir(cls, v: str, info: ValidationInfo) -> str:
        return v or os.path.join(info.data.get("media_dir", "media"), "jobs")

    @field_validator("music_library_dir")
    @classmethod
    def default_music_dir(cls, v: str, info: ValidationInfo) -> str:
        return v or os.path.join(info.data.get("media_dir", "media"), "music")


@lru_cache()
def get_settings() -> AgentSettings:
    """Get cached settings instance."""
    return AgentSettings()


settings = get_settings()


# --- Prompt Engineering Section ---

METADATA_SYSTEM_PROMPT = """You are a YouTube SEO specialist. You write metadata for narrated videos.

VERY IMPORTANT RULES:
1.  Your response MUST BE ONLY one JSON object. No explanations or markdown.
2.  The object MUST have exactly these keys: "title", "description", "tags", "thumbnailPrompt".
3.  "title" is at most 90 characters, curiosity-driven, no clickbait in ALL CAPS.
4.  "description" is 2-4 short paragraphs summarizing the video, ending with 3-5 hashtags.
5.  "tags" is a list of 8-15 lowercase search phrases.
6.  "thumbnailPrompt" is one sentence describing a striking thumbnail image for an image model.
"""

METADATA_USER_TEMPLATE = """Write the metadata for this video.

Key topics: {keywords}

Narration:
{narration}
"""
