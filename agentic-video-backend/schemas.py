"""
Pydantic models for data validation in the Agentic Video backend.
Wire format uses camelCase keys; Python code uses snake_case attributes.
"""

from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic_core import PydanticCustomError
from pydantic.alias_generators import to_camel

from config import MIN_SCRIPT_LENGTH


class AgentModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_wire(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class PrivacyStatus(str, Enum):
    """YouTube privacy setting applied on upload."""
    PUBLIC = "public"
    PRIVATE = "private"
    UNLISTED = "unlisted"


class JobRequest(AgentModel):
    """
    Request model for producing and publishing one video.
    Only the camelCase keys are read; anything else (snake_case included) is dropped.
    """
    model_config = ConfigDict(frozen=True, extra="ignore", populate_by_name=False)

    script: str
    voice_id: Optional[str] = None
    music_prompt: Optional[str] = None
    privacy_status: PrivacyStatus = PrivacyStatus.PRIVATE

    @field_validator("script")
    @classmethod
    def _long_enough(cls, value: str) -> str:
        # length in UTF-16 code units, as browsers count it
        if len(value.encode("utf-16-le")) // 2 < MIN_SCRIPT_LENGTH:
            raise PydanticCustomError(
                "string_too_short",
                "String should have at least {min_length} characters",
                {"min_length": MIN_SCRIPT_LENGTH},
            )
        return value

    @field_validator("voice_id", "music_prompt", mode="before")
    @classmethod
    def _reject_null(cls, value: Any) -> Any:
        # omitted is fine, an explicit null is not
        if value is None:
            raise PydanticCustomError("string_type", "Input should be a valid string")
        return value

    @field_validator("voice_id", "music_prompt")
    @classmethod
    def _blank_is_unset(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        value = value.strip()
        return value or None


class LogEntry(AgentModel):
    """One timestamped progress record emitted during a job."""
    model_config = ConfigDict(frozen=True)

    stage: str
    message: str
    timestamp: str
    data: Optional[Dict[str, Any]] = None


class VideoMetadata(AgentModel):
    """SEO metadata generated for the upload."""
    title: str = Field(min_length=1)
    description: str
    tags: List[str] = Field(min_length=1)
    thumbnail_prompt: str

    @field_validator("title")
    @classmethod
    def _trim_title(cls, value: str) -> str:
        # YouTube rejects titles over 100 characters
        value = value.strip()
        if len(value) > 100:
            value = value[:97].rstrip() + "..."
        return value

    @field_validator("tags")
    @classmethod
    def _dedupe_tags(cls, value: List[str]) -> List[str]:
        seen = set()
        tags = []
        for tag in value:
            tag = tag.strip().lstrip("#")
            if tag and tag.lower() not in seen:
                seen.add(tag.lower())
                tags.append(tag)
        if not tags:
            raise ValueError("tags must contain at least one non-empty tag")
        return tags


class JobResult(AgentModel):
    """Everything the caller learns about a published video."""
    video_url: str
    video_id: str
    duration_seconds: float = Field(gt=0)
    metadata: VideoMetadata
    logs: List[LogEntry] = []


class HealthResponse(AgentModel):
    status: str
    max_duration_seconds: float
