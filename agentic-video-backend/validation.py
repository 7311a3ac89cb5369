"""
Request validation for the agent endpoint.
Turns a raw request body into a normalized JobRequest or a typed error.
"""

import json
import logging
from typing import Any, List, Union

from pydantic import ValidationError

from config import MIN_SCRIPT_LENGTH
from exceptions import InvalidPayload, InvalidRequest
from schemas import JobRequest, PrivacyStatus

logger = logging.getLogger(__name__)

FIELD_LABELS = {
    "script": "Script",
    "voiceId": "Voice ID",
    "musicPrompt": "Music prompt",
    "privacyStatus": "Privacy status",
}


def parse_payload(raw: Union[bytes, str]) -> Any:
    """Parse the request body as JSON."""
    try:
        return json.loads(raw)
    except (ValueError, TypeError):
        raise InvalidPayload()


def _describe_error(error: dict) -> str:
    loc = error.get("loc") or ()
    if not loc:
        return "Request body must be a JSON object"

    field = str(loc[0])
    label = FIELD_LABELS.get(field, field)
    kind = error.get("type")

    if kind == "missing":
        return f"{label} is required"
    if kind == "string_too_short" and field == "script":
        return f"Script must be at least {MIN_SCRIPT_LENGTH} characters"
    if kind == "string_type":
        return f"{label} must be a string"
    if kind == "enum":
        allowed = ", ".join(status.value for status in PrivacyStatus)
        return f"{label} must be one of {allowed}"
    return f"{label}: {error.get('msg', 'invalid value')}"


def validate_request(payload: Any) -> JobRequest:
    """
    Validate a parsed payload against the JobRequest schema.
    Every violated field is reported, not only the first one.
    """
    try:
        return JobRequest.model_validate(payload)
    except ValidationError as e:
        messages: List[str] = []
        for error in e.errors():
            message = _describe_error(error)
            if message not in messages:
                messages.append(message)
        logger.warning(f"Rejected job request: {'; '.join(messages)}")
        raise InvalidRequest(messages)


def load_job_request(raw: Union[bytes, str]) -> JobRequest:
    return validate_request(parse_payload(raw))
