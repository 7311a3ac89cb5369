"""
Assembles job results and the JSON envelopes returned by the agent endpoint.
"""

from typing import Any, Dict, List, Optional

from exceptions import AgentExecutionError
from schemas import JobResult, LogEntry


def assemble_result(state, log) -> JobResult:
    """Build the success result from the terminal outputs of a finished job."""
    missing = [
        name
        for name, value in (("render", state.video), ("metadata", state.metadata), ("upload", state.published))
        if value is None
    ]
    if missing:
        raise AgentExecutionError(f"Pipeline finished without {', '.join(missing)} output", log.snapshot())
    if state.video.duration_seconds <= 0:
        raise AgentExecutionError("Rendered video has no duration", log.snapshot(), stage="render")

    return JobResult(
        video_url=state.published.video_url,
        video_id=state.published.video_id,
        duration_seconds=state.video.duration_seconds,
        metadata=state.metadata,
        logs=log.snapshot(),
    )


def success_response(result: JobResult) -> Dict[str, Any]:
    return {"ok": True, **result.to_wire()}


def failure_response(error: str, logs: Optional[List[LogEntry]] = None) -> Dict[str, Any]:
    body: Dict[str, Any] = {"ok": False, "error": error or "Unexpected error"}
    if logs is not None:
        body["logs"] = [entry.to_wire() for entry in logs]
    return body
