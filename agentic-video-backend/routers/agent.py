"""
Router for the video agent endpoint.
Validates the request, runs the pipeline once and shapes the response envelope.
"""

import logging
from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from exceptions import AgentExecutionError, InvalidPayload, InvalidRequest
from results import failure_response, success_response
from schemas import HealthResponse
from validation import load_job_request


# Create the router
router = APIRouter(tags=["agent"])


@router.post("/api/agent")
async def run_agent_job(request: Request):
    """
    Produces and publishes one video from the submitted script.
    Blocks until the pipeline succeeds, fails, or hits the execution ceiling.
    """
    raw_body = await request.body()
    try:
        job_request = load_job_request(raw_body)
    except (InvalidPayload, InvalidRequest) as e:
        return JSONResponse(failure_response(e.message), status_code=400)

    runner = request.app.state.runner
    logging.info(f"✨ Agent job submitted (voice={job_request.voice_id or 'default'}, privacy={job_request.privacy_status.value})")

    try:
        result = await runner.run(job_request)
    except AgentExecutionError as e:
        logging.error(f"Agent job failed at stage '{e.stage}': {e.message}")
        return JSONResponse(failure_response(e.message, e.logs), status_code=500)
    except Exception as e:
        logging.exception("Agent job failed with an unexpected error")
        return JSONResponse(failure_response(str(e) or "Unexpected error"), status_code=500)

    return JSONResponse(success_response(result))


@router.get("/health")
async def health(request: Request):
    settings = request.app.state.settings
    return HealthResponse(status="healthy", max_duration_seconds=settings.max_duration_seconds).to_wire()
