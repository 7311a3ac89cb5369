import logging
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from config import AgentSettings, CORS_ORIGINS, get_settings
from pipeline import AgentCollaborators, AgentRunner
from routers import agent

# --------------------------------------------------------------------------
# --- Configuration & Setup ---
# --------------------------------------------------------------------------

logging.basicConfig(level=logging.INFO, format="%(asctime)s - %(levelname)s - %(message)s")


def create_app(
    settings: Optional[AgentSettings] = None,
    collaborators: Optional[AgentCollaborators] = None,
) -> FastAPI:
    """Build the API. Runtime settings are fixed here, once, for the app's lifetime."""
    settings = settings or get_settings()

    app = FastAPI(
        title="Agentic Video",
        description="Turns a narration script into a rendered, published YouTube video.",
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.state.settings = settings
    app.state.runner = AgentRunner(
        collaborators or AgentCollaborators.default(),
        work_root=settings.jobs_dir,
        max_duration_seconds=settings.max_duration_seconds,
    )

    app.include_router(agent.router)
    return app


app = create_app()
