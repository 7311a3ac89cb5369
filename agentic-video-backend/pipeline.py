"""
Stage executor for the video agent.

One job runs a fixed sequence of stages, strictly one after another:

    script -> narration -> footage -> music -> render -> metadata -> upload

Each stage reads what earlier stages left on the JobState. The first stage
that raises stops the job; nothing after it runs, and the caller receives an
AgentExecutionError carrying the log trail up to that point.
"""

import asyncio
import inspect
import logging
import os
import shutil
import threading
import time
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from config import MAX_FOOTAGE_CLIPS, settings
from exceptions import AgentExecutionError, AgentTimeoutError, StageError
from execution_log import ExecutionLog
from results import assemble_result
from schemas import JobRequest, JobResult, VideoMetadata
from script_parser import ParsedScript, parse_script
from services import (
    FootageClip,
    FootageService,
    MetadataService,
    MusicService,
    MusicTrack,
    NarrationAudio,
    NarrationService,
    PublishedVideo,
    RenderedVideo,
    RenderService,
    YouTubePublisher,
)

logger = logging.getLogger(__name__)


@dataclass
class StageContext:
    """
    Handed to every collaborator: its scratch directory, a way to log progress
    and the job's cancellation flag. Blocking collaborators should check
    `cancelled` before irreversible work.
    """
    stage: str
    work_dir: str
    execution_log: ExecutionLog
    cancelled: threading.Event = field(default_factory=threading.Event)
    # set once a worker-thread collaborator has returned or raised
    worker_done: Optional[threading.Event] = None

    def log(self, message: str, data: Optional[Dict[str, Any]] = None):
        self.execution_log.append(self.stage, message, data)


@dataclass
class AgentCollaborators:
    narration: Any
    footage: Any
    music: Any
    renderer: Any
    metadata: Any
    publisher: Any

    @classmethod
    def default(cls) -> "AgentCollaborators":
        return cls(
            narration=NarrationService(),
            footage=FootageService(),
            music=MusicService(),
            renderer=RenderService(),
            metadata=MetadataService(),
            publisher=YouTubePublisher(),
        )


@dataclass
class JobState:
    request: JobRequest
    job_id: str
    current_stage: Optional[str] = None
    context: Optional[StageContext] = None
    cancelled: threading.Event = field(default_factory=threading.Event)
    script: Optional[ParsedScript] = None
    narration: Optional[NarrationAudio] = None
    clips: List[FootageClip] = field(default_factory=list)
    music: Optional[MusicTrack] = None
    video: Optional[RenderedVideo] = None
    metadata: Optional[VideoMetadata] = None
    published: Optional[PublishedVideo] = None


async def call_collaborator(ctx: StageContext, func, *args):
    """Await async collaborators; run blocking ones in a worker thread. ctx is passed last."""
    if inspect.iscoroutinefunction(func):
        return await func(*args, ctx)

    done = threading.Event()
    ctx.worker_done = done

    def work():
        try:
            return func(*args, ctx)
        finally:
            done.set()

    return await asyncio.to_thread(work)


def footage_queries(script: ParsedScript, limit: int = MAX_FOOTAGE_CLIPS * 2) -> List[str]:
    queries: List[str] = []
    for query in script.directions + script.keywords:
        query = query.strip()
        if query and query.lower() not in (q.lower() for q in queries):
            queries.append(query)
    return queries[:limit]


def topic_music_prompt(script: ParsedScript) -> str:
    topic = ", ".join(script.keywords[:3]) or "a narrated story"
    return f"Unobtrusive ambient background music for a video about {topic}"


class AgentRunner:
    """Runs the production pipeline for one JobRequest at a time per call."""

    STAGES = (
        ("script", "Parsing script and stage directions"),
        ("narration", "Synthesizing narration"),
        ("footage", "Sourcing footage"),
        ("music", "Preparing background music"),
        ("render", "Rendering video"),
        ("metadata", "Generating SEO metadata"),
        ("upload", "Uploading video"),
    )

    def __init__(
        self,
        collaborators: Optional[AgentCollaborators] = None,
        work_root: Optional[str] = None,
        max_duration_seconds: Optional[float] = None,
    ):
        if max_duration_seconds is not None and max_duration_seconds <= 0:
            raise ValueError(f"max_duration_seconds must be positive, got {max_duration_seconds}")
        self.collaborators = collaborators or AgentCollaborators.default()
        self.work_root = work_root or settings.jobs_dir
        self.max_duration_seconds = max_duration_seconds

    # --- stages -----------------------------------------------------------

    async def _run_script(self, state: JobState, ctx: StageContext) -> Dict[str, Any]:
        parsed = parse_script(state.request.script)
        if not parsed.narration:
            raise StageError("Script has no narration once stage directions are removed")
        state.script = parsed
        return {
            "jobId": state.job_id,
            "narrationChars": len(parsed.narration),
            "directions": len(parsed.directions),
            "keywords": parsed.keywords,
        }

    async def _run_narration(self, state: JobState, ctx: StageContext) -> Dict[str, Any]:
        state.narration = await call_collaborator(
            ctx, self.collaborators.narration.synthesize, state.script.narration, state.request.voice_id
        )
        return {
            "voiceId": state.narration.voice_id,
            "durationSeconds": round(state.narration.duration_seconds, 2),
        }

    async def _run_footage(self, state: JobState, ctx: StageContext) -> Dict[str, Any]:
        queries = footage_queries(state.script)
        state.clips = list(await call_collaborator(ctx, self.collaborators.footage.source, queries))
        if not state.clips:
            raise StageError("No footage clips were sourced")
        return {"clips": len(state.clips), "queries": [c.query for c in state.clips]}

    async def _run_music(self, state: JobState, ctx: StageContext) -> Dict[str, Any]:
        prompt = state.request.music_prompt or topic_music_prompt(state.script)
        state.music = await call_collaborator(
            ctx, self.collaborators.music.compose, prompt, state.narration.duration_seconds
        )
        return {"prompt": state.music.prompt, "source": state.music.source}

    async def _run_render(self, state: JobState, ctx: StageContext) -> Dict[str, Any]:
        state.video = await call_collaborator(
            ctx, self.collaborators.renderer.render, state.narration, state.clips, state.music
        )
        return {"durationSeconds": round(state.video.duration_seconds, 2)}

    async def _run_metadata(self, state: JobState, ctx: StageContext) -> Dict[str, Any]:
        state.metadata = await call_collaborator(
            ctx, self.collaborators.metadata.generate, state.script.narration, state.script.keywords
        )
        return {"title": state.metadata.title, "tags": list(state.metadata.tags)}

    async def _run_upload(self, state: JobState, ctx: StageContext) -> Dict[str, Any]:
        state.published = await call_collaborator(
            ctx, self.collaborators.publisher.publish,
            state.video,
            state.metadata,
            state.request.privacy_status,
        )
        return {
            "videoId": state.published.video_id,
            "videoUrl": state.published.video_url,
            "privacyStatus": state.request.privacy_status.value,
        }

    # --- execution --------------------------------------------------------

    async def _execute(self, state: JobState, log: ExecutionLog, work_dir: str):
        for name, message in self.STAGES:
            state.current_stage = name
            ctx = StageContext(stage=name, work_dir=work_dir, execution_log=log, cancelled=state.cancelled)
            state.context = ctx
            log.append(name, f"{message}...")
            started = time.monotonic()
            try:
                data = await getattr(self, f"_run_{name}")(state, ctx)
            except Exception as e:
                reason = str(e) or e.__class__.__name__
                log.append(name, f"Failed: {reason}", {"error": e.__class__.__name__})
                logger.error(f"❌ Job {state.job_id} failed at stage '{name}': {reason}")
                raise AgentExecutionError(f"Stage '{name}' failed: {reason}", log.snapshot(), stage=name) from e

            data = dict(data or {})
            data["elapsedSeconds"] = round(time.monotonic() - started, 2)
            log.append(name, "Completed", data)

    @staticmethod
    def _worker_running(state: JobState) -> bool:
        worker = state.context.worker_done if state.context else None
        return worker is not None and not worker.is_set()

    def _release_work_dir(self, state: JobState, work_dir: str):
        """Remove the scratch dir now, or once a still-running worker thread settles."""
        if not self._worker_running(state):
            shutil.rmtree(work_dir, ignore_errors=True)
            return

        worker = state.context.worker_done
        logger.warning(f"⏳ Job {state.job_id}: stage '{state.current_stage}' still running, cleanup deferred")

        def remove_when_settled():
            worker.wait()
            shutil.rmtree(work_dir, ignore_errors=True)

        threading.Thread(target=remove_when_settled, name=f"cleanup-{state.job_id}", daemon=True).start()

    async def run(self, request: JobRequest) -> JobResult:
        job_id = uuid.uuid4().hex[:12]
        log = ExecutionLog(job_id)
        state = JobState(request=request, job_id=job_id)
        work_dir = os.path.join(self.work_root, job_id)
        os.makedirs(work_dir, exist_ok=True)
        logger.info(f"🚀 Job {job_id} started ({len(request.script)} chars, {request.privacy_status.value})")

        try:
            if self.max_duration_seconds is not None:
                await asyncio.wait_for(self._execute(state, log, work_dir), timeout=self.max_duration_seconds)
            else:
                await self._execute(state, log, work_dir)
        except asyncio.TimeoutError:
            state.cancelled.set()
            stage = state.current_stage or "agent"
            limit = f"{self.max_duration_seconds:g}"
            log.append(
                stage,
                f"Timed out after {limit}s",
                {"maxDurationSeconds": self.max_duration_seconds, "stageStillRunning": self._worker_running(state)},
            )
            logger.error(f"❌ Job {job_id} timed out during stage '{stage}'")
            raise AgentTimeoutError(f"Agent execution exceeded {limit} seconds", log.snapshot(), stage=stage) from None
        finally:
            self._release_work_dir(state, work_dir)

        result = assemble_result(state, log)
        logger.info(f"✅ Job {job_id} finished: {result.video_url}")
        return result


async def run_agent(
    request: JobRequest,
    collaborators: Optional[AgentCollaborators] = None,
    work_root: Optional[str] = None,
    max_duration_seconds: Optional[float] = None,
) -> JobResult:
    runner = AgentRunner(collaborators, work_root=work_root, max_duration_seconds=max_duration_seconds)
    return await runner.run(request)
