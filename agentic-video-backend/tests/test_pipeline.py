# agentic-video-backend/tests/test_pipeline.py

import asyncio
import os
import time

import pytest

from conftest import SAMPLE_SCRIPT, FakeStudio, SlowMusicStudio, collaborators_for
from exceptions import AgentExecutionError, AgentTimeoutError
from pipeline import AgentRunner, footage_queries, run_agent, topic_music_prompt
from schemas import JobRequest, PrivacyStatus
from script_parser import parse_script

STAGE_ORDER = ["script", "narration", "footage", "music", "render", "metadata", "upload"]


def _request(**overrides):
    return JobRequest(script=SAMPLE_SCRIPT, **overrides)


def _stages_in(logs):
    stages = []
    for entry in logs:
        if entry.stage not in stages:
            stages.append(entry.stage)
    return stages


def test_successful_run_assembles_result(studio, jobs_dir):
    runner = AgentRunner(collaborators_for(studio), work_root=jobs_dir)

    result = asyncio.run(runner.run(_request(voiceId="alloy", privacyStatus=PrivacyStatus.UNLISTED)))

    assert studio.calls == ["narration", "footage", "music", "render", "metadata", "upload"]
    assert result.video_id == "abc123XYZ"
    assert result.video_url.endswith("abc123XYZ")
    assert result.duration_seconds == 42.5
    assert result.metadata.tags == ["video tools", "ai", "production"]
    assert _stages_in(result.logs) == STAGE_ORDER


def test_each_stage_logs_start_and_completion(studio, jobs_dir):
    result = asyncio.run(run_agent(_request(), collaborators_for(studio), work_root=jobs_dir))

    for stage in STAGE_ORDER:
        messages = [e.message for e in result.logs if e.stage == stage]
        assert messages[0].endswith("...")
        assert messages[-1] == "Completed"

    upload = [e for e in result.logs if e.stage == "upload"][-1]
    assert upload.data["privacyStatus"] == "private"
    assert "elapsedSeconds" in upload.data


def test_collaborator_progress_entries_are_kept(studio, jobs_dir):
    result = asyncio.run(run_agent(_request(), collaborators_for(studio), work_root=jobs_dir))
    assert any(e.stage == "footage" and e.message == "Downloaded clip" for e in result.logs)


@pytest.mark.parametrize("failing_stage", ["narration", "footage", "music", "render", "metadata", "upload"])
def test_failure_halts_remaining_stages(failing_stage, jobs_dir):
    """
    A failure at stage N leaves log entries for stages 1..N only.
    """
    studio = FakeStudio(fail_at=failing_stage)
    runner = AgentRunner(collaborators_for(studio), work_root=jobs_dir)

    with pytest.raises(AgentExecutionError) as exc:
        asyncio.run(runner.run(_request()))

    position = STAGE_ORDER.index(failing_stage)
    assert exc.value.stage == failing_stage
    assert f"{failing_stage} exploded" in exc.value.message
    assert _stages_in(exc.value.logs) == STAGE_ORDER[:position + 1]
    assert studio.calls[-1] == failing_stage
    assert exc.value.logs[-1].message.startswith("Failed:")
    assert exc.value.logs[-1].data == {"error": "StageError"}


def test_script_without_narration_fails_first_stage(studio, jobs_dir):
    script = "[" + "establishing shot of the ocean " * 5 + "]"
    runner = AgentRunner(collaborators_for(studio), work_root=jobs_dir)

    with pytest.raises(AgentExecutionError) as exc:
        asyncio.run(runner.run(JobRequest(script=script)))

    assert exc.value.stage == "script"
    assert studio.calls == []


def test_timeout_surfaces_partial_logs(jobs_dir):
    studio = SlowMusicStudio()
    runner = AgentRunner(collaborators_for(studio), work_root=jobs_dir, max_duration_seconds=0.2)

    with pytest.raises(AgentTimeoutError) as exc:
        asyncio.run(runner.run(_request()))

    assert exc.value.stage == "music"
    assert "exceeded 0.2 seconds" in exc.value.message
    assert _stages_in(exc.value.logs) == ["script", "narration", "footage", "music"]
    assert exc.value.logs[-1].message == "Timed out after 0.2s"



class SlowPublishStudio(FakeStudio):
    """Blocking publisher that outlives the ceiling and reports what it saw."""

    def __init__(self, delay):
        super().__init__()
        self.delay = delay
        self.seen = {}

    def publish(self, video, metadata, privacy_status, ctx):
        self._enter("upload")
        time.sleep(self.delay)
        self.seen["cancelled"] = ctx.cancelled.is_set()
        self.seen["work_dir_present"] = os.path.isdir(ctx.work_dir)
        self.seen["work_dir"] = ctx.work_dir
        return super().publish(video, metadata, privacy_status, ctx)


def test_timed_out_worker_is_cancelled_and_keeps_its_work_dir(jobs_dir):
    studio = SlowPublishStudio(delay=0.8)
    runner = AgentRunner(collaborators_for(studio), work_root=jobs_dir, max_duration_seconds=0.3)

    # asyncio.run waits for the default executor, so the publisher has returned here
    with pytest.raises(AgentTimeoutError) as exc:
        asyncio.run(runner.run(_request()))

    assert exc.value.stage == "upload"
    assert exc.value.logs[-1].data["stageStillRunning"] is True
    assert studio.seen["cancelled"] is True
    assert studio.seen["work_dir_present"] is True

    deadline = time.monotonic() + 5
    while os.path.isdir(studio.seen["work_dir"]) and time.monotonic() < deadline:
        time.sleep(0.05)
    assert not os.path.isdir(studio.seen["work_dir"])


@pytest.mark.parametrize("ceiling", [0, -1])
def test_non_positive_ceiling_is_rejected(studio, jobs_dir, ceiling):
    with pytest.raises(ValueError):
        AgentRunner(collaborators_for(studio), work_root=jobs_dir, max_duration_seconds=ceiling)


def test_default_work_root_comes_from_settings(studio):
    from config import settings

    runner = AgentRunner(collaborators_for(studio))
    assert runner.work_root == settings.jobs_dir

def test_replayed_requests_are_independent(studio, jobs_dir):
    runner = AgentRunner(collaborators_for(studio), work_root=jobs_dir)
    request = _request()

    first = asyncio.run(runner.run(request))
    second = asyncio.run(runner.run(request))

    assert len(first.logs) == len(second.logs)
    job_ids = {e.data["jobId"] for e in first.logs + second.logs if e.data and "jobId" in e.data}
    assert len(job_ids) == 2
    assert os.listdir(jobs_dir) == []


def test_music_prompt_falls_back_to_topic(studio, jobs_dir):
    result = asyncio.run(run_agent(_request(), collaborators_for(studio), work_root=jobs_dir))
    music = [e for e in result.logs if e.stage == "music"][-1]
    assert music.data["prompt"].startswith("Unobtrusive ambient background music")

    result = asyncio.run(run_agent(_request(musicPrompt="lush synth pads"), collaborators_for(studio), work_root=jobs_dir))
    music = [e for e in result.logs if e.stage == "music"][-1]
    assert music.data["prompt"] == "lush synth pads"


def test_footage_queries_prefer_directions():
    parsed = parse_script(SAMPLE_SCRIPT)
    queries = footage_queries(parsed)

    assert queries[:2] == ["close-up of a laptop editing timeline", "drone shot over a city at sunrise"]
    assert len(queries) == len({q.lower() for q in queries})
    assert "Unobtrusive" in topic_music_prompt(parsed)
