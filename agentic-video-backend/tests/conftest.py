# agentic-video-backend/tests/conftest.py

import asyncio
import os
import sys

import pytest

# Add the parent directory to the Python path so we can import from it
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from exceptions import StageError
from pipeline import AgentCollaborators
from schemas import VideoMetadata
from services import FootageClip, MusicTrack, NarrationAudio, PublishedVideo, RenderedVideo

SAMPLE_SCRIPT = (
    "Welcome back! Today we look at five tools that change how small studios make video.\n\n"
    "[close-up of a laptop editing timeline]\n"
    "First, an assistant that drafts storyboards from a single paragraph of notes.\n\n"
    "Next, a voice studio that turns any script into warm, natural narration in minutes.\n\n"
    "(Scene: drone shot over a city at sunrise)\n"
    "Finally, a music engine that scores every scene to match its mood."
)


class FakeStudio:
    """Stands in for every stage collaborator and records the order it was called in."""

    def __init__(self, fail_at=None, duration=42.5):
        self.fail_at = fail_at
        self.duration = duration
        self.calls = []

    def _enter(self, name):
        self.calls.append(name)
        if name == self.fail_at:
            raise StageError(f"{name} exploded")

    def synthesize(self, text, voice_id, ctx):
        self._enter("narration")
        return NarrationAudio(path=os.path.join(ctx.work_dir, "narration.mp3"), duration_seconds=self.duration, voice_id=voice_id or "alloy")

    def source(self, queries, ctx):
        self._enter("footage")
        ctx.log("Downloaded clip", {"query": queries[0]})
        return [FootageClip(path=os.path.join(ctx.work_dir, f"clip_{i}.mp4"), query=q, source_url="https://example.com/v.mp4") for i, q in enumerate(queries[:3])]

    def compose(self, prompt, duration_seconds, ctx):
        self._enter("music")
        return MusicTrack(path=os.path.join(ctx.work_dir, "music.mp3"), prompt=prompt, source="synthesized")

    def render(self, narration, clips, music, ctx):
        self._enter("render")
        return RenderedVideo(path=os.path.join(ctx.work_dir, "final.mp4"), duration_seconds=narration.duration_seconds)

    def generate(self, narration, keywords, ctx):
        self._enter("metadata")
        return VideoMetadata(
            title="Five Tools Small Studios Need",
            description="A quick tour of five production tools. #video #tools",
            tags=["video tools", "ai", "production"],
            thumbnail_prompt="A glowing laptop surrounded by film reels",
        )

    def publish(self, video, metadata, privacy_status, ctx):
        self._enter("upload")
        return PublishedVideo(video_id="abc123XYZ", video_url="https://www.youtube.com/watch?v=abc123XYZ")


class SlowMusicStudio(FakeStudio):
    async def compose(self, prompt, duration_seconds, ctx):
        self._enter("music")
        await asyncio.sleep(5)


def collaborators_for(studio) -> AgentCollaborators:
    return AgentCollaborators(
        narration=studio,
        footage=studio,
        music=studio,
        renderer=studio,
        metadata=studio,
        publisher=studio,
    )


@pytest.fixture
def studio():
    return FakeStudio()


@pytest.fixture
def jobs_dir(tmp_path):
    return str(tmp_path / "jobs")
