"""
Service classes for the Agentic Video backend.
Each class performs one pipeline stage: narration, footage, music,
rendering, metadata and publishing.
"""

import os
import re
import json
import hashlib
import logging
from dataclasses import dataclass
from typing import List, Optional

import ffmpeg
import requests
from pydantic import ValidationError

from config import (
    settings,
    TTS_MAX_CHARS,
    DEFAULT_VOICE_ID,
    PEXELS_VIDEO_SEARCH_URL,
    MAX_FOOTAGE_CLIPS,
    METADATA_SYSTEM_PROMPT,
    METADATA_USER_TEMPLATE,
    YOUTUBE_TOKEN_URL,
    YOUTUBE_UPLOAD_URL,
    YOUTUBE_CATEGORY_ID,
    VIDEO_WIDTH,
    VIDEO_HEIGHT,
    VIDEO_FPS,
    MUSIC_VOLUME,
    HTTP_TIMEOUT,
    UPLOAD_TIMEOUT,
)
from exceptions import StageError
from schemas import PrivacyStatus, VideoMetadata

logger = logging.getLogger(__name__)

AUDIO_EXTENSIONS = (".mp3", ".wav", ".m4a", ".ogg", ".flac")


@dataclass
class NarrationAudio:
    path: str
    duration_seconds: float
    voice_id: str


@dataclass
class FootageClip:
    path: str
    query: str
    source_url: str
    duration_seconds: Optional[float] = None


@dataclass
class MusicTrack:
    path: str
    prompt: str
    source: str  # "library" | "synthesized"


@dataclass
class RenderedVideo:
    path: str
    duration_seconds: float


@dataclass
class PublishedVideo:
    video_id: str
    video_url: str


# --------------------------------------------------------------------------
# --- ffmpeg helpers ---
# --------------------------------------------------------------------------

def _stderr_tail(error: ffmpeg.Error) -> str:
    stderr = error.stderr.decode("utf8", errors="replace").strip() if error.stderr else ""
    return stderr.splitlines()[-1] if stderr else "Unknown FFmpeg error"


def run_ffmpeg(stream, what: str):
    try:
        stream.run(overwrite_output=True, capture_stdout=True, capture_stderr=True)
    except ffmpeg.Error as e:
        details = e.stderr.decode("utf8", errors="replace") if e.stderr else "Unknown FFmpeg error"
        logger.error(f"❌ FFmpeg {what} failed:\n{details}")
        raise StageError(f"FFmpeg {what} failed: {_stderr_tail(e)}")


def probe_duration(path: str) -> float:
    try:
        info = ffmpeg.probe(path)
    except ffmpeg.Error as e:
        raise StageError(f"Could not probe {os.path.basename(path)}: {_stderr_tail(e)}")

    duration = info.get("format", {}).get("duration")
    if duration is None:
        for stream in info.get("streams", []):
            if stream.get("duration"):
                duration = stream["duration"]
                break
    if duration is None:
        raise StageError(f"Could not determine the duration of {os.path.basename(path)}")
    return float(duration)


def concat_audio(paths: List[str], out_path: str) -> str:
    streams = [ffmpeg.input(p).audio for p in paths]
    joined = ffmpeg.concat(*streams, v=0, a=1)
    run_ffmpeg(ffmpeg.output(joined, out_path, acodec="libmp3lame"), "narration concat")
    return out_path


def _download(url: str, path: str, headers: Optional[dict] = None):
    with requests.get(url, headers=headers, stream=True, timeout=HTTP_TIMEOUT) as response:
        response.raise_for_status()
        with open(path, "wb") as f:
            for chunk in response.iter_content(chunk_size=1 << 16):
                f.write(chunk)


# --------------------------------------------------------------------------
# --- Narration ---
# --------------------------------------------------------------------------

def split_for_tts(text: str, max_chars: int = TTS_MAX_CHARS) -> List[str]:
    """Split text into chunks no longer than max_chars, on sentence boundaries where possible."""
    sentences = re.split(r"(?<=[.!?])\s+", text.strip())
    chunks: List[str] = []
    current = ""
    for sentence in sentences:
        while len(sentence) > max_chars:
            cut = sentence.rfind(" ", 0, max_chars)
            cut = cut if cut > 0 else max_chars
            if current:
                chunks.append(current)
                current = ""
            chunks.append(sentence[:cut].strip())
            sentence = sentence[cut:].strip()
        candidate = f"{current} {sentence}".strip() if current else sentence
        if len(candidate) > max_chars:
            chunks.append(current)
            current = sentence
        else:
            current = candidate
    if current:
        chunks.append(current)
    return [c for c in chunks if c]


class NarrationService:
    """Turns narration text into speech through an OpenAI-compatible TTS endpoint."""

    def __init__(self, api_url: Optional[str] = None, api_key: Optional[str] = None, model: Optional[str] = None):
        self.api_url = api_url or settings.tts_api_url
        self.api_key = settings.openai_api_key if api_key is None else api_key
        self.model = model or settings.tts_model

    def _request_chunk(self, text: str, voice_id: str, path: str):
        payload = {
            "model": self.model,
            "voice": voice_id,
            "input": text,
            "response_format": "mp3",
        }
        try:
            response = requests.post(
                self.api_url,
                headers={"Authorization": f"Bearer {self.api_key}"},
                json=payload,
                timeout=HTTP_TIMEOUT,
            )
            response.raise_for_status()
        except requests.RequestException as e:
            raise StageError(f"Speech synthesis request failed: {e}")

        with open(path, "wb") as f:
            f.write(response.content)

    def synthesize(self, text: str, voice_id: Optional[str], ctx) -> NarrationAudio:
        if not self.api_key:
            raise StageError("Speech synthesis is not configured (OPENAI_API_KEY is empty)")

        voice_id = voice_id or DEFAULT_VOICE_ID
        chunks = split_for_tts(text)
        paths = []
        for i, chunk in enumerate(chunks):
            path = os.path.join(ctx.work_dir, f"narration_{i:02d}.mp3")
            self._request_chunk(chunk, voice_id, path)
            paths.append(path)
            if len(chunks) > 1:
                ctx.log(f"Synthesized narration part {i + 1}/{len(chunks)}")

        if len(paths) == 1:
            out_path = paths[0]
        else:
            out_path = concat_audio(paths, os.path.join(ctx.work_dir, "narration.mp3"))

        return NarrationAudio(path=out_path, duration_seconds=probe_duration(out_path), voice_id=voice_id)


# --------------------------------------------------------------------------
# --- Footage ---
# --------------------------------------------------------------------------

def pick_video_file(video: dict, target_width: int = VIDEO_WIDTH) -> Optional[str]:
    """Choose the widest mp4 rendition not wider than target_width (else the narrowest)."""
    files = [
        f for f in video.get("video_files") or []
        if isinstance(f, dict) and f.get("file_type") == "video/mp4" and f.get("link")
    ]
    if not files:
        return None
    fitting = [f for f in files if (f.get("width") or 0) <= target_width]
    if fitting:
        return max(fitting, key=lambda f: f.get("width") or 0)["link"]
    return min(files, key=lambda f: f.get("width") or 0)["link"]


class FootageService:
    """Sources stock footage clips from the Pexels video API."""

    def __init__(self, api_key: Optional[str] = None, max_clips: int = MAX_FOOTAGE_CLIPS):
        self.api_key = settings.pexels_api_key if api_key is None else api_key
        self.max_clips = max_clips

    def _search(self, query: str) -> List[dict]:
        try:
            response = requests.get(
                PEXELS_VIDEO_SEARCH_URL,
                headers={"Authorization": self.api_key},
                params={"query": query, "per_page": 5, "orientation": "landscape", "size": "medium"},
                timeout=HTTP_TIMEOUT,
            )
            response.raise_for_status()
        except requests.RequestException as e:
            raise StageError(f"Footage search failed for '{query}': {e}")
        videos = response.json().get("videos")
        return videos if isinstance(videos, list) else []

    def source(self, queries: List[str], ctx) -> List[FootageClip]:
        if not self.api_key:
            raise StageError("Footage search is not configured (PEXELS_API_KEY is empty)")

        clips: List[FootageClip] = []
        seen_ids = set()
        for query in queries:
            if len(clips) >= self.max_clips:
                break
            for video in self._search(query):
                if ctx.cancelled.is_set():
                    raise StageError("Footage sourcing cancelled: job exceeded its time limit")
                if video.get("id") in seen_ids:
                    continue
                link = pick_video_file(video)
                if not link:
                    continue
                seen_ids.add(video.get("id"))
                path = os.path.join(ctx.work_dir, f"clip_{len(clips):02d}.mp4")
                try:
                    _download(link, path)
                except requests.RequestException as e:
                    logger.warning(f"Skipping clip {video.get('id')}: {e}")
                    continue
                clips.append(FootageClip(path=path, query=query, source_url=link, duration_seconds=video.get("duration")))
                ctx.log(f"Downloaded clip for '{query}'", {"pexelsId": video.get("id")})
                break

        if not clips:
            raise StageError(f"No footage found for queries: {', '.join(queries)}")
        return clips


# --------------------------------------------------------------------------
# --- Music ---
# --------------------------------------------------------------------------

# Root-position triads (Hz) for the synthesized ambient pad.
PAD_CHORDS = [
    (220.00, 277.18, 329.63),  # A major
    (196.00, 246.94, 293.66),  # G major
    (174.61, 220.00, 261.63),  # F major
    (220.00, 261.63, 329.63),  # A minor
    (146.83, 174.61, 220.00),  # D minor
]


def _stable_index(text: str, size: int) -> int:
    return int(hashlib.sha1(text.encode("utf-8")).hexdigest(), 16) % size


class MusicService:
    """Provides a background track: from the music library if possible, synthesized otherwise."""

    def __init__(self, library_dir: Optional[str] = None):
        self.library_dir = library_dir or settings.music_library_dir

    def _library_tracks(self) -> List[str]:
        if not os.path.isdir(self.library_dir):
            return []
        return sorted(
            os.path.join(self.library_dir, f)
            for f in os.listdir(self.library_dir)
            if f.lower().endswith(AUDIO_EXTENSIONS)
        )

    def pick_from_library(self, prompt: str) -> Optional[str]:
        tracks = self._library_tracks()
        if not tracks:
            return None
        words = set(re.findall(r"[a-z]+", prompt.lower()))

        def score(path: str) -> int:
            name = os.path.splitext(os.path.basename(path))[0].lower()
            return len(words & set(re.findall(r"[a-z]+", name)))

        best = max(score(t) for t in tracks)
        candidates = [t for t in tracks if score(t) == best]
        return candidates[_stable_index(prompt, len(candidates))]

    def _synthesize(self, prompt: str, duration_seconds: float, path: str):
        length = max(duration_seconds, 1.0) + 2
        chord = PAD_CHORDS[_stable_index(prompt, len(PAD_CHORDS))]
        tones = [
            ffmpeg.input(f"sine=frequency={freq}:duration={length:.2f}", f="lavfi")
            for freq in chord
        ]
        pad = (
            ffmpeg.filter(tones, "amix", inputs=len(tones))
            .filter("tremolo", f=0.25, d=0.35)
            .filter("lowpass", f=1200)
            .filter("afade", t="in", d=3)
            .filter("afade", t="out", st=max(length - 3, 0), d=3)
        )
        run_ffmpeg(ffmpeg.output(pad, path, acodec="libmp3lame"), "music synthesis")

    def compose(self, prompt: str, duration_seconds: float, ctx) -> MusicTrack:
        track = self.pick_from_library(prompt)
        if track:
            return MusicTrack(path=track, prompt=prompt, source="library")

        path = os.path.join(ctx.work_dir, "music.mp3")
        self._synthesize(prompt, duration_seconds, path)
        return MusicTrack(path=path, prompt=prompt, source="synthesized")


# --------------------------------------------------------------------------
# --- Rendering ---
# --------------------------------------------------------------------------

class RenderService:
    """Assembles footage, narration and music into the final mp4."""

    def __init__(self, width: int = VIDEO_WIDTH, height: int = VIDEO_HEIGHT, fps: int = VIDEO_FPS):
        self.width = width
        self.height = height
        self.fps = fps

    def _segment(self, clip: FootageClip, seconds: float):
        # loop short clips so every segment fills its slot
        return (
            ffmpeg.input(clip.path, stream_loop=-1, t=f"{seconds:.3f}")
            .video
            .filter("scale", self.width, self.height, force_original_aspect_ratio="decrease")
            .filter("pad", self.width, self.height, "(ow-iw)/2", "(oh-ih)/2")
            .filter("setsar", 1)
            .filter("fps", fps=self.fps)
        )

    def render(self, narration: NarrationAudio, clips: List[FootageClip], music: MusicTrack, ctx) -> RenderedVideo:
        if not clips:
            raise StageError("Nothing to render: no footage clips")

        duration = narration.duration_seconds
        per_clip = duration / len(clips)
        video = ffmpeg.concat(*[self._segment(c, per_clip) for c in clips], v=1, a=0).node[0]

        voice = ffmpeg.input(narration.path).audio
        bed = (
            ffmpeg.input(music.path, stream_loop=-1).audio
            .filter("atrim", duration=duration)
            .filter("volume", MUSIC_VOLUME)
        )
        # amix halves each input; restore the narration level afterwards
        audio = ffmpeg.filter([voice, bed], "amix", inputs=2, duration="first").filter("volume", 2)

        out_path = os.path.join(ctx.work_dir, "final.mp4")
        output = ffmpeg.output(
            video, audio, out_path,
            vcodec="libx264", acodec="aac", pix_fmt="yuv420p",
            r=self.fps, t=f"{duration:.3f}", movflags="+faststart",
        )
        logger.info(f"🎬 Rendering {len(clips)} clips over {duration:.1f}s of narration")
        run_ffmpeg(output, "render")
        return RenderedVideo(path=out_path, duration_seconds=probe_duration(out_path))


# --------------------------------------------------------------------------
# --- Metadata ---
# --------------------------------------------------------------------------

def parse_metadata(raw: str) -> VideoMetadata:
    """Parse the model's reply into VideoMetadata, tolerating markdown fences and chatter."""
    text = re.sub(r"```(?:json)?\n?|```", "", raw or "").strip()
    start, end = text.find("{"), text.rfind("}")
    if start == -1 or end <= start:
        raise StageError("Metadata model did not return a JSON object")
    try:
        data = json.loads(text[start:end + 1])
    except ValueError as e:
        raise StageError(f"Metadata model returned invalid JSON: {e}")

    tags = data.get("tags")
    if isinstance(tags, str):
        data["tags"] = [t for t in re.split(r"[,\n]", tags)]
    try:
        return VideoMetadata.model_validate(data)
    except ValidationError as e:
        fields = ", ".join(sorted({str(err["loc"][0]) for err in e.errors() if err.get("loc")}))
        raise StageError(f"Metadata model returned incomplete metadata ({fields or 'invalid'})")


class MetadataService:
    """Generates SEO metadata with the local Ollama model."""

    def __init__(self, api_url: Optional[str] = None, model: Optional[str] = None):
        self.api_url = api_url or settings.ollama_api_url
        self.model = model or settings.ollama_model

    def generate(self, narration: str, keywords: List[str], ctx) -> VideoMetadata:
        logger.info(f"📝 Requesting metadata from {self.model}")
        payload = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": METADATA_SYSTEM_PROMPT},
                {
                    "role": "user",
                    "content": METADATA_USER_TEMPLATE.format(
                        keywords=", ".join(keywords) or "n/a",
                        narration=narration,
                    ),
                },
            ],
            "stream": False,
            "format": "json",
            "options": {"temperature": 0.4, "top_p": 0.95},
        }
        try:
            response = requests.post(self.api_url, json=payload, timeout=HTTP_TIMEOUT)
            response.raise_for_status()
        except requests.RequestException as e:
            raise StageError(f"Could not connect to the metadata model: {e}")
        return parse_metadata(response.json().get("message", {}).get("content", ""))


# --------------------------------------------------------------------------
# --- Publishing ---
# --------------------------------------------------------------------------

def fit_tags(tags: List[str], limit: int = 500) -> List[str]:
    """YouTube caps the combined tag length; keep tags in order until the cap."""
    kept, total = [], 0
    for tag in tags:
        # multi-word tags are sent quoted
        cost = len(tag) + (2 if " " in tag else 0) + (1 if kept else 0)
        if total + cost > limit:
            break
        kept.append(tag)
        total += cost
    return kept


class YouTubePublisher:
    """Uploads the rendered video through the YouTube Data API resumable upload."""

    def __init__(
        self,
        client_id: Optional[str] = None,
        client_secret: Optional[str] = None,
        refresh_token: Optional[str] = None,
    ):
        self.client_id = settings.youtube_client_id if client_id is None else client_id
        self.client_secret = settings.youtube_client_secret if client_secret is None else client_secret
        self.refresh_token = settings.youtube_refresh_token if refresh_token is None else refresh_token

    def _access_token(self) -> str:
        response = requests.post(
            YOUTUBE_TOKEN_URL,
            data={
                "client_id": self.client_id,
                "client_secret": self.client_secret,
                "refresh_token": self.refresh_token,
                "grant_type": "refresh_token",
            },
            timeout=HTTP_TIMEOUT,
        )
        response.raise_for_status()
        token = response.json().get("access_token")
        if not token:
            raise StageError("YouTube token exchange returned no access token")
        return token

    def publish(self, video: RenderedVideo, metadata: VideoMetadata, privacy_status: PrivacyStatus, ctx) -> PublishedVideo:
        if not (self.client_id and self.client_secret and self.refresh_token):
            raise StageError("YouTube upload is not configured (client id, secret and refresh token required)")

        body = {
            "snippet": {
                "title": metadata.title,
                "description": metadata.description,
                "tags": fit_tags(metadata.tags),
                "categoryId": YOUTUBE_CATEGORY_ID,
            },
            "status": {
                "privacyStatus": PrivacyStatus(privacy_status).value,
                "selfDeclaredMadeForKids": False,
            },
        }

        try:
            token = self._access_token()
            session = requests.post(
                YOUTUBE_UPLOAD_URL,
                params={"uploadType": "resumable", "part": "snippet,status"},
                headers={
                    "Authorization": f"Bearer {token}",
                    "X-Upload-Content-Type": "video/mp4",
                    "X-Upload-Content-Length": str(os.path.getsize(video.path)),
                },
                json=body,
                timeout=HTTP_TIMEOUT,
            )
            session.raise_for_status()
            upload_url = session.headers.get("Location")
            if not upload_url:
                raise StageError("YouTube did not return a resumable upload location")

            if ctx.cancelled.is_set():
                raise StageError("Upload cancelled before sending video bytes: job exceeded its time limit")
            ctx.log("Upload session opened, sending video bytes")
            with open(video.path, "rb") as f:
                response = requests.put(
                    upload_url,
                    headers={"Authorization": f"Bearer {token}", "Content-Type": "video/mp4"},
                    data=f,
                    timeout=UPLOAD_TIMEOUT,
                )
            response.raise_for_status()
        except requests.RequestException as e:
            raise StageError(f"YouTube upload failed: {e}")

        video_id = response.json().get("id")
        if not video_id:
            raise StageError("YouTube upload finished without a video id")
        return PublishedVideo(video_id=video_id, video_url=f"https://www.youtube.com/watch?v={video_id}")
