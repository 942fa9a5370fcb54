"""
Shared fixtures: settings, an in-memory object store, a fake FFmpeg/FFprobe
that writes the files the real engine would, and an httpx mock transport
serving source downloads and recording webhook deliveries.
"""

import json
import subprocess
from pathlib import Path
from typing import Dict, List, Optional

import httpx
import pytest

from openmedia.core.config import Settings
from openmedia.services import transcode_service
from openmedia.services.job_store import JobRegistry
from openmedia.services.notifier import WebhookNotifier
from openmedia.services.pipeline import JobPipeline
from openmedia.services.transcode_service import TranscodeService

API_TOKEN = "test-token"
WEBHOOK_SECRET = "webhook-secret"
SOURCE_URL = "http://source.test/video.mp4"
MISSING_SOURCE_URL = "http://source.test/missing.mp4"
WEBHOOK_URL = "http://hooks.test/transcode"


class MemoryStorage:
    """ObjectStorage double keeping uploads in a dict"""

    def __init__(self, fail_on: Optional[str] = None):
        self.objects: Dict[str, bytes] = {}
        self.content_types: Dict[str, str] = {}
        self.fail_on = fail_on

    def put_bytes(self, object_name: str, data: bytes, content_type: str) -> str:
        if self.fail_on and object_name.endswith(self.fail_on):
            raise ConnectionError("bucket unavailable")
        self.objects[object_name] = data
        self.content_types[object_name] = content_type
        return object_name


class FakeEngine:
    """Stands in for subprocess.run calls to ffmpeg/ffprobe"""

    def __init__(self, width: int = 1920, height: int = 1080, duration: float = 35.0):
        self.width = width
        self.height = height
        self.duration = duration
        self.fail_quality: Optional[str] = None
        self.fail_poster = False
        self.fail_scrub = False
        self.fail_tile = False
        self.fail_probe = False
        self.poster_writes_nothing = False
        # Raw bytes prepended to every stderr, decoded the way subprocess would
        self.stderr_noise: Optional[bytes] = None
        self.calls: List[List[str]] = []
        self._errors = "strict"

    def run(self, cmd, capture_output=True, text=True, timeout=None, **kwargs):
        cmd = [str(c) for c in cmd]
        self.calls.append(cmd)
        self._errors = kwargs.get("errors") or "strict"
        if Path(cmd[0]).name == "ffprobe":
            return self._probe(cmd)
        return self._ffmpeg(cmd)

    def encoded_qualities(self) -> List[str]:
        return [Path(c[-1]).parent.name for c in self.calls if "hls" in c]

    def _done(self, cmd, stdout="", stderr="", returncode=0):
        if self.stderr_noise is not None:
            stderr = (self.stderr_noise + stderr.encode()).decode("utf-8", errors=self._errors)
        return subprocess.CompletedProcess(cmd, returncode, stdout, stderr)

    def _probe(self, cmd):
        if self.fail_probe:
            return self._done(cmd, stderr="Invalid data found when processing input", returncode=1)
        if "format=duration" in cmd:
            return self._done(cmd, stdout=json.dumps({"format": {"duration": f"{self.duration:.6f}"}}))
        return self._done(cmd, stdout=json.dumps({"streams": [{"width": self.width, "height": self.height}]}))

    def _ffmpeg(self, cmd):
        output = Path(cmd[-1])

        if "hls" in cmd:
            if output.parent.name == self.fail_quality:
                return self._done(cmd, stderr="Error while opening encoder for output stream #0:0", returncode=1)
            pattern = cmd[cmd.index("-hls_segment_filename") + 1]
            for i in range(2):
                Path(pattern % i).write_bytes(f"segment {i}".encode())
            output.write_text("#EXTM3U\n#EXT-X-TARGETDURATION:10\n")
            return self._done(cmd)

        if "-vframes" in cmd:
            if self.fail_poster:
                return self._done(cmd, stderr="poster failed", returncode=1)
            if not self.poster_writes_nothing:
                output.write_bytes(b"poster-jpeg")
            return self._done(cmd)

        if "-filter_complex" in cmd:
            if self.fail_tile:
                return self._done(cmd, stderr="tile failed", returncode=1)
            output.write_bytes(b"sprite-jpeg")
            return self._done(cmd)

        if any(arg.startswith("fps=") for arg in cmd):
            if self.fail_scrub:
                return self._done(cmd, stderr="scrub failed", returncode=1)
            frames = int(cmd[cmd.index("-frames:v") + 1])
            for i in range(1, frames + 1):
                Path(str(output) % i).write_bytes(f"thumb {i}".encode())
            return self._done(cmd)

        return self._done(cmd, stderr=f"unexpected command {cmd}", returncode=1)


class WebhookRecorder:
    def __init__(self):
        self.requests: List[httpx.Request] = []
        self.status_code = 200


@pytest.fixture
def settings() -> Settings:
    return Settings(
        _env_file=None,
        api_token=API_TOKEN,
        webhook_secret=WEBHOOK_SECRET,
        s3_endpoint="http://localhost:9000",
        s3_access_key="minio",
        s3_secret_key="minio123",
        s3_bucket="results",
        ffmpeg_path="/usr/bin/ffmpeg",
        ffprobe_path="/usr/bin/ffprobe",
        max_concurrent_jobs=1,
    )


@pytest.fixture
def engine(monkeypatch) -> FakeEngine:
    fake = FakeEngine()
    monkeypatch.setattr(transcode_service.subprocess, "run", fake.run)
    return fake


@pytest.fixture
def transcoder() -> TranscodeService:
    return TranscodeService(ffmpeg_path="/usr/bin/ffmpeg", ffprobe_path="/usr/bin/ffprobe")


@pytest.fixture
def storage() -> MemoryStorage:
    return MemoryStorage()


@pytest.fixture
def registry() -> JobRegistry:
    return JobRegistry()


@pytest.fixture
def webhooks() -> WebhookRecorder:
    return WebhookRecorder()


@pytest.fixture
def transport(webhooks) -> httpx.MockTransport:
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.host == "hooks.test":
            webhooks.requests.append(request)
            return httpx.Response(webhooks.status_code)
        if str(request.url) == SOURCE_URL:
            return httpx.Response(200, content=b"\x00\x00\x00\x18ftypmp42" * 64)
        return httpx.Response(404)

    return httpx.MockTransport(handler)


@pytest.fixture
def make_pipeline(registry, storage, transcoder, transport, tmp_path):
    def factory(**overrides) -> JobPipeline:
        options = dict(
            registry=registry,
            storage=storage,
            transcoder=transcoder,
            notifier=WebhookNotifier(WEBHOOK_SECRET, transport=transport),
            work_dir=str(tmp_path),
            http_transport=transport,
        )
        options.update(overrides)
        return JobPipeline(**options)

    return factory
