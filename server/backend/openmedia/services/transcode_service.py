# Transcoding service - FFmpeg/FFprobe operations, HLS rendition encoding, frame extraction

import subprocess
import math
import os
import json
import shutil
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Dict, Any, List, Sequence, Tuple

from openmedia.core.exceptions import EncodeError, ProbeError
from openmedia.services.playlist import RENDITION_PLAYLIST_NAME
from openmedia.services.quality import QualityProfile

logger = logging.getLogger(__name__)

# Fixed encoder settings for predictable output size and decoder compatibility
VIDEO_CODEC = "libx264"
AUDIO_CODEC = "aac"
X264_PRESET = "medium"
H264_PROFILE = "main"
H264_LEVEL = "4.0"

SEGMENT_PATTERN = "segment-%03d.ts"
MAX_DIAGNOSTIC_CHARS = 4000

CONTENT_TYPES = {
    ".m3u8": "application/x-mpegURL",
    ".ts": "video/MP2T",
    ".jpg": "image/jpeg",
    ".vtt": "text/vtt",
}


def content_type_for(filename: str) -> str:
    """Content-Type for an artifact, by file suffix"""
    return CONTENT_TYPES.get(Path(filename).suffix.lower(), "application/octet-stream")


@dataclass
class StoredFile:
    """An artifact held in memory until upload"""

    key: str
    data: bytes
    content_type: str

    @classmethod
    def from_path(cls, path: Path, key: str) -> "StoredFile":
        return cls(key=key, data=path.read_bytes(), content_type=content_type_for(path.name))


@dataclass
class RenditionArtifact:
    profile: QualityProfile
    files: List[StoredFile] = field(default_factory=list)

    @property
    def playlist(self) -> Optional[StoredFile]:
        for f in self.files:
            if f.key.endswith(RENDITION_PLAYLIST_NAME):
                return f
        return None


class TranscodeService:
    """Service for video transcoding operations using FFmpeg"""

    def __init__(self, ffmpeg_path: Optional[str] = None, ffprobe_path: Optional[str] = None,
                 probe_timeout: int = 30):
        self._ffmpeg_path = ffmpeg_path
        self._ffprobe_path = ffprobe_path
        self.probe_timeout = probe_timeout

    @property
    def ffmpeg_path(self) -> str:
        if not self._ffmpeg_path:
            self._ffmpeg_path = self._find_binary("ffmpeg")
        return self._ffmpeg_path

    @property
    def ffprobe_path(self) -> str:
        if not self._ffprobe_path:
            self._ffprobe_path = self._find_binary("ffprobe")
        return self._ffprobe_path

    @staticmethod
    def _find_binary(name: str) -> str:
        """Find an FFmpeg suite binary on common locations or PATH"""
        for path in [f"/usr/bin/{name}", f"/usr/local/bin/{name}", shutil.which(name)]:
            if path and os.path.isfile(path) and os.access(path, os.X_OK):
                return path
        raise RuntimeError(f"{name} not found. Please install FFmpeg.")

    def is_available(self) -> bool:
        try:
            return bool(self.ffmpeg_path and self.ffprobe_path)
        except RuntimeError:
            return False

    def _probe(self, args: Sequence[str], input_path: str) -> Dict[str, Any]:
        cmd = [self.ffprobe_path, "-v", "error", *args, "-of", "json", str(input_path)]
        try:
            result = subprocess.run(cmd, capture_output=True, text=True, errors="replace",
                                    timeout=self.probe_timeout)
        except subprocess.TimeoutExpired:
            raise ProbeError("FFprobe timed out")

        if result.returncode != 0:
            raise ProbeError(f"FFprobe failed: {result.stderr.strip()}")

        try:
            return json.loads(result.stdout or "{}")
        except json.JSONDecodeError as e:
            raise ProbeError(f"Failed to parse FFprobe output: {e}")

    def probe_resolution(self, input_path: str) -> Tuple[int, int]:
        """
        Get width and height of the first video stream

        Raises:
            ProbeError: FFprobe failed or reported no dimensions
        """
        data = self._probe(
            ["-select_streams", "v:0", "-show_entries", "stream=width,height"], input_path
        )
        streams = data.get("streams") or [{}]
        width, height = streams[0].get("width"), streams[0].get("height")
        if not width or not height:
            raise ProbeError("Could not determine video resolution")
        return int(width), int(height)

    def probe_duration(self, input_path: str) -> float:
        """
        Get container duration in seconds

        Raises:
            ProbeError: FFprobe failed or the duration is missing/zero
        """
        data = self._probe(["-show_entries", "format=duration"], input_path)
        try:
            duration = float((data.get("format") or {}).get("duration"))
        except (TypeError, ValueError):
            duration = 0.0
        if not duration or math.isnan(duration):
            raise ProbeError("Could not determine video duration")
        return duration

    def build_encode_command(self, input_path: str, profile: QualityProfile,
                             output_dir: Path, segment_duration: int) -> List[str]:
        return [
            self.ffmpeg_path,
            "-y",
            "-i", str(input_path),
            "-c:v", VIDEO_CODEC,
            "-c:a", AUDIO_CODEC,
            "-vf", f"scale=-2:{profile.height}",  # Force height, keep aspect with even width
            "-b:v", profile.video_bitrate,
            "-b:a", profile.audio_bitrate,
            "-preset", X264_PRESET,
            "-profile:v", H264_PROFILE,
            "-level", H264_LEVEL,
            "-f", "hls",
            "-hls_time", str(segment_duration),
            "-hls_list_size", "0",
            "-hls_segment_filename", str(output_dir / SEGMENT_PATTERN),
            str(output_dir / RENDITION_PLAYLIST_NAME),
        ]

    def encode_rendition(
        self,
        input_path: str,
        profile: QualityProfile,
        work_dir: Path,
        output_prefix: str,
        segment_duration: int = 10,
    ) -> RenditionArtifact:
        """
        Encode one HLS rendition and read it back into memory

        Args:
            input_path: Source video on local disk
            profile: Target quality profile
            work_dir: Job scratch directory; output goes to work_dir/<profile.name>
            output_prefix: Object key prefix of the job
            segment_duration: Seconds per HLS segment

        Returns:
            RenditionArtifact with the playlist and segments, sorted by file name

        Raises:
            EncodeError: FFmpeg exited non-zero
        """
        output_dir = Path(work_dir) / profile.name
        output_dir.mkdir(parents=True, exist_ok=True)

        cmd = self.build_encode_command(input_path, profile, output_dir, segment_duration)
        logger.info(f"Starting transcode: {input_path} -> {output_dir} @ {profile.name}")

        # Stderr echoes container metadata byte for byte, which need not be UTF-8
        result = subprocess.run(cmd, capture_output=True, text=True, errors="replace")
        if result.returncode != 0:
            raise EncodeError(profile.name, result.returncode, _tail(result.stderr))

        artifact = RenditionArtifact(profile=profile)
        for path in sorted(output_dir.iterdir()):
            if path.is_file():
                artifact.files.append(
                    StoredFile.from_path(path, f"{output_prefix}{profile.name}/{path.name}")
                )
        return artifact

    def extract_frame(self, input_path: str, at_seconds: float, output_path: Path,
                      width: int, quality: int = 2) -> bool:
        """Grab a single JPEG frame; returns False when FFmpeg fails"""
        cmd = [
            self.ffmpeg_path,
            "-y",
            "-ss", f"{at_seconds:g}",
            "-i", str(input_path),
            "-vframes", "1",
            "-vf", f"scale={width}:-2",
            "-q:v", str(quality),
            str(output_path),
        ]
        return self._run_quiet(cmd, "frame extraction")

    def extract_frames(self, input_path: str, interval: float, output_pattern: Path,
                       width: int, max_frames: int, quality: int = 5) -> bool:
        """Sample one JPEG every `interval` seconds, at most `max_frames` of them"""
        cmd = [
            self.ffmpeg_path,
            "-y",
            "-i", str(input_path),
            "-vf", f"fps=1/{interval:g},scale={width}:-2",
            "-frames:v", str(max_frames),
            "-q:v", str(quality),
            str(output_pattern),
        ]
        return self._run_quiet(cmd, "scrub frame extraction")

    def tile_images(self, frames: Sequence[Path], columns: int, output_path: Path,
                    quality: int = 5) -> bool:
        """Tile frames left-to-right, top-to-bottom into one sprite image"""
        rows = -(-len(frames) // columns)
        inputs: List[str] = []
        for frame in frames:
            inputs.extend(["-i", str(frame)])

        # Each input is a single still, so concat them into one stream before tiling
        filter_graph = (
            "".join(f"[{i}:v]" for i in range(len(frames)))
            + f"concat=n={len(frames)}:v=1:a=0,tile={columns}x{rows}"
        )
        cmd = [
            self.ffmpeg_path,
            "-y",
            *inputs,
            "-filter_complex", filter_graph,
            "-frames:v", "1",
            "-q:v", str(quality),
            str(output_path),
        ]
        return self._run_quiet(cmd, "sprite tiling")

    def _run_quiet(self, cmd: List[str], what: str) -> bool:
        result = subprocess.run(cmd, capture_output=True, text=True, errors="replace")
        if result.returncode != 0:
            logger.warning(f"FFmpeg {what} failed with code {result.returncode}: {_tail(result.stderr, 500)}")
            return False
        return True


def _tail(text: Optional[str], limit: int = MAX_DIAGNOSTIC_CHARS) -> str:
    text = (text or "").strip()
    return text[-limit:]
