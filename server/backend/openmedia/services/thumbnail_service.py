# Thumbnail service - poster frame, scrubbing sprite sheet and WebVTT cue sidecar

import math
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

from openmedia.services.playlist import (
    SPRITE_COLUMNS,
    SPRITE_FILENAME,
    THUMB_WIDTH,
    build_thumbnail_vtt,
)
from openmedia.services.transcode_service import StoredFile, TranscodeService

logger = logging.getLogger(__name__)

POSTER_FILENAME = "poster.jpg"
THUMBNAILS_VTT_FILENAME = "thumbnails.vtt"
POSTER_WIDTH = 1280
MIN_POSTER_OFFSET = 1.0
POSTER_OFFSET_RATIO = 0.1


@dataclass
class ThumbnailArtifact:
    poster: Optional[StoredFile] = None
    sprites: Optional[StoredFile] = None
    cues: Optional[StoredFile] = None
    frame_count: int = 0

    @property
    def files(self) -> List[StoredFile]:
        return [f for f in (self.poster, self.sprites, self.cues) if f is not None]


def poster_offset(duration: float) -> float:
    """Seconds into the video for the poster frame"""
    return max(MIN_POSTER_OFFSET, duration * POSTER_OFFSET_RATIO)


def _read_artifact(path: Path, key: str, what: str) -> Optional[StoredFile]:
    """FFmpeg can exit 0 without writing anything, e.g. seeking past a very short clip"""
    try:
        return StoredFile.from_path(path, key)
    except OSError as e:
        logger.warning(f"FFmpeg reported success but {what} is unreadable: {e}")
        return None


def scrub_frame_count(duration: float, interval: float) -> int:
    if interval <= 0:
        return 0
    return math.floor(duration / interval)


class ThumbnailService:
    """
    Generates preview images for a source video.

    Only the duration probe is fatal. Poster and sprite failures are logged
    and the corresponding artifacts are left out.
    """

    def __init__(self, transcoder: TranscodeService):
        self.transcoder = transcoder

    def generate(self, input_path: str, work_dir: Path, output_prefix: str,
                 interval: float = 10) -> ThumbnailArtifact:
        """
        Args:
            input_path: Source video on local disk
            work_dir: Job scratch directory; frames go to work_dir/thumbnails
            output_prefix: Object key prefix of the job
            interval: Seconds between scrubbing thumbnails

        Raises:
            ProbeError: duration could not be determined
        """
        thumb_dir = Path(work_dir) / "thumbnails"
        thumb_dir.mkdir(parents=True, exist_ok=True)

        duration = self.transcoder.probe_duration(input_path)
        artifact = ThumbnailArtifact()

        logger.info("Generating poster thumbnail...")
        poster_path = thumb_dir / POSTER_FILENAME
        if self.transcoder.extract_frame(input_path, poster_offset(duration), poster_path, POSTER_WIDTH):
            artifact.poster = _read_artifact(poster_path, f"{output_prefix}{POSTER_FILENAME}", "poster")
        else:
            logger.warning("Failed to generate poster thumbnail")

        count = scrub_frame_count(duration, interval)
        if count == 0:
            logger.info(f"Video shorter than {interval:g}s, skipping scrubbing thumbnails")
            return artifact

        logger.info(f"Generating {count} scrubbing thumbnails...")
        if not self.transcoder.extract_frames(input_path, interval, thumb_dir / "thumb-%03d.jpg",
                                              THUMB_WIDTH, count):
            logger.warning("Failed to generate scrubbing thumbnails")
            return artifact

        frames = sorted(thumb_dir.glob("thumb-*.jpg"))[:count]
        if not frames:
            logger.warning("FFmpeg produced no scrubbing thumbnails")
            return artifact

        sprite_path = thumb_dir / SPRITE_FILENAME
        if not self.transcoder.tile_images(frames, SPRITE_COLUMNS, sprite_path):
            logger.warning("Failed to build sprite sheet")
            return artifact

        sprites = _read_artifact(sprite_path, f"{output_prefix}{SPRITE_FILENAME}", "sprite sheet")
        if sprites is None:
            return artifact

        artifact.frame_count = len(frames)
        artifact.sprites = sprites
        artifact.cues = StoredFile(
            key=f"{output_prefix}{THUMBNAILS_VTT_FILENAME}",
            data=build_thumbnail_vtt(len(frames), interval).encode("utf-8"),
            content_type="text/vtt",
        )
        return artifact
