# Playlist generation - HLS master playlist and WebVTT thumbnail sprite cues

import math
import re
from typing import Sequence

from openmedia.services.quality import QualityProfile

MASTER_PLAYLIST_NAME = "master.m3u8"
RENDITION_PLAYLIST_NAME = "playlist.m3u8"
SPRITE_FILENAME = "sprites.jpg"

SPRITE_COLUMNS = 10
THUMB_WIDTH = 160
THUMB_HEIGHT = 90  # 160px wide at 16:9

_BITRATE_RE = re.compile(r"^(\d+(?:\.\d+)?)([km])?$", re.IGNORECASE)


def parse_bitrate(bitrate: str) -> int:
    """
    Parse compact bitrate notation to bits per second

    "800k" -> 800000, "2M" -> 2000000, "128000" -> 128000.
    Anything unparseable yields 0.
    """
    match = _BITRATE_RE.match((bitrate or "").strip())
    if not match:
        return 0

    value = float(match.group(1))
    unit = (match.group(2) or "").lower()
    if unit == "k":
        return math.floor(value * 1000)
    if unit == "m":
        return math.floor(value * 1_000_000)
    return math.floor(value)


def build_master_playlist(profiles: Sequence[QualityProfile]) -> str:
    """
    Build the adaptive-bitrate master playlist

    Args:
        profiles: Encoded renditions, ascending height

    Returns:
        m3u8 text referencing each rendition's playlist relative to the master
    """
    lines = ["#EXTM3U", "#EXT-X-VERSION:3", ""]

    for profile in profiles:
        bandwidth = parse_bitrate(profile.video_bitrate) + parse_bitrate(profile.audio_bitrate)
        width = math.floor(profile.height * 16 / 9)
        lines.append(
            f'#EXT-X-STREAM-INF:BANDWIDTH={bandwidth},'
            f'RESOLUTION={width}x{profile.height},NAME="{profile.name}"'
        )
        lines.append(f"{profile.name}/{RENDITION_PLAYLIST_NAME}")
        lines.append("")

    return "\n".join(lines)


def format_vtt_time(seconds: float) -> str:
    """Format seconds as a WebVTT timestamp (HH:MM:SS.mmm)"""
    total_ms = int(round(seconds * 1000))
    hours, rem = divmod(total_ms, 3_600_000)
    minutes, rem = divmod(rem, 60_000)
    secs, ms = divmod(rem, 1000)
    return f"{hours:02d}:{minutes:02d}:{secs:02d}.{ms:03d}"


def sprite_region(index: int, columns: int = SPRITE_COLUMNS,
                  width: int = THUMB_WIDTH, height: int = THUMB_HEIGHT) -> tuple:
    """(x, y, w, h) of the index-th tile in the sprite sheet"""
    col = index % columns
    row = index // columns
    return col * width, row * height, width, height


def build_thumbnail_vtt(count: int, interval: float, columns: int = SPRITE_COLUMNS) -> str:
    """
    Build the WebVTT sidecar mapping playback time to sprite tiles

    Args:
        count: Number of tiles in the sprite sheet
        interval: Seconds between sampled frames
        columns: Sprite sheet columns
    """
    lines = ["WEBVTT", ""]

    for i in range(count):
        x, y, w, h = sprite_region(i, columns)
        lines.append(f"{format_vtt_time(i * interval)} --> {format_vtt_time((i + 1) * interval)}")
        lines.append(f"{SPRITE_FILENAME}#xywh={x},{y},{w},{h}")
        lines.append("")

    return "\n".join(lines)
