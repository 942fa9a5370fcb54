# Quality ladder - rendition profiles and source-height based selection

from dataclasses import dataclass
from typing import List, Sequence


@dataclass(frozen=True)
class QualityProfile:
    name: str
    height: int
    video_bitrate: str
    audio_bitrate: str


# Adaptive bitrate ladder, lowest to highest
DEFAULT_LADDER: List[QualityProfile] = [
    QualityProfile("360p", 360, "800k", "96k"),
    QualityProfile("480p", 480, "1400k", "128k"),
    QualityProfile("720p", 720, "2800k", "128k"),
    QualityProfile("1080p", 1080, "5000k", "192k"),
    QualityProfile("1440p", 1440, "9000k", "192k"),
    QualityProfile("2160p", 2160, "16000k", "256k"),
]


def select_qualities(
    source_height: int,
    ladder: Sequence[QualityProfile] = DEFAULT_LADDER,
) -> List[QualityProfile]:
    """
    Pick the renditions to encode for a source

    Args:
        source_height: Height of source video in pixels
        ladder: Candidate profiles in ascending height order

    Returns:
        Profiles no taller than the source, in ladder order. A source smaller
        than every profile gets the lowest profile alone (upscaled).
    """
    selected = [profile for profile in ladder if profile.height <= source_height]
    if not selected and ladder:
        selected = [ladder[0]]
    return selected
