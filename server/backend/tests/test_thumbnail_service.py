"""
Tests for poster / sprite / cue generation and its partial-failure policy
"""

import pytest

from openmedia.core.exceptions import ProbeError
from openmedia.services.thumbnail_service import ThumbnailService, poster_offset, scrub_frame_count

PREFIX = "output/job-1/"


@pytest.fixture
def thumbnails(transcoder) -> ThumbnailService:
    return ThumbnailService(transcoder)


@pytest.mark.parametrize("duration,expected", [(3, 1.0), (10, 1.0), (35, 3.5), (600, 60.0)])
def test_poster_offset(duration, expected):
    assert poster_offset(duration) == pytest.approx(expected)


@pytest.mark.parametrize("duration,interval,expected", [(3, 10, 0), (10, 10, 1), (35.9, 10, 3), (240, 10, 24)])
def test_scrub_frame_count(duration, interval, expected):
    assert scrub_frame_count(duration, interval) == expected


def test_full_set(engine, thumbnails, tmp_path):
    engine.duration = 35
    artifact = thumbnails.generate("in.mp4", tmp_path, PREFIX, 10)

    assert artifact.poster.key == "output/job-1/poster.jpg"
    assert artifact.sprites.key == "output/job-1/sprites.jpg"
    assert artifact.cues.key == "output/job-1/thumbnails.vtt"
    assert artifact.cues.content_type == "text/vtt"
    assert artifact.frame_count == 3

    vtt = artifact.cues.data.decode()
    assert vtt.count("-->") == 3
    assert "00:00:20.000 --> 00:00:30.000\nsprites.jpg#xywh=320,0,160,90" in vtt

    poster_cmd = next(c for c in engine.calls if "-vframes" in c)
    assert poster_cmd[poster_cmd.index("-ss") + 1] == "3.5"
    assert "scale=1280:-2" in poster_cmd


def test_short_video_only_gets_poster(engine, thumbnails, tmp_path):
    engine.duration = 3
    artifact = thumbnails.generate("in.mp4", tmp_path, PREFIX, 10)

    assert artifact.poster is not None
    assert artifact.sprites is None
    assert artifact.cues is None
    assert not any(any(a.startswith("fps=") for a in c) for c in engine.calls)

    poster_cmd = next(c for c in engine.calls if "-vframes" in c)
    assert poster_cmd[poster_cmd.index("-ss") + 1] == "1"


def test_poster_failure_keeps_sprites(engine, thumbnails, tmp_path):
    engine.fail_poster = True
    artifact = thumbnails.generate("in.mp4", tmp_path, PREFIX, 10)
    assert artifact.poster is None
    assert artifact.sprites is not None
    assert artifact.cues is not None


def test_scrub_failure_keeps_poster(engine, thumbnails, tmp_path):
    engine.fail_scrub = True
    artifact = thumbnails.generate("in.mp4", tmp_path, PREFIX, 10)
    assert artifact.poster is not None
    assert artifact.sprites is None
    assert artifact.cues is None


def test_tile_failure_drops_sprites_and_cues(engine, thumbnails, tmp_path):
    engine.fail_tile = True
    artifact = thumbnails.generate("in.mp4", tmp_path, PREFIX, 10)
    assert [f.key for f in artifact.files] == ["output/job-1/poster.jpg"]


def test_duration_failure_is_fatal(engine, thumbnails, tmp_path):
    engine.fail_probe = True
    with pytest.raises(ProbeError):
        thumbnails.generate("in.mp4", tmp_path, PREFIX, 10)


def test_frames_capped_at_count(engine, thumbnails, tmp_path):
    engine.duration = 125
    artifact = thumbnails.generate("in.mp4", tmp_path, PREFIX, 10)
    scrub_cmd = next(c for c in engine.calls if any(a.startswith("fps=") for a in c))
    assert scrub_cmd[scrub_cmd.index("-frames:v") + 1] == "12"
    assert "fps=1/10,scale=160:-2" in scrub_cmd
    assert artifact.frame_count == 12


def test_poster_missing_after_success_is_skipped(engine, thumbnails, tmp_path):
    engine.duration = 0.5
    engine.poster_writes_nothing = True
    artifact = thumbnails.generate("in.mp4", tmp_path, PREFIX, 10)
    assert artifact.files == []


def test_poster_missing_keeps_sprites(engine, thumbnails, tmp_path):
    engine.poster_writes_nothing = True
    artifact = thumbnails.generate("in.mp4", tmp_path, PREFIX, 10)
    assert artifact.poster is None
    assert artifact.sprites is not None
    assert artifact.frame_count == 3


def test_non_utf8_stderr_keeps_thumbnails(engine, thumbnails, tmp_path):
    engine.stderr_noise = b"    title           : Caf\xe9\n"
    artifact = thumbnails.generate("in.mp4", tmp_path, PREFIX, 10)
    assert len(artifact.files) == 3
