"""
End-to-end pipeline tests against the fake engine, memory storage and mock HTTP
"""

import json
from pathlib import Path

from openmedia.models import JobStatus, ProgressStage
from openmedia.services.job_store import JobRegistry
from openmedia.services.notifier import SIGNATURE_HEADER, verify_signature

from conftest import MISSING_SOURCE_URL, SOURCE_URL, WEBHOOK_SECRET, WEBHOOK_URL, MemoryStorage


class RecordingRegistry(JobRegistry):
    """Keeps every applied patch so tests can inspect the sequence"""

    def __init__(self):
        super().__init__()
        self.patches = []

    def update(self, job_id, patch):
        self.patches.append(patch)
        return super().update(job_id, patch)


def test_1080p_source_produces_four_renditions(engine, registry, storage, make_pipeline):
    job = registry.create(SOURCE_URL)
    final = make_pipeline().run(job.id)

    assert final.status == JobStatus.DONE
    assert final.error is None
    assert engine.encoded_qualities() == ["360p", "480p", "720p", "1080p"]

    master = storage.objects[f"output/{job.id}/master.m3u8"].decode()
    assert master.count("#EXT-X-STREAM-INF") == 4
    assert "1080p/playlist.m3u8" in master
    assert "1440p" not in master

    for quality in ("360p", "480p", "720p", "1080p"):
        assert f"output/{job.id}/{quality}/playlist.m3u8" in final.result_files
        assert f"output/{job.id}/{quality}/segment-000.ts" in final.result_files
    assert sorted(final.result_files) == sorted(storage.objects)

    assert final.poster_key == f"output/{job.id}/poster.jpg"
    assert final.thumbnails_key == f"output/{job.id}/thumbnails.vtt"
    assert storage.content_types[f"output/{job.id}/1080p/segment-001.ts"] == "video/MP2T"
    assert storage.content_types[final.thumbnails_key] == "text/vtt"

    assert final.progress.step == ProgressStage.DONE
    assert final.progress.percentage == 100


def test_short_video_has_poster_but_no_sprites(engine, registry, storage, make_pipeline):
    engine.duration = 3
    job = registry.create(SOURCE_URL)
    final = make_pipeline().run(job.id)

    assert final.status == JobStatus.DONE
    assert final.poster_key == f"output/{job.id}/poster.jpg"
    assert final.thumbnails_key is None
    assert f"output/{job.id}/sprites.jpg" not in storage.objects
    assert f"output/{job.id}/thumbnails.vtt" not in storage.objects


def test_encode_failure_uploads_nothing(engine, registry, storage, make_pipeline):
    engine.fail_quality = "720p"
    job = registry.create(SOURCE_URL)
    final = make_pipeline().run(job.id)

    assert final.status == JobStatus.ERROR
    assert "720p" in final.error
    assert "Error while opening encoder" in final.error
    assert storage.objects == {}
    assert final.result_files is None
    assert engine.encoded_qualities() == ["360p", "480p", "720p"]


def test_webhook_fires_once_with_signature(engine, registry, webhooks, make_pipeline):
    job = registry.create(SOURCE_URL, webhook_url=WEBHOOK_URL)
    make_pipeline().run(job.id)

    assert len(webhooks.requests) == 1
    request = webhooks.requests[0]
    payload = json.loads(request.content)
    assert payload["event"] == "job.completed"
    assert payload["timestamp"]
    assert payload["job"]["id"] == job.id
    assert verify_signature(request.content, request.headers[SIGNATURE_HEADER], WEBHOOK_SECRET)


def test_failed_job_sends_failure_webhook(engine, registry, webhooks, make_pipeline):
    engine.fail_probe = True
    job = registry.create(SOURCE_URL, webhook_url=WEBHOOK_URL)
    final = make_pipeline().run(job.id)

    assert final.status == JobStatus.ERROR
    assert len(webhooks.requests) == 1
    assert json.loads(webhooks.requests[0].content)["event"] == "job.failed"


def test_webhook_failure_keeps_job_done(engine, registry, webhooks, make_pipeline):
    webhooks.status_code = 503
    job = registry.create(SOURCE_URL, webhook_url=WEBHOOK_URL)
    final = make_pipeline().run(job.id)
    assert final.status == JobStatus.DONE
    assert registry.get(job.id).status == JobStatus.DONE


def test_missing_source_is_an_error(engine, registry, storage, make_pipeline):
    job = registry.create(MISSING_SOURCE_URL)
    final = make_pipeline().run(job.id)

    assert final.status == JobStatus.ERROR
    assert "404" in final.error
    assert engine.calls == []
    assert storage.objects == {}


def test_upload_failure_is_an_error(engine, registry, make_pipeline):
    storage = MemoryStorage(fail_on="master.m3u8")
    job = registry.create(SOURCE_URL)
    final = make_pipeline(storage=storage).run(job.id)

    assert final.status == JobStatus.ERROR
    assert "master.m3u8" in final.error
    assert "bucket unavailable" in final.error


def test_progress_is_monotonic(engine, storage, make_pipeline):
    registry = RecordingRegistry()
    job = registry.create(SOURCE_URL, result_key_prefix="videos/42")
    final = make_pipeline(registry=registry).run(job.id)

    assert final.result_key_prefix == "videos/42/"
    percentages = [p.progress.percentage for p in registry.patches if p.progress is not None]
    assert percentages == [0, 10, 10, 25, 40, 55, 70, 80, 100]

    statuses = [p.status for p in registry.patches if "status" in p.model_fields_set]
    assert statuses == [JobStatus.PROCESSING, JobStatus.DONE]
    assert all(key.startswith("videos/42/") for key in storage.objects)


def test_thumbnails_can_be_disabled(engine, registry, storage, make_pipeline):
    job = registry.create(SOURCE_URL)
    final = make_pipeline(generate_thumbnails=False).run(job.id)

    assert final.status == JobStatus.DONE
    assert final.poster_key is None
    assert not any(key.endswith(".jpg") for key in storage.objects)


def test_low_resolution_source_gets_lowest_rung(engine, registry, storage, make_pipeline):
    engine.width, engine.height = 320, 240
    job = registry.create(SOURCE_URL)
    final = make_pipeline().run(job.id)

    assert final.status == JobStatus.DONE
    assert engine.encoded_qualities() == ["360p"]


def test_scratch_directory_is_removed(engine, registry, make_pipeline, tmp_path):
    ok = registry.create(SOURCE_URL)
    failed = registry.create(SOURCE_URL)

    make_pipeline().run(ok.id)
    engine.fail_quality = "480p"
    make_pipeline().run(failed.id)

    assert registry.get(ok.id).status == JobStatus.DONE
    assert registry.get(failed.id).status == JobStatus.ERROR
    assert list(Path(tmp_path).iterdir()) == []


def test_unknown_job_is_ignored(make_pipeline):
    assert make_pipeline().run("no-such-job") is None


def test_sub_second_clip_without_poster_is_done(engine, registry, storage, make_pipeline):
    engine.duration = 0.5
    engine.poster_writes_nothing = True
    job = registry.create(SOURCE_URL)
    final = make_pipeline().run(job.id)

    assert final.status == JobStatus.DONE
    assert final.error is None
    assert final.poster_key is None
    assert final.thumbnails_key is None
    assert f"output/{job.id}/master.m3u8" in storage.objects


def test_latin1_metadata_does_not_fail_job(engine, registry, make_pipeline):
    engine.stderr_noise = b"    title           : Caf\xe9\n"
    job = registry.create(SOURCE_URL)
    final = make_pipeline().run(job.id)

    assert final.status == JobStatus.DONE
    assert final.thumbnails_key == f"output/{job.id}/thumbnails.vtt"


def test_latin1_metadata_keeps_encode_diagnostic(engine, registry, make_pipeline):
    engine.stderr_noise = b"    title           : Caf\xe9\n"
    engine.fail_quality = "480p"
    job = registry.create(SOURCE_URL)
    final = make_pipeline().run(job.id)

    assert final.status == JobStatus.ERROR
    assert "Error while opening encoder" in final.error
