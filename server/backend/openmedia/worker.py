# Job worker - thread pool that runs one transcoding pipeline per submitted job

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Dict, Optional

from openmedia.core.config import Settings
from openmedia.core.s3_client import ObjectStorage
from openmedia.services.job_store import JobRegistry
from openmedia.services.notifier import WebhookNotifier
from openmedia.services.pipeline import JobPipeline
from openmedia.services.transcode_service import TranscodeService

logger = logging.getLogger(__name__)


class JobWorker:
    """
    Dispatches pipelines onto a bounded pool.

    `submit` returns as soon as the job is queued. Jobs never share state
    other than the registry; each one runs its stages sequentially.
    """

    def __init__(self, pipeline: JobPipeline, max_workers: int = 2):
        self.pipeline = pipeline
        self.executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="transcode")
        self._futures: Dict[str, Future] = {}
        self._lock = threading.Lock()

    def submit(self, job_id: str) -> Future:
        logger.info(f"[Job {job_id}] Queued")
        future = self.executor.submit(self.pipeline.run, job_id)
        with self._lock:
            self._futures[job_id] = future
        future.add_done_callback(lambda f: self._on_done(job_id, f))
        return future

    def _on_done(self, job_id: str, future: Future) -> None:
        with self._lock:
            self._futures.pop(job_id, None)
        exc = future.exception()
        if exc is not None:
            # JobPipeline.run records failures itself; reaching here means the registry update failed
            logger.error(f"[Job {job_id}] Worker crashed: {exc}", exc_info=exc)

    def active_count(self) -> int:
        with self._lock:
            return len(self._futures)

    def shutdown(self, wait: bool = True) -> None:
        self.executor.shutdown(wait=wait)


def build_worker(settings: Settings, registry: JobRegistry, storage: ObjectStorage,
                 transcoder: Optional[TranscodeService] = None) -> JobWorker:
    """Wire a worker from settings"""
    transcoder = transcoder or TranscodeService(
        ffmpeg_path=settings.ffmpeg_path,
        ffprobe_path=settings.ffprobe_path,
        probe_timeout=settings.probe_timeout,
    )
    notifier = WebhookNotifier(settings.effective_webhook_secret, timeout=settings.webhook_timeout)
    pipeline = JobPipeline(
        registry=registry,
        storage=storage,
        transcoder=transcoder,
        notifier=notifier,
        segment_duration=settings.segment_duration,
        thumbnail_interval=settings.thumbnail_interval,
        generate_thumbnails=settings.generate_thumbnails,
        work_dir=settings.work_dir,
        download_timeout=settings.download_timeout,
    )
    return JobWorker(pipeline, max_workers=settings.max_concurrent_jobs)
