# Job pipeline - download, probe, HLS ladder encode, master playlist, thumbnails, upload, webhook

import logging
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Sequence

import httpx

from openmedia.core.exceptions import FetchError, UploadError
from openmedia.core.s3_client import ObjectStorage
from openmedia.models import Job, JobPatch, JobStatus, ProgressStage
from openmedia.services.job_store import JobRegistry
from openmedia.services.notifier import WebhookNotifier
from openmedia.services.playlist import MASTER_PLAYLIST_NAME, build_master_playlist
from openmedia.services.progress import ProgressBreakpoints, ProgressTracker
from openmedia.services.quality import DEFAULT_LADDER, QualityProfile, select_qualities
from openmedia.services.thumbnail_service import ThumbnailArtifact, ThumbnailService
from openmedia.services.transcode_service import StoredFile, TranscodeService, content_type_for

logger = logging.getLogger(__name__)

DOWNLOAD_CHUNK_SIZE = 1024 * 1024


@dataclass
class PipelineResult:
    files: List[StoredFile] = field(default_factory=list)
    thumbnails: Optional[ThumbnailArtifact] = None

    @property
    def poster_key(self) -> Optional[str]:
        if self.thumbnails and self.thumbnails.poster:
            return self.thumbnails.poster.key
        return None

    @property
    def thumbnails_key(self) -> Optional[str]:
        if self.thumbnails and self.thumbnails.cues:
            return self.thumbnails.cues.key
        return None


def error_message(exc: BaseException) -> str:
    """Human readable, never empty"""
    return str(exc).strip() or exc.__class__.__name__


class JobPipeline:
    """
    Runs one job from pending to a terminal state.

    Stages run strictly in order inside a private scratch directory that is
    removed on every exit path. Any exception moves the job to `error`; the
    webhook fires once, after the terminal transition.
    """

    def __init__(
        self,
        registry: JobRegistry,
        storage: ObjectStorage,
        transcoder: TranscodeService,
        notifier: WebhookNotifier,
        thumbnails: Optional[ThumbnailService] = None,
        ladder: Sequence[QualityProfile] = DEFAULT_LADDER,
        segment_duration: int = 10,
        thumbnail_interval: int = 10,
        generate_thumbnails: bool = True,
        work_dir: Optional[str] = None,
        download_timeout: float = 300.0,
        http_transport: Optional[httpx.BaseTransport] = None,
        breakpoints: Optional[ProgressBreakpoints] = None,
    ):
        self.registry = registry
        self.storage = storage
        self.transcoder = transcoder
        self.notifier = notifier
        self.thumbnails = thumbnails or ThumbnailService(transcoder)
        self.ladder = list(ladder)
        self.segment_duration = segment_duration
        self.thumbnail_interval = thumbnail_interval
        self.generate_thumbnails = generate_thumbnails
        self.work_dir = work_dir
        self.download_timeout = download_timeout
        self.http_transport = http_transport
        self.breakpoints = breakpoints or ProgressBreakpoints()

    def run(self, job_id: str) -> Optional[Job]:
        job = self.registry.get(job_id)
        if job is None:
            logger.error(f"[Job {job_id}] Not found, nothing to run")
            return None

        tracker = ProgressTracker(
            lambda snapshot: self.registry.update(job_id, JobPatch(progress=snapshot)),
            self.breakpoints,
        )

        try:
            result = self._process(job, tracker)
        except Exception as e:
            logger.error(f"[Job {job_id}] Error: {e}", exc_info=True)
            final = self.registry.update(
                job_id, JobPatch(status=JobStatus.ERROR, error=error_message(e))
            )
        else:
            final = self.registry.update(job_id, JobPatch(
                status=JobStatus.DONE,
                progress=tracker.build(ProgressStage.DONE),
                result_files=[f.key for f in result.files],
                poster_key=result.poster_key,
                thumbnails_key=result.thumbnails_key,
            ))
            logger.info(f"[Job {job_id}] ✅ Done, {len(result.files)} files")

        if final.webhook_url:
            self.notifier.notify(final)
        return final

    def _process(self, job: Job, tracker: ProgressTracker) -> PipelineResult:
        prefix = job.result_key_prefix
        result = PipelineResult()

        with tempfile.TemporaryDirectory(prefix="transcode-", dir=self.work_dir) as temp_dir:
            work_dir = Path(temp_dir)
            input_path = work_dir / "input"

            self.registry.update(job.id, JobPatch(
                status=JobStatus.PROCESSING,
                progress=tracker.build(ProgressStage.DOWNLOADING),
            ))
            logger.info(f"[Job {job.id}] Downloading source from presigned URL...")
            size = self._download(job.source_url, input_path)
            logger.info(f"[Job {job.id}] Downloaded {size} bytes")
            tracker.report(
                ProgressStage.DOWNLOADING,
                percentage=self.breakpoints.transcode_start,
                message=f"Downloaded {size} bytes",
            )

            width, height = self.transcoder.probe_resolution(str(input_path))
            profiles = select_qualities(height, self.ladder)
            logger.info(
                f"[Job {job.id}] Input resolution {width}x{height}, transcoding "
                f"{len(profiles)} quality levels: {', '.join(p.name for p in profiles)}"
            )

            completed: List[str] = []
            for profile in profiles:
                tracker.report(
                    ProgressStage.TRANSCODING,
                    current_quality=profile.name,
                    completed=completed,
                    total=len(profiles),
                )
                rendition = self.transcoder.encode_rendition(
                    str(input_path), profile, work_dir, prefix, self.segment_duration
                )
                result.files.extend(rendition.files)
                completed.append(profile.name)
                logger.info(f"[Job {job.id}] {profile.name} done ({len(rendition.files)} files)")

            result.files.append(StoredFile(
                key=f"{prefix}{MASTER_PLAYLIST_NAME}",
                data=build_master_playlist(profiles).encode("utf-8"),
                content_type=content_type_for(MASTER_PLAYLIST_NAME),
            ))

            if self.generate_thumbnails:
                tracker.report(ProgressStage.THUMBNAILS, completed=completed, total=len(profiles))
                result.thumbnails = self.thumbnails.generate(
                    str(input_path), work_dir, prefix, self.thumbnail_interval
                )
                result.files.extend(result.thumbnails.files)

        tracker.report(
            ProgressStage.UPLOADING,
            message=f"Uploading {len(result.files)} files...",
        )
        self._upload(job.id, result.files)
        return result

    def _download(self, url: str, destination: Path) -> int:
        """Stream the source to disk; returns bytes written"""
        written = 0
        try:
            with httpx.Client(timeout=self.download_timeout, follow_redirects=True,
                              transport=self.http_transport) as client:
                with client.stream("GET", url) as response:
                    if not response.is_success:
                        raise FetchError(
                            f"Failed to download source: {response.status_code} {response.reason_phrase}"
                        )
                    with open(destination, "wb") as f:
                        for chunk in response.iter_bytes(DOWNLOAD_CHUNK_SIZE):
                            f.write(chunk)
                            written += len(chunk)
        except httpx.HTTPError as e:
            raise FetchError(f"Failed to download source: {e}") from e
        return written

    def _upload(self, job_id: str, files: Sequence[StoredFile]) -> None:
        logger.info(f"[Job {job_id}] Uploading {len(files)} files...")
        for f in files:
            try:
                self.storage.put_bytes(f.key, f.data, f.content_type)
            except Exception as e:
                raise UploadError(f"Failed to upload '{f.key}': {e}") from e
        logger.info(f"[Job {job_id}] Upload complete")
