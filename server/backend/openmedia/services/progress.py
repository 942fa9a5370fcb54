# Progress tracking - maps pipeline stages onto a monotonic percentage and pushes snapshots to a sink

from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence

from openmedia.models import JobProgress, ProgressStage

ProgressSink = Callable[[JobProgress], None]


@dataclass(frozen=True)
class ProgressBreakpoints:
    """Percentages at the stage boundaries"""

    download_start: int = 0
    transcode_start: int = 10
    transcode_end: int = 70
    thumbnails: int = 70
    uploading: int = 80
    done: int = 100


class ProgressTracker:
    """
    Builds progress snapshots for one job.

    Each stage calls `report`; the tracker computes the overall percentage,
    clamps it so it never goes below a value already reported, and hands the
    snapshot to the sink (usually a registry patch).
    """

    def __init__(self, sink: ProgressSink, breakpoints: Optional[ProgressBreakpoints] = None):
        self.sink = sink
        self.breakpoints = breakpoints or ProgressBreakpoints()
        self.last_percentage = 0

    def report(
        self,
        stage: ProgressStage,
        current_quality: Optional[str] = None,
        completed: Optional[Sequence[str]] = None,
        total: Optional[int] = None,
        message: Optional[str] = None,
        percentage: Optional[int] = None,
    ) -> JobProgress:
        snapshot = self.build(stage, current_quality, completed, total, message, percentage)
        self.sink(snapshot)
        return snapshot

    def build(
        self,
        stage: ProgressStage,
        current_quality: Optional[str] = None,
        completed: Optional[Sequence[str]] = None,
        total: Optional[int] = None,
        message: Optional[str] = None,
        percentage: Optional[int] = None,
    ) -> JobProgress:
        """Compute the next snapshot without publishing it"""
        if percentage is None:
            percentage = self._percentage_for(stage, completed, total)
        percentage = max(self.last_percentage, min(100, int(percentage)))
        self.last_percentage = percentage

        return JobProgress(
            step=stage,
            current_quality=current_quality,
            completed_qualities=list(completed) if completed is not None else None,
            total_qualities=total,
            percentage=percentage,
            message=message or self._default_message(stage, current_quality, completed, total),
        )

    def _percentage_for(self, stage: ProgressStage, completed, total) -> int:
        bp = self.breakpoints
        if stage == ProgressStage.DOWNLOADING:
            return bp.download_start
        if stage == ProgressStage.TRANSCODING:
            if not total:
                return bp.transcode_start
            done = len(completed or [])
            span = bp.transcode_end - bp.transcode_start
            return bp.transcode_start + round(span * done / total)
        if stage == ProgressStage.THUMBNAILS:
            return bp.thumbnails
        if stage == ProgressStage.UPLOADING:
            return bp.uploading
        return bp.done

    @staticmethod
    def _default_message(stage, current_quality, completed, total) -> str:
        if stage == ProgressStage.DOWNLOADING:
            return "Downloading source video..."
        if stage == ProgressStage.TRANSCODING:
            done: List[str] = list(completed or [])
            return f"Transcoding {current_quality} ({len(done)}/{total} complete)..."
        if stage == ProgressStage.THUMBNAILS:
            return "Generating thumbnails..."
        if stage == ProgressStage.UPLOADING:
            return "Uploading files..."
        return "Transcoding complete!"
