# Pipeline error taxonomy - fatal stage failures raised to the job orchestrator

from typing import Optional


class PipelineError(RuntimeError):
    """Base class for failures that move a job to the error state"""


class FetchError(PipelineError):
    """Source could not be downloaded"""


class ProbeError(PipelineError):
    """Resolution or duration of the source could not be determined"""


class EncodeError(PipelineError):
    """FFmpeg exited non-zero while encoding a rendition"""

    def __init__(self, quality: str, returncode: int, stderr: Optional[str] = None):
        self.quality = quality
        self.returncode = returncode
        self.stderr = (stderr or "").strip()
        super().__init__(
            f"FFmpeg failed for {quality} with exit code {returncode}: {self.stderr}"
        )


class UploadError(PipelineError):
    """An artifact could not be written to object storage"""


class JobNotFoundError(KeyError):
    """No job with the given id is registered"""


class InvalidTransitionError(RuntimeError):
    """A patch would move a job backwards or mutate a terminal job"""
