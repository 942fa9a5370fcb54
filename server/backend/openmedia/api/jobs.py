# Job API endpoints - submit transcode jobs, check status, list jobs

from fastapi import APIRouter, HTTPException, Depends, Query, Request
from typing import List, Optional
from pydantic import BaseModel
import logging

from openmedia.models import Job, JobStatus
from openmedia.services.job_store import JobRegistry
from openmedia.worker import JobWorker

router = APIRouter()
logger = logging.getLogger(__name__)


class CreateJobRequest(BaseModel):
    source_url: str  # Presigned GET URL for the source file
    result_key_prefix: Optional[str] = None  # Defaults to "output/<job-id>/"
    webhook_url: Optional[str] = None  # Notified once the job is done or failed


def get_registry(request: Request) -> JobRegistry:
    return request.app.state.registry


def get_worker(request: Request) -> JobWorker:
    return request.app.state.worker


@router.post("/jobs", response_model=Job)
def create_job(
    body: CreateJobRequest,
    registry: JobRegistry = Depends(get_registry),
    worker: JobWorker = Depends(get_worker),
):
    """
    Submit a transcoding job

    The job is queued on the worker pool and returned immediately with
    status "pending". Poll GET /api/jobs/{id} for progress.
    """
    if not body.source_url.strip():
        raise HTTPException(status_code=422, detail="source_url must not be empty")

    job = registry.create(body.source_url, body.result_key_prefix, body.webhook_url)
    worker.submit(job.id)
    return job


@router.get("/jobs", response_model=List[Job])
def list_jobs(
    status: Optional[JobStatus] = Query(None, description="Filter by status: pending, processing, done, error"),
    registry: JobRegistry = Depends(get_registry),
):
    """
    List all known jobs, oldest first
    """
    return registry.list(status=status)


@router.get("/jobs/{job_id}", response_model=Job)
def get_job(job_id: str, registry: JobRegistry = Depends(get_registry)):
    """
    Get a single job including progress and, once finished, its artifact keys
    """
    job = registry.get(job_id)
    if not job:
        raise HTTPException(status_code=404, detail=f"Job {job_id} not found")
    return job
