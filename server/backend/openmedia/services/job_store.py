# Job registry - in-memory, lock-protected store of job records (create, patch, get, list)

import threading
import uuid
import logging
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional

from openmedia.core.exceptions import InvalidTransitionError, JobNotFoundError
from openmedia.models import Job, JobPatch, JobStatus

logger = logging.getLogger(__name__)


def default_result_prefix(job_id: str) -> str:
    return f"output/{job_id}/"


def normalize_prefix(prefix: str) -> str:
    """Result prefixes are used as key namespaces and always end with '/'"""
    prefix = prefix.strip().lstrip("/")
    if prefix and not prefix.endswith("/"):
        prefix += "/"
    return prefix


class JobRegistry:
    """
    Owns every Job record for the lifetime of the process.

    All mutations go through `update`, which applies a `JobPatch` under a
    single lock. Readers always receive copies, so a record handed to an API
    response can never change underneath it.
    """

    def __init__(self):
        self._jobs: Dict[str, Job] = {}
        self._lock = threading.Lock()

    def create(
        self,
        source_url: str,
        result_key_prefix: Optional[str] = None,
        webhook_url: Optional[str] = None,
    ) -> Job:
        job_id = str(uuid.uuid4())
        now = datetime.now(timezone.utc)
        prefix = normalize_prefix(result_key_prefix) if result_key_prefix else ""
        job = Job(
            id=job_id,
            source_url=source_url,
            result_key_prefix=prefix or default_result_prefix(job_id),
            webhook_url=webhook_url,
            created_at=now,
            updated_at=now,
        )
        with self._lock:
            self._jobs[job_id] = job
            snapshot = job.model_copy(deep=True)
        logger.info(f"[Job {job_id}] Created (prefix={job.result_key_prefix})")
        return snapshot

    def get(self, job_id: str) -> Optional[Job]:
        with self._lock:
            job = self._jobs.get(job_id)
            return job.model_copy(deep=True) if job else None

    def list(self, status: Optional[JobStatus] = None) -> List[Job]:
        with self._lock:
            jobs = [j.model_copy(deep=True) for j in self._jobs.values()]
        if status is not None:
            jobs = [j for j in jobs if j.status == status]
        return sorted(jobs, key=lambda j: j.created_at)

    def count_by_status(self) -> Dict[str, int]:
        counts = {status.value: 0 for status in JobStatus}
        with self._lock:
            for job in self._jobs.values():
                counts[job.status.value] += 1
        return counts

    def update(self, job_id: str, patch: JobPatch) -> Job:
        """
        Apply a patch atomically and return the updated record

        Raises:
            JobNotFoundError: unknown job id
            InvalidTransitionError: the job is terminal, or the patch moves
                its status backwards
        """
        changes = patch.changes()
        with self._lock:
            current = self._jobs.get(job_id)
            if current is None:
                raise JobNotFoundError(job_id)
            if current.status.is_terminal:
                raise InvalidTransitionError(
                    f"Job {job_id} is already {current.status.value}"
                )
            new_status = changes.get("status")
            if new_status is not None and new_status.rank < current.status.rank:
                raise InvalidTransitionError(
                    f"Job {job_id} cannot move from {current.status.value} to {new_status.value}"
                )
            if "status" in changes and new_status is None:
                del changes["status"]

            changes["updated_at"] = self._next_timestamp(current.updated_at)
            updated = current.model_copy(update=changes, deep=True)
            self._jobs[job_id] = updated
            return updated.model_copy(deep=True)

    @staticmethod
    def _next_timestamp(previous: datetime) -> datetime:
        now = datetime.now(timezone.utc)
        if now <= previous:
            now = previous + timedelta(microseconds=1)
        return now
