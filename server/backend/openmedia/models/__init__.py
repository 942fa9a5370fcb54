# Job models - Job, JobPatch, JobProgress and their enums

from .job import Job, JobPatch, JobProgress, JobStatus, ProgressStage
