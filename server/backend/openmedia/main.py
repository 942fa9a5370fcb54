# FastAPI application entrypoint - initializes app, wires registry and worker pool, mounts routers

from contextlib import asynccontextmanager
from typing import Optional
from fastapi import Depends, FastAPI, Request
import logging
import tempfile

from openmedia.api import jobs, ping
from openmedia.core.config import Settings, get_settings
from openmedia.core.s3_client import ObjectStorage, get_storage
from openmedia.core.security import require_token
from openmedia.services.job_store import JobRegistry
from openmedia.services.transcode_service import TranscodeService
from openmedia.worker import build_worker

VERSION = "1.0.0"

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


def create_app(
    settings: Optional[Settings] = None,
    storage: Optional[ObjectStorage] = None,
    transcoder: Optional[TranscodeService] = None,
) -> FastAPI:
    """
    Build the API app. Collaborators default to the real MinIO client and
    FFmpeg binaries; tests pass doubles.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        cfg = settings or get_settings()
        registry = JobRegistry()
        worker = build_worker(cfg, registry, storage or get_storage(), transcoder)
        app.state.settings = cfg
        app.state.registry = registry
        app.state.worker = worker
        logger.info(f"OpenMedia Transcoder {VERSION} ready ({cfg.max_concurrent_jobs} workers)")
        try:
            yield
        finally:
            worker.shutdown(wait=False)

    app = FastAPI(title="OpenMedia Transcoder", version=VERSION, lifespan=lifespan)
    if settings is not None:
        app.dependency_overrides[get_settings] = lambda: settings

    api_deps = [Depends(require_token)]
    app.include_router(ping.router, prefix="/api", tags=["health"], dependencies=api_deps)
    app.include_router(jobs.router, prefix="/api", tags=["jobs"], dependencies=api_deps)

    @app.get("/")
    def read_root():
        return {"system": "OpenMedia Transcoder", "status": "online", "version": VERSION}

    @app.get("/health")
    def health_check(request: Request):
        """
        System health: host resources, scratch disk, engine and job counts.
        """
        import psutil
        from datetime import datetime, timezone

        cfg: Settings = request.app.state.settings
        worker = request.app.state.worker
        scratch = cfg.work_dir or tempfile.gettempdir()

        try:
            memory = psutil.virtual_memory()
            disk = psutil.disk_usage(scratch)
            engine_ready = worker.pipeline.transcoder.is_available()

            status = "healthy"
            issues = []

            if memory.percent > 90:
                status = "degraded"
                issues.append("High memory usage")

            if disk.percent > 95:
                status = "degraded"
                issues.append("Low scratch disk space")

            if not engine_ready:
                status = "degraded"
                issues.append("FFmpeg not found")

            return {
                "status": status,
                "timestamp": datetime.now(timezone.utc).isoformat(),
                "issues": issues if issues else None,
                "cpu": {
                    "cores_logical": psutil.cpu_count(logical=True),
                    "usage_percent": psutil.cpu_percent(interval=0.1),
                },
                "memory": {"total": memory.total, "available": memory.available, "percent": memory.percent},
                "scratch_disk": {"path": scratch, "free": disk.free, "percent": disk.percent},
                "services": {
                    "engine": "ready" if engine_ready else "missing",
                    "worker": f"{worker.active_count()} active",
                },
                "jobs": request.app.state.registry.count_by_status(),
            }

        except Exception as e:
            logger.error(f"Health check failed: {e}", exc_info=True)
            return {
                "status": "error",
                "timestamp": datetime.now(timezone.utc).isoformat(),
                "error": str(e),
            }

    return app


app = create_app()


def run():
    """Console entry point: serve the API with uvicorn"""
    import os
    import uvicorn

    uvicorn.run(
        "openmedia.main:app",
        host=os.getenv("HOST", "0.0.0.0"),
        port=int(os.getenv("PORT", "8080")),
    )


if __name__ == "__main__":
    run()
