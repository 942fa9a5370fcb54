# Authenticated liveness endpoint - lets clients verify their API token

from fastapi import APIRouter, Request

router = APIRouter()


@router.get("/ping")
def ping(request: Request):
    worker = request.app.state.worker
    return {"status": "online", "message": "Pong", "active_jobs": worker.active_count()}
