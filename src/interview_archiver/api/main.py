from __future__ import annotations

import asyncio
import json
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from fastapi import FastAPI, HTTPException, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import StreamingResponse
from pydantic import BaseModel, Field

from interview_archiver.errors import ArchiverError, ErrorKind
from interview_archiver.queue import DeletionScheduler, PipelineConfig, QueueManager

EVENT_POLL_INTERVAL_S = 0.5

ERROR_STATUS = {
    ErrorKind.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorKind.ALREADY_EXISTS: status.HTTP_409_CONFLICT,
    ErrorKind.TRANSIENT: status.HTTP_503_SERVICE_UNAVAILABLE,
}


# --- Pydantic Models for Requests ---
class EnqueueRequest(BaseModel):
    file_path: str = Field(..., min_length=1)
    interview_id: int = Field(..., ge=1)


def create_app(
    manager: QueueManager,
    deletion_scheduler: Optional[DeletionScheduler] = None,
    poll_interval_s: float = EVENT_POLL_INTERVAL_S,
) -> FastAPI:
    """Build the API around an existing queue manager.

    The deletion scheduler (if any) runs for the lifetime of the app.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if deletion_scheduler is not None:
            deletion_scheduler.start()
        yield
        if deletion_scheduler is not None:
            await deletion_scheduler.stop()

    app = FastAPI(lifespan=lifespan, title="Interview Archiver")
    app.state.manager = manager

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # For dev
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/")
    async def root():
        return {"message": "Interview Archiver API", "docs": "/docs", "health": "/health"}

    @app.get("/health")
    async def health_check():
        return {"status": "ok", "processing": manager.is_processing}

    # --- CONFIG ENDPOINTS ---
    @app.get("/config")
    async def get_config():
        config = manager.get_config()
        return config.model_dump() if config else None

    @app.put("/config")
    async def put_config(config: PipelineConfig):
        manager.set_config(config)
        return config.model_dump()

    @app.get("/config/schema")
    async def get_config_schema():
        """Return JSON Schema for the pipeline config model."""
        return PipelineConfig.model_json_schema()

    # --- RECORD STORE ENDPOINTS ---
    @app.get("/record-store/status")
    async def record_store_status():
        return {"connected": await manager.record_store.test_connection()}

    @app.get("/interviews/{interview_id}")
    async def preview_interview(interview_id: int):
        """Look up an interview without enqueuing anything."""
        try:
            details = await manager.record_store.get_details(interview_id)
        except ArchiverError as e:
            code = ERROR_STATUS.get(e.kind, status.HTTP_400_BAD_REQUEST)
            raise HTTPException(status_code=code, detail=str(e))
        if details is None:
            raise HTTPException(status_code=404, detail=f"Interview {interview_id} not found")
        return details.model_dump()

    # --- QUEUE ENDPOINTS ---
    @app.get("/queue")
    async def list_queue():
        return [job.model_dump(mode="json") for job in manager.get_queue()]

    @app.post("/queue", status_code=status.HTTP_201_CREATED)
    async def enqueue(data: EnqueueRequest):
        result = await manager.add_video(data.file_path, data.interview_id)
        if not result.success:
            code = ERROR_STATUS.get(result.error_kind, status.HTTP_400_BAD_REQUEST)
            raise HTTPException(status_code=code, detail=result.error)
        return result.model_dump(mode="json")

    @app.post("/queue/clear-completed")
    async def clear_completed():
        manager.clear_completed()
        return {"remaining": len(manager.get_queue())}

    @app.get("/queue/{job_id}")
    async def get_job(job_id: str):
        job = _find_job(manager, job_id)
        if job is None:
            raise HTTPException(status_code=404, detail="Job not found")
        return job.model_dump(mode="json")

    async def event_generator(job_id: str, request: Request) -> AsyncGenerator[str, None]:
        """
        SSE generator that yields job status updates until the job finishes.
        """
        last = None

        while True:
            if await request.is_disconnected():
                break

            job = _find_job(manager, job_id)
            if job is None:
                break

            current = (job.status.value, job.progress, job.current_step)
            if current != last:
                payload = {
                    "status": job.status.value,
                    "progress": job.progress,
                    "step": job.current_step,
                    "error": job.error,
                }
                yield f"data: {json.dumps(payload)}\n\n"
                last = current

            if job.status.is_terminal:
                break

            await asyncio.sleep(poll_interval_s)

    @app.get("/queue/{job_id}/events")
    async def job_events(job_id: str, request: Request):
        if _find_job(manager, job_id) is None:
            raise HTTPException(status_code=404, detail="Job not found")
        return StreamingResponse(event_generator(job_id, request), media_type="text/event-stream")

    return app


def _find_job(manager: QueueManager, job_id: str):
    for job in manager.get_queue():
        if job.id == job_id:
            return job
    return None


def build_app_from_config(config=None) -> FastAPI:
    """Create the production app from resolved configuration."""
    from interview_archiver.archive_pipeline import build_deletion_store, build_queue_manager
    from interview_archiver.config import resolve_config

    config = config or resolve_config()
    store = build_deletion_store(config)
    manager = build_queue_manager(config, deletion_store=store)
    scheduler = DeletionScheduler(store, interval_s=config.deletion.sweep_interval_h * 3600)
    return create_app(manager, scheduler)


if __name__ == "__main__":
    import uvicorn

    from interview_archiver.config import resolve_config

    config = resolve_config()
    uvicorn.run(build_app_from_config(config), host=config.api.host, port=config.api.port)
