"""FastAPI application: submit pipeline jobs, poll them, approve or deny the results.

Endpoints:
    POST /jobs               202, queue a pipeline run for (city, state, category)
    GET  /jobs/{id}          Current job snapshot
    POST /jobs/{id}/approve  ready_for_review → approved
    POST /jobs/{id}/deny     ready_for_review → denied
    GET  /health             Liveness check
"""

from __future__ import annotations

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from fastapi.encoders import jsonable_encoder

from provider_scout.jobs import InvalidTransitionError, JobManager, JobNotFoundError, JobStore
from provider_scout.models import Job, ReviewRequest, RunRequest, utc_now
from provider_scout.utils.logging import get_logger

log = get_logger()


def create_app(manager: JobManager | None = None) -> FastAPI:
    """Build the app. Without ``manager`` the lifespan wires the production pipeline."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if manager is not None:
            app.state.manager = manager
            yield
            return

        from provider_scout.pipeline import build_pipeline

        pipeline, renderer = build_pipeline()
        app.state.manager = JobManager(JobStore(), pipeline.run)
        log.info("Job manager ready")
        try:
            yield
        finally:
            await app.state.manager.shutdown()
            await renderer.close()

    app = FastAPI(
        title="Provider Scout API",
        description="Discover and extract local social-service providers, with a review gate",
        version="0.1.0",
        lifespan=lifespan,
    )
    if manager is not None:
        app.state.manager = manager

    @app.exception_handler(RequestValidationError)
    async def invalid_body(request: Request, exc: RequestValidationError):
        return JSONResponse(
            status_code=400,
            content={"error": "Invalid request body", "detail": jsonable_encoder(exc.errors())},
        )

    @app.exception_handler(JobNotFoundError)
    async def job_not_found(request: Request, exc: JobNotFoundError):
        return JSONResponse(status_code=404, content={"error": str(exc)})

    @app.exception_handler(InvalidTransitionError)
    async def invalid_transition(request: Request, exc: InvalidTransitionError):
        return JSONResponse(
            status_code=409,
            content={"error": str(exc), "status": exc.current.value},
        )

    @app.get("/health")
    async def health():
        return {"ok": True, "timestamp": utc_now().isoformat()}

    @app.post("/jobs", status_code=202, response_model=Job)
    async def submit_job(body: RunRequest, request: Request):
        return request.app.state.manager.submit(body)

    @app.get("/jobs/{job_id}", response_model=Job)
    async def get_job(job_id: str, request: Request):
        return request.app.state.manager.get(job_id)

    @app.post("/jobs/{job_id}/approve", response_model=Job)
    async def approve_job(job_id: str, request: Request, body: ReviewRequest | None = None):
        return request.app.state.manager.approve(job_id, body.reviewer if body else None)

    @app.post("/jobs/{job_id}/deny", response_model=Job)
    async def deny_job(job_id: str, request: Request, body: ReviewRequest | None = None):
        return request.app.state.manager.deny(job_id, body.reviewer if body else None)

    return app


app = create_app()
