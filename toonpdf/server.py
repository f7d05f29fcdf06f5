# -*- coding: utf-8 -*-
"""HTTP front-end: start a job, follow its log, fetch the PDF."""

from __future__ import annotations

import asyncio
import logging
import os
import platform
from typing import AsyncIterator, Optional

from fastapi import APIRouter, BackgroundTasks, FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse, JSONResponse, PlainTextResponse, StreamingResponse
from pydantic import BaseModel
import uvicorn

from . import __version__, config
from .errors import InputError
from .jobs import (
    DONE,
    DONE_SENTINEL,
    ERROR_SENTINEL,
    FINAL_STATES,
    JobStore,
    run_job_process,
)
from .urls import normalize_url

LOG = logging.getLogger("toonpdf.server")

HEARTBEAT_S = 15
SSE_RETRY_MS = 1000
SENTINELS = (DONE_SENTINEL, ERROR_SENTINEL)


class StartRequest(BaseModel):
    url: str = ""
    debug: bool = False
    wait: int = 0


class StartResponse(BaseModel):
    jobId: str
    fileName: str


class JobStatusResponse(BaseModel):
    status: str
    fileName: Optional[str] = None
    errorMessage: Optional[str] = None


def _sse(line: str) -> str:
    return "".join(f"data: {part}\n" for part in line.split("\n")) + "\n"


async def event_stream(store: JobStore, job_id: str) -> AsyncIterator[str]:
    yield f"retry: {SSE_RETRY_MS}\n\n"
    record = store.get(job_id)
    if record is not None and record.status in FINAL_STATES:
        yield _sse(DONE_SENTINEL if record.status == DONE else ERROR_SENTINEL)
        return

    queue = store.subscribe(job_id)
    try:
        while True:
            try:
                line = await asyncio.wait_for(queue.get(), timeout=HEARTBEAT_S)
            except asyncio.TimeoutError:
                yield ": ping\n\n"
                continue
            yield _sse(line)
            if line in SENTINELS:
                return
    finally:
        store.unsubscribe(job_id, queue)


def build_router() -> APIRouter:
    router = APIRouter()

    def _store(request: Request) -> JobStore:
        return request.app.state.store

    @router.get("/")
    async def read_root():
        return {"service": "toonpdf", "status": "ok"}

    @router.get("/healthz", response_class=PlainTextResponse)
    async def healthz():
        return "ok"

    @router.get("/diag")
    async def diag():
        return {
            "version": __version__,
            "python": platform.python_version(),
            "cwd": os.getcwd(),
            "env": {
                "HEADLESS": os.getenv("HEADLESS"),
                "CHROME_PATH": bool(config.chrome_path()),
                "PLAYWRIGHT_BROWSERS_PATH": os.getenv("PLAYWRIGHT_BROWSERS_PATH"),
            },
        }

    @router.post("/start", response_model=StartResponse)
    async def start(body: StartRequest, request: Request, background_tasks: BackgroundTasks):
        try:
            url = normalize_url(body.url, config.site_origin())
        except InputError as exc:
            raise HTTPException(status_code=400, detail=str(exc))
        store = _store(request)
        record = store.create(url)
        LOG.info("Job %s started for %s", record.job_id, url)
        background_tasks.add_task(
            run_job_process, store, record, url, body.debug, max(0, body.wait)
        )
        return StartResponse(jobId=record.job_id, fileName=record.file_name)

    @router.get("/events/{job_id}")
    async def events(job_id: str, request: Request):
        return StreamingResponse(
            event_stream(_store(request), job_id),
            media_type="text/event-stream",
            headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
        )

    @router.get("/status/{job_id}", response_model=JobStatusResponse)
    async def status(job_id: str, request: Request):
        record = _store(request).get(job_id)
        if record is None:
            return JSONResponse({"status": "unknown"}, status_code=404)
        return JobStatusResponse(
            status=record.status,
            fileName=record.file_name,
            errorMessage=record.error_message,
        )

    @router.get("/result/{job_id}")
    async def result(job_id: str, request: Request):
        record = _store(request).get(job_id)
        if record is None or not os.path.exists(record.pdf_path):
            raise HTTPException(status_code=404, detail="PDF not found")
        return FileResponse(
            record.pdf_path,
            media_type="application/pdf",
            filename=record.file_name,
        )

    return router


def create_app(store: Optional[JobStore] = None) -> FastAPI:
    app = FastAPI(title="toonpdf", version=__version__)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.state.store = store or JobStore(config.jobs_dir())
    app.include_router(build_router())
    return app


def main() -> None:
    config.load_env()
    config.setup_logging(file_name="toonpdf-server.log")
    host, port = config.server_host(), config.server_port()
    LOG.info("Server on http://%s:%d", host, port)
    uvicorn.run(create_app(), host=host, port=port, log_config=None)


if __name__ == "__main__":  # pragma: no cover
    main()
