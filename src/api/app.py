"""
HTTP surface for Content Factory.

Endpoints:
    POST /api/process-batch          Run a batch, streaming tagged progress lines
    POST|GET|PUT /api/cancel-process Set / read / reset cancellation
    GET  /api/generate-example       Download a sample input workbook
    POST /api/generate               Relay the backend as SSE content records
    POST /api/jobs/{job_id}/export   Re-export a finished job's posts
"""

import asyncio
import json
from collections import OrderedDict
from typing import AsyncIterator, Optional

from fastapi import FastAPI, File, Form, HTTPException, Query, Request, UploadFile
from fastapi.responses import JSONResponse, Response, StreamingResponse

from src.config.settings import Settings, get_settings
from src.converters.exporters import (
    ExportError,
    ExportFormat,
    UnsupportedFormatError,
    build_example_workbook,
    parse_format,
)
from src.parsers.topic_parser import InputError, RawBytes, TopicParser, TopicSource
from src.pipeline.cancellation import CancellationRegistry
from src.pipeline.job import BatchJob
from src.pipeline.progress import ProgressChannel
from src.pipeline.state import Error
from src.utils.llm_helpers import GenerativeBackend, get_backend
from src.utils.logger import get_logger

logger = get_logger(__name__)

MAX_FINISHED_JOBS = 50


def _attachment(filename: str) -> dict[str, str]:
    return {"Content-Disposition": f'attachment; filename="{filename}"'}


def _sse(payload: dict) -> bytes:
    return f"data: {json.dumps(payload, ensure_ascii=False)}\n\n".encode("utf-8")


async def _read_source(
    file: Optional[UploadFile],
    text: Optional[str],
    idea: Optional[str],
    link: Optional[str],
) -> TopicSource:
    if file is not None and file.filename:
        return RawBytes(filename=file.filename, data=await file.read())
    if text and text.strip():
        return TopicParser.rows_from_text(text)
    if idea and idea.strip():
        return TopicParser.rows_from_single(idea, link)
    raise InputError("No input provided: upload a file, paste text or enter a single idea")


async def stream_job(job: BatchJob, channel: ProgressChannel) -> AsyncIterator[bytes]:
    """
    Relay a job's encoded progress to the client.

    If the client goes away before the stream ends, the job is cancelled.
    """
    try:
        async for chunk in channel.encoded():
            yield chunk
    finally:
        if not channel.closed:
            logger.info(f"Client left job {job.job_id} early, cancelling it")
            job.cancellation.set()


def create_app(
    settings: Optional[Settings] = None,
    backend: Optional[GenerativeBackend] = None,
) -> FastAPI:
    """
    Build the application.

    Args:
        settings: Settings override (defaults to get_settings())
        backend: Generative backend override, shared by every job
    """
    settings = settings or get_settings()
    app = FastAPI(title="Content Factory", version="0.1.0")
    app.state.settings = settings
    app.state.registry = CancellationRegistry()
    app.state.jobs = OrderedDict()
    app.state.tasks = set()

    def _backend() -> GenerativeBackend:
        return backend or get_backend(settings)

    def _remember(job: BatchJob) -> None:
        jobs: OrderedDict = app.state.jobs
        jobs[job.job_id] = job
        while len(jobs) > MAX_FINISHED_JOBS:
            jobs.popitem(last=False)

    @app.post("/api/process-batch")
    async def process_batch(
        file: Optional[UploadFile] = File(None),
        text: Optional[str] = Form(None),
        idea: Optional[str] = Form(None),
        link: Optional[str] = Form(None),
        format: str = Form("excel"),
        batch_size: Optional[int] = Form(None),
    ):
        try:
            fmt = parse_format(format)
        except UnsupportedFormatError as e:
            raise HTTPException(status_code=400, detail=str(e))
        if batch_size is not None and batch_size < 1:
            raise HTTPException(status_code=400, detail="batch_size must be at least 1")

        # the upload is read before returning, it is closed once the handler exits
        try:
            source: Optional[TopicSource] = await _read_source(file, text, idea, link)
            input_error = None
        except InputError as e:
            source, input_error = None, str(e)

        job = BatchJob(backend=_backend(), settings=settings)
        registry: CancellationRegistry = app.state.registry
        registry.register(job.job_id, job.cancellation)
        _remember(job)
        channel = ProgressChannel()

        async def run_job() -> None:
            try:
                if input_error is not None:
                    job.error = input_error
                    channel.emit(Error(message=input_error))
                    channel.close()
                else:
                    await job.run(source, fmt, channel, batch_size=batch_size)
            finally:
                registry.unregister(job.job_id)

        task = asyncio.create_task(run_job())
        app.state.tasks.add(task)
        task.add_done_callback(app.state.tasks.discard)
        logger.info(f"Job {job.job_id} started ({fmt.value})")

        return StreamingResponse(
            stream_job(job, channel),
            media_type="text/event-stream",
            headers={"X-Job-Id": job.job_id, "Cache-Control": "no-cache"},
        )

    @app.post("/api/cancel-process")
    async def cancel_process(job_id: Optional[str] = Query(None)):
        signalled = app.state.registry.cancel(job_id)
        if job_id and not signalled:
            raise HTTPException(status_code=404, detail=f"No active job {job_id}")
        return {"message": "Process cancelled", "jobs": signalled}

    @app.get("/api/cancel-process")
    async def cancel_status(job_id: Optional[str] = Query(None)):
        return {"isCancelled": app.state.registry.is_cancelled(job_id)}

    @app.put("/api/cancel-process")
    async def cancel_reset(job_id: Optional[str] = Query(None)):
        reset = app.state.registry.reset(job_id)
        return {"message": "Cancellation reset", "jobs": reset}

    @app.get("/api/generate-example")
    async def generate_example():
        payload = build_example_workbook()
        return Response(
            content=payload.content,
            media_type=payload.mime_type,
            headers=_attachment(payload.filename),
        )

    @app.post("/api/generate")
    async def generate(request: Request):
        try:
            body = await request.json()
        except json.JSONDecodeError:
            raise HTTPException(status_code=400, detail="Request body must be JSON")
        prompt = (body.get("prompt") or "").strip()
        if not prompt and body.get("idea"):
            prompt = f"Write a blog post about: {body['idea']}"
            if body.get("referenceLink"):
                prompt += f"\nReference: {body['referenceLink']}"
        if not prompt:
            raise HTTPException(status_code=400, detail="prompt or idea is required")

        relay_backend = _backend()

        async def relay():
            try:
                async for fragment in relay_backend.stream(prompt):
                    if fragment:
                        yield _sse({"content": fragment})
            except Exception as e:
                logger.error(f"Generate relay failed: {e}", exc_info=True)
                yield _sse({"error": str(e)})

        return StreamingResponse(
            relay(),
            media_type="text/event-stream",
            headers={"Cache-Control": "no-cache", "Connection": "keep-alive"},
        )

    @app.post("/api/jobs/{job_id}/export")
    async def export_job(job_id: str, format: str = Query(...)):
        job: Optional[BatchJob] = app.state.jobs.get(job_id)
        if job is None:
            raise HTTPException(status_code=404, detail=f"Unknown job {job_id}")
        if job.result is None and job.error is not None:
            raise HTTPException(status_code=422, detail=f"Job {job_id} produced no posts: {job.error}")
        if job.result is None:
            raise HTTPException(status_code=409, detail=f"Job {job_id} has not finished generating")
        try:
            fmt = parse_format(format)
            if fmt is ExportFormat.GOOGLE_SHEETS:
                url = await job.publisher.publish(job.posts)
                return JSONResponse({"url": url})
            payload = job.export(fmt)
        except UnsupportedFormatError as e:
            raise HTTPException(status_code=400, detail=str(e))
        except ExportError as e:
            raise HTTPException(status_code=502, detail=str(e))
        return Response(
            content=payload.content,
            media_type=payload.mime_type,
            headers=_attachment(payload.filename),
        )

    return app


app = create_app()
