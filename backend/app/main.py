"""VibedQA API - backend server with SSE streaming for live scan progress."""

import asyncio
import json
import logging
import uuid
from datetime import datetime

from fastapi import BackgroundTasks, FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import StreamingResponse
from pydantic import BaseModel, Field

from vibedqa.config import DEFAULT_AI_MODEL, ConfigError, CrawlConfig
from vibedqa.core.pipeline import run_pipeline
from vibedqa.models.types import Report


logger = logging.getLogger(__name__)

app = FastAPI(title="VibedQA API", version="0.1.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:3000", "http://localhost:5173"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

scans: dict[str, dict] = {}
# Per-scan event queues for SSE streaming
_event_queues: dict[str, list[asyncio.Queue]] = {}


class ScanRequest(BaseModel):
    url: str
    depth: int = Field(default=2, ge=0)
    viewports: list[str] = ["desktop"]
    languages: list[str] = ["auto"]
    themes: list[str] = ["light"]
    max_clicks: int = Field(default=30, ge=0)
    timeout_ms: int = Field(default=30000, gt=0)
    enable_click: bool = True
    enable_input: bool = True
    enable_navigation: bool = True
    ai_model: str = DEFAULT_AI_MODEL


class ScanResponse(BaseModel):
    scan_id: str
    status: str
    url: str


@app.get("/health")
def health():
    return {"status": "ok", "service": "vibedqa-api", "version": "0.1.0"}


def config_from_request(req: ScanRequest) -> CrawlConfig:
    return CrawlConfig.from_options(
        req.url,
        viewports=req.viewports,
        languages=req.languages,
        themes=req.themes,
        max_depth=req.depth,
        max_clicks_per_page=req.max_clicks,
        timeout_ms=req.timeout_ms,
        enable_click=req.enable_click,
        enable_input=req.enable_input,
        enable_navigation=req.enable_navigation,
        ai_model=req.ai_model,
    )


@app.post("/api/v1/scan", response_model=ScanResponse)
async def start_scan(req: ScanRequest, background_tasks: BackgroundTasks):
    try:
        config = config_from_request(req)
    except ConfigError as e:
        raise HTTPException(status_code=422, detail=str(e))

    scan_id = str(uuid.uuid4())[:8]
    scans[scan_id] = {
        "scan_id": scan_id,
        "url": config.url,
        "status": "running",
        "started_at": datetime.now().isoformat(),
        "report": None,
        "report_path": None,
        "error": None,
    }
    _event_queues[scan_id] = []

    background_tasks.add_task(run_scan, scan_id, config)

    return ScanResponse(scan_id=scan_id, status="running", url=config.url)


@app.get("/api/v1/scan/{scan_id}/stream")
async def scan_stream(scan_id: str, request: Request):
    """SSE endpoint that streams live progress events during a scan."""
    if scan_id not in scans:
        raise HTTPException(status_code=404, detail="Scan not found")

    queue: asyncio.Queue = asyncio.Queue()
    _event_queues.setdefault(scan_id, []).append(queue)

    async def event_generator():
        try:
            while True:
                if await request.is_disconnected():
                    break

                try:
                    event = await asyncio.wait_for(queue.get(), timeout=30.0)
                except asyncio.TimeoutError:
                    yield ": keepalive\n\n"
                    continue

                if event is None:
                    break

                event_type = event.get("type", "update")
                yield f"event: {event_type}\ndata: {json.dumps(event, default=str)}\n\n"

                if event_type in ("scan_complete", "scan_failed"):
                    break
        finally:
            if queue in _event_queues.get(scan_id, []):
                _event_queues[scan_id].remove(queue)

    return StreamingResponse(
        event_generator(),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",
        },
    )


@app.get("/api/v1/scan/{scan_id}")
async def get_scan(scan_id: str):
    if scan_id not in scans:
        raise HTTPException(status_code=404, detail="Scan not found")

    scan = scans[scan_id]
    body = {
        "scan_id": scan_id,
        "status": scan["status"],
        "url": scan["url"],
        "started_at": scan["started_at"],
        "error": scan.get("error"),
    }

    report: Report | None = scan.get("report")
    if scan["status"] == "completed" and report:
        body.update(report.to_dict())
        body["report_path"] = scan["report_path"]
    return body


@app.get("/api/v1/scans")
async def list_scans():
    return [
        {
            "scan_id": s["scan_id"],
            "url": s["url"],
            "status": s["status"],
            "started_at": s["started_at"],
            "issues_found": s["report"].summary()["issues_found"] if s.get("report") else None,
        }
        for s in scans.values()
    ]


def _broadcast_event(scan_id: str, event_type: str, data: dict):
    """Push an SSE event to all connected clients for this scan."""
    event = {"type": event_type, **data}
    for q in _event_queues.get(scan_id, []):
        try:
            q.put_nowait(event)
        except asyncio.QueueFull:
            pass


async def run_scan(scan_id: str, config: CrawlConfig):
    def on_progress(event_type: str, data: dict):
        # Sent below, once the report is stored
        if event_type == "scan_complete":
            return
        _broadcast_event(scan_id, event_type, data)

    try:
        report, report_path = await run_pipeline(config, on_progress=on_progress)
        scans[scan_id]["status"] = "completed"
        scans[scan_id]["report"] = report
        scans[scan_id]["report_path"] = report_path
        _broadcast_event(scan_id, "scan_complete", {"report_path": report_path, **report.summary()})
    except Exception as e:
        logger.exception("Scan %s failed", scan_id)
        scans[scan_id]["status"] = "failed"
        scans[scan_id]["error"] = str(e)[:500]
        _broadcast_event(scan_id, "scan_failed", {"error": str(e)[:500]})

    # Signal end to all SSE listeners
    for q in _event_queues.get(scan_id, []):
        try:
            q.put_nowait(None)
        except asyncio.QueueFull:
            pass
