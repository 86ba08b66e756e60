import logging
import os
from typing import Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from .confirmations import ConfirmationQueue, UnknownBatchError
from .intake import EmptyImportError, choose_source_text
from .memory_store import (
    ContextMemoryManager,
    HttpMemoryStore,
    InMemoryStore,
    JsonFileStore,
    MemoryStoreError,
)
from .models import BatchResult
from .pipeline import run_paste_batch
from .styles import get_format_styles

logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(message)s")
log = logging.getLogger(__name__)

app = FastAPI(title="Paste Classifier", description="Labels pasted Arabic screenplay text line by line")

MEMORY_BACKEND = os.getenv("MEMORY_BACKEND", "memory")
MEMORY_DIR = os.getenv("MEMORY_DIR", "/data/memory")
MEMORY_URL = os.getenv("MEMORY_URL", "http://localhost:8080")
CONFIDENCE_THRESHOLD = float(os.getenv("CONFIDENCE_THRESHOLD", "0.7"))


def build_store(backend: str):
    if backend == "file":
        return JsonFileStore(MEMORY_DIR)
    if backend == "http":
        return HttpMemoryStore(MEMORY_URL)
    if backend != "memory":
        log.warning("Unknown MEMORY_BACKEND=%r, using in-process memory", backend)
    return InMemoryStore()


def _log_pending(batch_id: str, count: int) -> None:
    log.info("Batch %s has %d line(s) to confirm: GET /batches/%s/pending", batch_id, count, batch_id)


memory_manager = ContextMemoryManager(build_store(MEMORY_BACKEND))
confirmations = ConfirmationQueue(notifier=_log_pending)


class ClassifyRequest(BaseModel):
    text: str
    session_id: Optional[str] = None
    confidence_threshold: Optional[float] = None
    include_styles: bool = False


class ImportRequest(BaseModel):
    text: Optional[str] = None
    structured_blocks: list[str] = []
    session_id: Optional[str] = None
    include_styles: bool = False


class ClassifyResponse(BaseModel):
    batch_id: str
    session_id: str
    source: Optional[str] = None
    blocks: list[dict]
    pending_count: int
    warnings: list[str]
    report: dict


class ResolveRequest(BaseModel):
    decisions: dict[int, str] = {}


class ResolveResponse(BaseModel):
    batch_id: str
    resolved: dict[int, str]
    unresolved: list[int]
    blocks: list[dict]


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    body = await request.body()
    log.error("422 validation error on %s %s", request.method, request.url.path)
    log.error("Request body: %s", body.decode(errors="replace")[:2000])
    log.error("Validation errors: %s", exc.errors())
    return JSONResponse(
        status_code=422,
        content={"detail": jsonable_errors(exc), "body_preview": body.decode(errors="replace")[:500]},
    )


def jsonable_errors(exc: RequestValidationError) -> list[dict]:
    # ctx may hold exception objects
    return [{k: v for k, v in err.items() if k != "ctx"} for err in exc.errors()]


async def _classify(text: str, session_id: Optional[str], threshold: Optional[float],
                    include_styles: bool) -> BatchResult:
    return await run_paste_batch(
        text,
        session_id=session_id,
        memory_manager=memory_manager,
        confirmations=confirmations,
        confidence_threshold=CONFIDENCE_THRESHOLD if threshold is None else threshold,
        style_for=get_format_styles if include_styles else None,
    )


def _response(result: BatchResult, source: Optional[str] = None) -> ClassifyResponse:
    return ClassifyResponse(
        batch_id=result.batch_id,
        session_id=result.session_id,
        source=source,
        blocks=[b.to_dict() for b in result.blocks],
        pending_count=result.pending_count,
        warnings=result.warnings,
        report=result.report,
    )


@app.post("/classify", response_model=ClassifyResponse)
async def classify(request: ClassifyRequest):
    log.info("POST /classify: session=%s text_length=%d", request.session_id, len(request.text))
    result = await _classify(request.text, request.session_id,
                             request.confidence_threshold, request.include_styles)
    return _response(result)


@app.post("/import", response_model=ClassifyResponse)
async def import_file(request: ImportRequest):
    log.info("POST /import: session=%s structured_blocks=%d",
             request.session_id, len(request.structured_blocks))
    try:
        source, text = choose_source_text(request.text, request.structured_blocks)
    except EmptyImportError as e:
        raise HTTPException(status_code=400, detail=str(e))
    result = await _classify(text, request.session_id, None, request.include_styles)
    return _response(result, source=source)


@app.get("/batches/{batch_id}/pending")
async def list_pending(batch_id: str):
    try:
        pending = confirmations.pending(batch_id)
    except UnknownBatchError:
        raise HTTPException(status_code=404, detail=f"Unknown batch: {batch_id}")
    return {"batch_id": batch_id, "pending": [p.to_dict() for p in pending]}


@app.post("/batches/{batch_id}/resolve", response_model=ResolveResponse)
async def resolve_batch(batch_id: str, request: ResolveRequest):
    """Finalize a batch's pending lines.

    Items without an entry in ``decisions`` keep their suggested label.
    """
    log.info("POST /batches/%s/resolve: %d decision(s)", batch_id, len(request.decisions))
    try:
        outcome = await confirmations.resolve(batch_id, decisions=request.decisions)
    except UnknownBatchError:
        raise HTTPException(status_code=404, detail=f"Unknown batch: {batch_id}")
    return ResolveResponse(
        batch_id=batch_id,
        resolved=outcome.resolved,
        unresolved=outcome.unresolved,
        blocks=[b.to_dict() for b in outcome.blocks],
    )


@app.get("/sessions/{session_id}/memory")
async def get_memory(session_id: str):
    try:
        memory = await memory_manager.load_context(session_id)
    except MemoryStoreError as e:
        log.error("Memory read failed for session %s: %s", session_id, e)
        raise HTTPException(status_code=502, detail=f"Memory store failed: {e}")
    if memory is None:
        raise HTTPException(status_code=404, detail=f"No memory for session: {session_id}")
    return memory.to_dict()


@app.get("/health")
async def health():
    return {"status": "ok", "memory_backend": MEMORY_BACKEND, "confidence_threshold": CONFIDENCE_THRESHOLD}
