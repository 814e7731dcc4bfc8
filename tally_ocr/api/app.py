"""FastAPI application for reviewing and committing digitized tally sheets.

Images come in from a file picker or a clipboard paste as the same
multipart upload. Each reviewer (``X-Reviewer`` header) works on one
correction session at a time.
"""

import shutil
from collections.abc import Callable
from functools import lru_cache
from typing import Annotated, Any

from fastapi import Depends, FastAPI, File, Header, HTTPException, Query, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from starlette.concurrency import run_in_threadpool

from tally_ocr.commit.normalize import EmptyCommitError, InvalidBlockDateError
from tally_ocr.commit.records import ProductionRecord
from tally_ocr.ocr.tesseract_engine import OCRError
from tally_ocr.review.service import (
    RecordsNotFoundError,
    ReviewService,
    SessionNotFoundError,
)
from tally_ocr.session import editor
from tally_ocr.session.editor import SessionEditError
from tally_ocr.session.models import CorrectionSession
from tally_ocr.storage.base import PersistenceError
from tally_ocr.utils.config import load_config
from tally_ocr.utils.logger import get_logger
from tally_ocr.validation.dates import is_valid_iso_date
from tally_ocr.validation.reconciliation import check_row, live_sum

from .schemas import (
    BlockCreate,
    BlockResponse,
    CommitResponse,
    DateUpdate,
    DeclaredTotalUpdate,
    DeleteResponse,
    DiscrepancyResponse,
    HealthResponse,
    ProductionRecordSchema,
    SessionResponse,
    ShiftName,
    ShiftRowResponse,
    ValueCellResponse,
    ValueRegionResponse,
    ValueText,
)

logger = get_logger(__name__)

VERSION = "1.0.0"

app = FastAPI(
    title="Tally Sheet Digitizer API",
    description="Turn photos of production tally sheets into reviewed records",
    version=VERSION,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

_ALLOWED_CONTENT_TYPES = {"application/pdf", "application/octet-stream"}


@lru_cache(maxsize=1)
def get_service() -> ReviewService:
    """Build the process-wide review service from configuration."""
    return ReviewService(load_config())


Service = Annotated[ReviewService, Depends(get_service)]
Reviewer = Annotated[str, Header(alias="X-Reviewer")]


def _session_response(session: CorrectionSession, tolerance: float) -> SessionResponse:
    blocks = []
    flagged = []
    for block in session.blocks:
        rows = []
        for index, row in enumerate(block.shifts):
            discrepancy = check_row(row, block.id, index, tolerance)
            if discrepancy:
                flagged.append(
                    DiscrepancyResponse(
                        block_id=discrepancy.block_id,
                        shift_index=discrepancy.shift_index,
                        shift_name=discrepancy.shift_name,
                        live_sum=discrepancy.live_sum,
                        declared_total=discrepancy.declared_total,
                        difference=discrepancy.difference,
                    )
                )
            rows.append(
                ShiftRowResponse(
                    index=index,
                    name=row.name,
                    values=[
                        ValueCellResponse(raw_text=v.raw_text, word_index=v.word_index)
                        for v in row.values
                    ],
                    declared_total=row.declared_total,
                    live_sum=live_sum(row),
                    discrepancy=discrepancy is not None,
                )
            )
        blocks.append(
            BlockResponse(
                id=block.id,
                date=block.date,
                date_valid=is_valid_iso_date(block.date),
                shifts=rows,
            )
        )

    return SessionResponse(
        id=session.id,
        lab_id=session.lab_id,
        source=session.source,
        created_at=session.created_at,
        page_count=len(session.pages),
        blocks=blocks,
        discrepancies=flagged,
    )


def _edit(
    service: ReviewService,
    reviewer: str,
    operation: Callable[..., Any],
    *args: Any,
) -> SessionResponse:
    """Apply an editor operation to the reviewer's session."""
    try:
        session = service.get_session(reviewer)
        operation(session, *args)
    except (SessionNotFoundError, SessionEditError) as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    return _session_response(session, service.config.parsing.display_tolerance)


@app.get("/health", response_model=HealthResponse)
async def health_check() -> HealthResponse:
    """Return system health status."""
    return HealthResponse(
        status="healthy",
        version=VERSION,
        tesseract_available=shutil.which("tesseract") is not None,
    )


@app.post("/sessions", response_model=SessionResponse)
async def create_session(
    file: Annotated[UploadFile, File(...)],
    lab_id: Annotated[str, Query(min_length=1)],
    service: Service,
    reviewer: Reviewer = "default",
) -> SessionResponse:
    """Recognize an uploaded or pasted sheet image and open a session on it.

    Args:
        file: Image (any ``image/*`` type) or PDF scan.
        lab_id: Lab the records will belong to.

    Returns:
        The new correction session.
    """
    content_type = file.content_type or "application/octet-stream"
    if not content_type.startswith("image/") and content_type not in _ALLOWED_CONTENT_TYPES:
        raise HTTPException(
            status_code=400,
            detail=f"Unsupported file type: {content_type}",
        )

    content = await file.read()
    if not content:
        raise HTTPException(status_code=400, detail="Empty upload")

    try:
        session = await run_in_threadpool(
            service.digitize, reviewer, content, lab_id, file.filename or "sheet"
        )
    except OCRError as exc:
        raise HTTPException(status_code=502, detail=str(exc)) from exc
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    return _session_response(session, service.config.parsing.display_tolerance)


@app.post("/sessions/edit-existing", response_model=SessionResponse)
async def edit_existing(
    lab_id: Annotated[str, Query(min_length=1)],
    date: Annotated[str, Query()],
    service: Service,
    reviewer: Reviewer = "default",
) -> SessionResponse:
    """Open the records already stored for a day in the correction editor."""
    try:
        session = await run_in_threadpool(service.edit_existing, reviewer, lab_id, date)
    except RecordsNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return _session_response(session, service.config.parsing.display_tolerance)


@app.get("/session", response_model=SessionResponse)
async def get_session(service: Service, reviewer: Reviewer = "default") -> SessionResponse:
    return _edit(service, reviewer, lambda session: None)


@app.delete("/session", response_model=DeleteResponse)
async def discard_session(
    service: Service, reviewer: Reviewer = "default"
) -> DeleteResponse:
    """Throw the active session away without writing anything."""
    return DeleteResponse(deleted=int(service.discard(reviewer)))


@app.post("/session/blocks", response_model=SessionResponse)
async def add_block(
    body: BlockCreate, service: Service, reviewer: Reviewer = "default"
) -> SessionResponse:
    return _edit(service, reviewer, editor.add_block, body.date)


@app.delete("/session/blocks/{block_id}", response_model=SessionResponse)
async def remove_block(
    block_id: str, service: Service, reviewer: Reviewer = "default"
) -> SessionResponse:
    return _edit(service, reviewer, editor.remove_block, block_id)


@app.put("/session/blocks/{block_id}/date", response_model=SessionResponse)
async def set_block_date(
    block_id: str, body: DateUpdate, service: Service, reviewer: Reviewer = "default"
) -> SessionResponse:
    return _edit(service, reviewer, editor.set_block_date, block_id, body.date)


@app.post("/session/blocks/{block_id}/shifts", response_model=SessionResponse)
async def add_shift(
    block_id: str, body: ShiftName, service: Service, reviewer: Reviewer = "default"
) -> SessionResponse:
    return _edit(service, reviewer, editor.add_shift, block_id, body.name)


@app.put("/session/blocks/{block_id}/shifts/{shift_index}", response_model=SessionResponse)
async def rename_shift(
    block_id: str,
    shift_index: int,
    body: ShiftName,
    service: Service,
    reviewer: Reviewer = "default",
) -> SessionResponse:
    return _edit(
        service, reviewer, editor.rename_shift, block_id, shift_index, body.name
    )


@app.delete(
    "/session/blocks/{block_id}/shifts/{shift_index}", response_model=SessionResponse
)
async def remove_shift(
    block_id: str, shift_index: int, service: Service, reviewer: Reviewer = "default"
) -> SessionResponse:
    return _edit(service, reviewer, editor.remove_shift, block_id, shift_index)


@app.put(
    "/session/blocks/{block_id}/shifts/{shift_index}/total",
    response_model=SessionResponse,
)
async def set_declared_total(
    block_id: str,
    shift_index: int,
    body: DeclaredTotalUpdate,
    service: Service,
    reviewer: Reviewer = "default",
) -> SessionResponse:
    return _edit(
        service, reviewer, editor.set_declared_total, block_id, shift_index, body.total
    )


@app.post(
    "/session/blocks/{block_id}/shifts/{shift_index}/values",
    response_model=SessionResponse,
)
async def add_value(
    block_id: str,
    shift_index: int,
    body: ValueText,
    service: Service,
    reviewer: Reviewer = "default",
) -> SessionResponse:
    return _edit(
        service, reviewer, editor.add_value, block_id, shift_index, body.raw_text
    )


@app.put(
    "/session/blocks/{block_id}/shifts/{shift_index}/values/{value_index}",
    response_model=SessionResponse,
)
async def edit_value(
    block_id: str,
    shift_index: int,
    value_index: int,
    body: ValueText,
    service: Service,
    reviewer: Reviewer = "default",
) -> SessionResponse:
    return _edit(
        service,
        reviewer,
        editor.edit_value,
        block_id,
        shift_index,
        value_index,
        body.raw_text,
    )


@app.delete(
    "/session/blocks/{block_id}/shifts/{shift_index}/values/{value_index}",
    response_model=SessionResponse,
)
async def remove_value(
    block_id: str,
    shift_index: int,
    value_index: int,
    service: Service,
    reviewer: Reviewer = "default",
) -> SessionResponse:
    return _edit(
        service, reviewer, editor.remove_value, block_id, shift_index, value_index
    )


@app.get("/session/regions", response_model=list[ValueRegionResponse])
async def value_regions(
    display_width: Annotated[float, Query(gt=0)],
    display_height: Annotated[float, Query(gt=0)],
    service: Service,
    page: Annotated[int, Query(ge=1)] = 1,
    reviewer: Reviewer = "default",
) -> list[ValueRegionResponse]:
    """Map every correlated cell onto the image at its displayed size."""
    try:
        session = service.get_session(reviewer)
        regions = editor.value_regions(session, (display_width, display_height), page)
    except (SessionNotFoundError, SessionEditError) as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc

    return [
        ValueRegionResponse(
            block_id=r.block_id,
            shift_index=r.shift_index,
            value_index=r.value_index,
            raw_text=r.raw_text,
            x=r.box.x,
            y=r.box.y,
            width=r.box.width,
            height=r.box.height,
        )
        for r in regions
    ]


@app.post("/session/commit", response_model=CommitResponse)
async def commit_session(
    service: Service, reviewer: Reviewer = "default"
) -> CommitResponse:
    """Persist the active session as one batch of records."""
    try:
        result = await run_in_threadpool(service.commit, reviewer)
    except SessionNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except InvalidBlockDateError as exc:
        raise HTTPException(
            status_code=422,
            detail={
                "message": str(exc),
                "invalid_blocks": [
                    {"position": b.position, "block_id": b.block_id, "date": b.date}
                    for b in exc.blocks
                ],
            },
        ) from exc
    except EmptyCommitError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    except PersistenceError as exc:
        logger.error("Commit failed for %s: %s", reviewer, exc)
        raise HTTPException(status_code=503, detail=str(exc)) from exc

    return CommitResponse(
        success=True,
        session_id=result.session_id,
        records_written=result.count,
        records=[ProductionRecordSchema.from_record(r) for r in result.records],
    )


@app.get("/records", response_model=list[ProductionRecordSchema])
async def list_records(
    lab_id: Annotated[str, Query(min_length=1)],
    service: Service,
    start: Annotated[str | None, Query()] = None,
    end: Annotated[str | None, Query()] = None,
) -> list[ProductionRecordSchema]:
    try:
        records: list[ProductionRecord] = await run_in_threadpool(
            service.adapter.list_by_lab_and_date_range, lab_id, start, end
        )
    except PersistenceError as exc:
        raise HTTPException(status_code=503, detail=str(exc)) from exc
    return [ProductionRecordSchema.from_record(r) for r in records]


@app.delete("/records/{date}", response_model=DeleteResponse)
async def delete_records(
    date: str,
    lab_id: Annotated[str, Query(min_length=1)],
    service: Service,
) -> DeleteResponse:
    """Remove every record of a lab for one day."""
    try:
        deleted = await run_in_threadpool(service.adapter.delete_by_date, lab_id, date)
    except PersistenceError as exc:
        raise HTTPException(status_code=503, detail=str(exc)) from exc
    return DeleteResponse(deleted=deleted)
