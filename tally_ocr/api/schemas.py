"""Pydantic request/response schemas for the FastAPI endpoints."""

from pydantic import BaseModel, Field

from tally_ocr.commit.records import ProductionRecord, RecordSource


class HealthResponse(BaseModel):
    """Response schema for the health check endpoint."""

    status: str
    version: str
    tesseract_available: bool


class ValueCellResponse(BaseModel):
    raw_text: str
    word_index: int | None = None


class ShiftRowResponse(BaseModel):
    """A shift row with its live reconciliation state."""

    index: int
    name: str
    values: list[ValueCellResponse]
    declared_total: float | None = None
    live_sum: float
    discrepancy: bool = False


class BlockResponse(BaseModel):
    id: str
    date: str
    date_valid: bool
    shifts: list[ShiftRowResponse]


class DiscrepancyResponse(BaseModel):
    block_id: str
    shift_index: int
    shift_name: str
    live_sum: float
    declared_total: float
    difference: float


class SessionResponse(BaseModel):
    """Response schema for the reviewer's active correction session."""

    id: str
    lab_id: str
    source: RecordSource
    created_at: str
    page_count: int
    blocks: list[BlockResponse]
    discrepancies: list[DiscrepancyResponse]


class DateUpdate(BaseModel):
    date: str


class BlockCreate(BaseModel):
    date: str = ""


class ShiftName(BaseModel):
    name: str = Field(min_length=1)


class ValueText(BaseModel):
    raw_text: str = ""


class DeclaredTotalUpdate(BaseModel):
    total: float | None = None


class ValueRegionResponse(BaseModel):
    """A cell's clickable region on the displayed image."""

    block_id: str
    shift_index: int
    value_index: int
    raw_text: str
    x: float
    y: float
    width: float
    height: float


class RecordMetadata(BaseModel):
    source: RecordSource


class ProductionRecordSchema(BaseModel):
    """Wire shape of a persisted production record."""

    lab_id: str
    identificador_unico: str
    data_producao: str
    turno: str
    produto: str
    peso: float
    metadata: RecordMetadata

    @classmethod
    def from_record(cls, record: ProductionRecord) -> "ProductionRecordSchema":
        return cls(**record.to_wire())


class CommitResponse(BaseModel):
    success: bool
    session_id: str
    records_written: int
    records: list[ProductionRecordSchema]


class DeleteResponse(BaseModel):
    deleted: int
