from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class CommissionRecordIn(BaseModel):
    device_id: str
    payment_date: str = ""
    activation_date: str = ""
    payment_type: str = ""
    amount: float
    description: str = ""
    adjustment_reason: str | None = None
    month_number: int | None = None
    sale_type: str = "Unknown"
    rep_username: str | None = None
    store: str | None = None
    is_active: bool = True
    payment_received: bool | None = None
    manually_entered: bool = False


class CommissionRecordUpdate(BaseModel):
    device_id: str | None = None
    payment_date: str | None = None
    activation_date: str | None = None
    payment_type: str | None = None
    amount: float | None = None
    description: str | None = None
    adjustment_reason: str | None = None
    month_number: int | None = None
    sale_type: str | None = None
    rep_username: str | None = None
    store: str | None = None
    is_active: bool | None = None
    payment_received: bool | None = None


class CommissionRecordOut(CommissionRecordIn):
    model_config = ConfigDict(from_attributes=True)

    id: int
    source_file_id: str | None = None


class BulkUploadRequest(BaseModel):
    records: list[CommissionRecordIn] = Field(..., min_length=1)
    filename: str | None = None
    batch_id: str | None = None


class IngestResponse(BaseModel):
    inserted: int
    duplicates: int
    skipped: int
    batch_id: str | None = None


class AnnotationUpdate(BaseModel):
    notes: str | None = None
    withholding_resolved: bool | None = None
    suspended: bool | None = None
    deactivated: bool | None = None
    blacklisted: bool | None = None
    byod_swap: bool | None = None
    customer_name: str | None = None
    customer_number: str | None = None
    customer_email: str | None = None


class AnnotationOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    device_id: str
    notes: str = ""
    withholding_resolved: bool = False
    suspended: bool = False
    deactivated: bool = False
    blacklisted: bool = False
    byod_swap: bool = False
    customer_name: str | None = None
    customer_number: str | None = None
    customer_email: str | None = None


class AnnotationImportRequest(BaseModel):
    entries: list[dict[str, Any]] = Field(..., min_length=1)


class ManualPaymentRequest(BaseModel):
    month: int = Field(..., ge=1, le=6)
    amount: float
    payment_received: bool = True
    payment_date: str | None = None


class UploadBatchOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    filename: str
    uploaded_at: datetime | None = None
    record_count: int
    total_amount: float
