from __future__ import annotations

import json
import logging

import pandas as pd
from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import StreamingResponse

from authentication.deps import require_manager
from models.commission_schemas import CommissionRecordOut, UploadBatchOut
from routers.params import raise_http
from services.commission_store import CommissionStore, get_store
from services.errors import CommissionError

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/files",
    tags=["files"],
    dependencies=[Depends(require_manager)],
)


def _clean_json_row(row: dict) -> dict:
    out: dict = {}
    for key, value in row.items():
        if isinstance(value, float) and (value != value or value == float("inf") or value == float("-inf")):
            out[key] = None
            continue
        out[key] = value
    return out


@router.get("")
def list_files(store: CommissionStore = Depends(get_store)):
    batches = store.list_batches()
    items = [UploadBatchOut.model_validate(b).model_dump(mode="json") for b in batches]
    return {"items": items}


@router.get("/{batch_id}/download")
def download_file(
    batch_id: str,
    format: str = Query("csv"),
    store: CommissionStore = Depends(get_store),
):
    fmt = (format or "csv").strip().lower()
    if fmt not in {"csv", "json"}:
        raise HTTPException(status_code=400, detail="format must be csv or json")

    try:
        batch = store.get_batch(batch_id)
        records = store.batch_records(batch_id)
    except CommissionError as exc:
        raise_http(exc)

    payloads = [_clean_json_row(CommissionRecordOut.model_validate(r).model_dump()) for r in records]
    if not payloads:
        raise HTTPException(status_code=404, detail="No records found for this file")

    stem = (batch.filename or batch_id).rsplit(".", 1)[0] or batch_id
    if fmt == "json":
        content = json.dumps(payloads).encode("utf-8")
        media_type = "application/json"
        filename = f"{stem}.json"
    else:
        df = pd.DataFrame(payloads)
        content = df.to_csv(index=False).encode("utf-8")
        media_type = "text/csv"
        filename = f"{stem}.csv"

    return StreamingResponse(
        iter([content]),
        media_type=media_type,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.delete("/{batch_id}")
def delete_file(batch_id: str, store: CommissionStore = Depends(get_store)):
    try:
        deleted = store.delete_batch(batch_id)
    except CommissionError as exc:
        raise_http(exc)
    return {"deleted_rows": deleted, "batch_id": batch_id}
