import logging

from fastapi import APIRouter, Depends, HTTPException, Query

from models.commission_schemas import (
    AnnotationImportRequest,
    AnnotationOut,
    AnnotationUpdate,
    CommissionRecordOut,
    ManualPaymentRequest,
)
from routers.params import raise_http
from services.commission_store import CommissionStore, get_store
from services.errors import CommissionError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/devices", tags=["devices"])


# --------------------------------------------------
# ANNOTATIONS (bulk)
# --------------------------------------------------
@router.get("/annotations", response_model=list[AnnotationOut])
def list_annotations(
    flag: str | None = Query(None),
    store: CommissionStore = Depends(get_store),
):
    try:
        return store.list_annotations(flag=flag)
    except CommissionError as exc:
        raise_http(exc)


@router.get("/annotations/export")
def export_annotations(store: CommissionStore = Depends(get_store)):
    entries = store.export_annotations()
    return {"entries": entries, "count": len(entries)}


@router.post("/annotations/import")
def import_annotations(payload: AnnotationImportRequest, store: CommissionStore = Depends(get_store)):
    try:
        imported = store.import_annotations(payload.entries)
    except CommissionError as exc:
        raise_http(exc)
    return {"imported": imported}


# --------------------------------------------------
# PER DEVICE
# --------------------------------------------------
@router.get("/{imei}/records", response_model=list[CommissionRecordOut])
def device_records(imei: str, store: CommissionStore = Depends(get_store)):
    records = store.records_for_device(imei)
    if not records:
        raise HTTPException(status_code=404, detail=f"Device {imei} not found")
    return records


@router.post("/{imei}/toggle-active")
def toggle_active(imei: str, store: CommissionStore = Depends(get_store)):
    try:
        is_active = store.toggle_device_active(imei)
    except CommissionError as exc:
        raise_http(exc)
    logger.info("TOGGLE: device=%s is_active=%s", imei, is_active)
    return {"imei": imei, "is_active": is_active}


@router.post("/{imei}/manual-payment")
def manual_payment(
    imei: str,
    payload: ManualPaymentRequest,
    store: CommissionStore = Depends(get_store),
):
    try:
        record = store.add_manual_month_payment(
            imei,
            payload.month,
            payload.amount,
            payload.payment_received,
            payment_date=payload.payment_date,
        )
    except CommissionError as exc:
        raise_http(exc)

    if record is None:
        return {"created": False, "record": None}
    return {"created": True, "record": CommissionRecordOut.model_validate(record)}


@router.get("/{imei}/notes", response_model=AnnotationOut)
def get_notes(imei: str, store: CommissionStore = Depends(get_store)):
    annotation = store.get_annotation(imei)
    if annotation is None:
        return AnnotationOut(device_id=imei)
    return annotation


@router.put("/{imei}/notes", response_model=AnnotationOut)
def put_notes(
    imei: str,
    payload: AnnotationUpdate,
    store: CommissionStore = Depends(get_store),
):
    fields = payload.model_dump(exclude_unset=True)
    try:
        return store.set_annotation(imei, fields)
    except CommissionError as exc:
        raise_http(exc)
