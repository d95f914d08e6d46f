import logging

from fastapi import APIRouter, Depends, Query

from models.commission_schemas import (
    CommissionRecordIn,
    CommissionRecordOut,
    CommissionRecordUpdate,
)
from routers.params import raise_http
from services.commission_store import CommissionStore, get_store
from services.errors import CommissionError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/commissions", tags=["commissions"])


@router.get("", response_model=list[CommissionRecordOut])
def list_commissions(
    device_id: str | None = Query(None),
    store: CommissionStore = Depends(get_store),
):
    return store.list_transactions(device_id=device_id)


@router.post("", response_model=CommissionRecordOut, status_code=201)
def create_commission(payload: CommissionRecordIn, store: CommissionStore = Depends(get_store)):
    try:
        return store.add_transaction(payload)
    except CommissionError as exc:
        raise_http(exc)


@router.get("/{record_id}", response_model=CommissionRecordOut)
def get_commission(record_id: int, store: CommissionStore = Depends(get_store)):
    try:
        return store.get_transaction(record_id)
    except CommissionError as exc:
        raise_http(exc)


@router.put("/{record_id}", response_model=CommissionRecordOut)
def update_commission(
    record_id: int,
    payload: CommissionRecordUpdate,
    store: CommissionStore = Depends(get_store),
):
    fields = payload.model_dump(exclude_unset=True)
    try:
        return store.update_transaction(record_id, fields)
    except CommissionError as exc:
        raise_http(exc)


@router.delete("/{record_id}")
def delete_commission(record_id: int, store: CommissionStore = Depends(get_store)):
    try:
        store.delete_transaction(record_id)
    except CommissionError as exc:
        raise_http(exc)
    logger.info("DELETE: commission record=%s", record_id)
    return {"deleted": True, "id": record_id}
