import logging
import math
import uuid
from dataclasses import asdict, dataclass, is_dataclass
from datetime import date

from fastapi import Depends
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from db.deps import get_db
from models.commission_records import CommissionRecord
from models.device_annotations import DeviceAnnotation
from models.upload_batches import UploadBatch
from services.errors import DuplicateError, NotFoundError, ValidationError
from services.lifecycle.classifier import ANNOTATION_FLAGS
from services.lifecycle.rows import (
    ANNOTATION_FIELDS,
    TRANSACTION_FIELDS,
    AnnotationRow,
    TransactionRow,
    annotation_from_object,
    canonical_record,
    row_from_object,
)
from services.lifecycle.schedule import TOTAL_MONTHS

logger = logging.getLogger(__name__)

RECORD_FIELDS = tuple(name for name in TRANSACTION_FIELDS if name != "id")
ANNOTATION_UPDATE_FIELDS = tuple(name for name in ANNOTATION_FIELDS if name != "device_id")
_ANNOTATION_BOOL_FIELDS = ("withholding_resolved", "suspended", "deactivated", "blacklisted", "byod_swap")
_KEY_LOOKUP_CHUNK = 500


@dataclass
class BatchMeta:
    filename: str
    batch_id: str | None = None


@dataclass
class IngestResult:
    inserted: int = 0
    duplicates: int = 0
    skipped: int = 0
    batch_id: str | None = None
    total_amount: float = 0.0


@dataclass
class StoreSnapshot:
    records: tuple[TransactionRow, ...]
    annotations: dict[str, AnnotationRow]


def _as_dict(row) -> dict:
    if hasattr(row, "model_dump"):
        return row.model_dump()
    if is_dataclass(row):
        return asdict(row)
    return dict(row)


def _clean_text(value) -> str:
    if value is None:
        return ""
    return str(value).strip()


def _parse_amount(value) -> float:
    if value is None or value == "":
        raise ValidationError("amount is required")
    try:
        amount = float(value)
    except (TypeError, ValueError):
        raise ValidationError(f"amount is not a number: {value!r}")
    if not math.isfinite(amount):
        raise ValidationError(f"amount must be finite: {value!r}")
    return amount


def _parse_month(value) -> int | None:
    if value is None or value == "":
        return None
    try:
        month = int(value)
    except (TypeError, ValueError):
        return None
    return month if 1 <= month <= TOTAL_MONTHS else None


def _dedup_key(device_id: str, payment_date: str, amount: float) -> tuple[str, str, float]:
    return (device_id, payment_date or "", float(amount))


def normalize_record(row) -> dict:
    """
    Bring one candidate row into the stored shape.

    Raises ValidationError for a missing IMEI or a zero amount.
    """
    data = _as_dict(row)
    device_id = _clean_text(data.get("device_id"))
    if not device_id:
        raise ValidationError("device_id is required")
    amount = _parse_amount(data.get("amount"))
    if amount == 0:
        raise ValidationError("amount must be non-zero")

    return {
        "device_id": device_id,
        "payment_date": _clean_text(data.get("payment_date")),
        "activation_date": _clean_text(data.get("activation_date")),
        "payment_type": _clean_text(data.get("payment_type")),
        "amount": amount,
        "description": _clean_text(data.get("description")),
        "adjustment_reason": _clean_text(data.get("adjustment_reason")) or None,
        "month_number": _parse_month(data.get("month_number")),
        "sale_type": _clean_text(data.get("sale_type")) or "Unknown",
        "rep_username": _clean_text(data.get("rep_username")) or None,
        "store": _clean_text(data.get("store")) or None,
        "is_active": data.get("is_active") is not False,
        "payment_received": data.get("payment_received"),
        "manually_entered": bool(data.get("manually_entered", False)),
        "source_file_id": _clean_text(data.get("source_file_id")) or None,
    }


class CommissionStore:
    """
    Owner of commission records, device annotations and upload batches.

    One instance wraps one SQLAlchemy session. Read-side computations work
    on `snapshot()` so they never see a half-applied write.
    """

    def __init__(self, db: Session):
        self.db = db

    # --------------------------------------------------
    # INGESTION
    # --------------------------------------------------
    def _existing_keys(self, device_ids: set[str]) -> set[tuple[str, str, float]]:
        keys: set[tuple[str, str, float]] = set()
        ids = sorted(device_ids)
        for start in range(0, len(ids), _KEY_LOOKUP_CHUNK):
            chunk = ids[start : start + _KEY_LOOKUP_CHUNK]
            rows = (
                self.db.query(
                    CommissionRecord.device_id,
                    CommissionRecord.payment_date,
                    CommissionRecord.amount,
                )
                .filter(CommissionRecord.device_id.in_(chunk))
                .all()
            )
            keys.update(_dedup_key(r.device_id, r.payment_date, r.amount) for r in rows)
        return keys

    def add_transactions(self, rows, batch_meta: BatchMeta | None = None) -> IngestResult:
        if batch_meta is not None and batch_meta.batch_id:
            if self.db.get(UploadBatch, batch_meta.batch_id) is not None:
                raise ValidationError(f"Upload batch {batch_meta.batch_id} already exists")

        result = IngestResult()
        candidates: list[dict] = []
        for row in rows:
            try:
                candidates.append(normalize_record(row))
            except ValidationError as exc:
                result.skipped += 1
                logger.debug("INGEST: skipped row (%s)", exc)

        seen = self._existing_keys({c["device_id"] for c in candidates})
        unique: list[dict] = []
        for candidate in candidates:
            key = _dedup_key(candidate["device_id"], candidate["payment_date"], candidate["amount"])
            if key in seen:
                result.duplicates += 1
                continue
            seen.add(key)
            unique.append(candidate)

        if batch_meta is not None and unique:
            result.batch_id = batch_meta.batch_id or uuid.uuid4().hex
            for candidate in unique:
                candidate["source_file_id"] = result.batch_id

        if unique:
            try:
                self.db.add_all([CommissionRecord(**candidate) for candidate in unique])
                self.db.commit()
            except SQLAlchemyError:
                self.db.rollback()
                raise

        result.inserted = len(unique)
        result.total_amount = sum(c["amount"] for c in unique)

        if result.batch_id is not None:
            try:
                self.db.add(
                    UploadBatch(
                        id=result.batch_id,
                        filename=batch_meta.filename,
                        record_count=result.inserted,
                        total_amount=result.total_amount,
                    )
                )
                self.db.commit()
            except SQLAlchemyError:
                self.db.rollback()
                logger.exception("Failed to save upload batch metadata for %s", batch_meta.filename)

        logger.info(
            "INGEST: inserted=%s duplicates=%s skipped=%s batch=%s",
            result.inserted,
            result.duplicates,
            result.skipped,
            result.batch_id,
        )
        return result

    def _key_taken(self, candidate: dict, exclude_id: int | None = None) -> bool:
        query = self.db.query(CommissionRecord.id).filter(
            CommissionRecord.device_id == candidate["device_id"],
            CommissionRecord.payment_date == candidate["payment_date"],
            CommissionRecord.amount == candidate["amount"],
        )
        if exclude_id is not None:
            query = query.filter(CommissionRecord.id != exclude_id)
        return query.first() is not None

    def add_transaction(self, row) -> CommissionRecord:
        candidate = normalize_record(row)
        if self._key_taken(candidate):
            raise DuplicateError(
                f"Transaction for {candidate['device_id']} on {candidate['payment_date'] or '(no date)'} "
                f"with amount {candidate['amount']} already exists"
            )
        record = CommissionRecord(**candidate)
        self.db.add(record)
        self.db.commit()
        self.db.refresh(record)
        return record

    # --------------------------------------------------
    # RECORD MUTATIONS
    # --------------------------------------------------
    def get_transaction(self, record_id: int) -> CommissionRecord:
        record = self.db.get(CommissionRecord, record_id)
        if record is None:
            raise NotFoundError(f"Commission record {record_id} not found")
        return record

    def update_transaction(self, record_id: int, fields: dict) -> CommissionRecord:
        record = self.get_transaction(record_id)
        unknown = set(fields) - set(RECORD_FIELDS)
        if unknown:
            raise ValidationError(f"Unknown fields: {', '.join(sorted(unknown))}")

        # null is_active in a partial update means unchanged
        fields = {k: v for k, v in fields.items() if not (k == "is_active" and v is None)}

        merged = {name: getattr(record, name) for name in RECORD_FIELDS}
        merged.update(fields)
        normalized = normalize_record(merged)
        if set(fields) & {"device_id", "payment_date", "amount"} and self._key_taken(normalized, exclude_id=record.id):
            raise DuplicateError(f"Another transaction for {normalized['device_id']} has the same date and amount")
        for name in fields:
            setattr(record, name, normalized[name])

        self.db.commit()
        self.db.refresh(record)
        return record

    def delete_transaction(self, record_id: int) -> None:
        record = self.get_transaction(record_id)
        self.db.delete(record)
        self.db.commit()

    def records_for_device(self, device_id: str) -> list[CommissionRecord]:
        return (
            self.db.query(CommissionRecord)
            .filter(CommissionRecord.device_id == device_id)
            .order_by(CommissionRecord.id.asc())
            .all()
        )

    def list_transactions(self, device_id: str | None = None) -> list[CommissionRecord]:
        if device_id:
            return self.records_for_device(device_id)
        return self.db.query(CommissionRecord).order_by(CommissionRecord.id.asc()).all()

    def toggle_device_active(self, device_id: str) -> bool:
        records = self.records_for_device(device_id)
        if not records:
            raise NotFoundError(f"Device {device_id} not found")

        new_state = not records[0].is_active
        for record in records:
            record.is_active = new_state
        self.db.commit()
        return new_state

    def add_manual_month_payment(
        self,
        device_id: str,
        month: int,
        amount: float,
        received: bool,
        payment_date: str | None = None,
    ) -> CommissionRecord | None:
        if month < 1 or month > TOTAL_MONTHS:
            raise ValidationError(f"month must be between 1 and {TOTAL_MONTHS}")
        if not amount:
            return None
        records = self.records_for_device(device_id)
        anchor = canonical_record(records)
        if anchor is None:
            return None

        record = CommissionRecord(
            device_id=device_id,
            payment_date=_clean_text(payment_date) or date.today().isoformat(),
            activation_date=anchor.activation_date,
            payment_type=f"{anchor.sale_type} - Month {month}",
            amount=float(amount),
            description=f"Manual Entry - Month {month}",
            month_number=month,
            sale_type=anchor.sale_type,
            rep_username=anchor.rep_username,
            store=anchor.store,
            is_active=True,
            payment_received=received,
            manually_entered=True,
        )
        self.db.add(record)
        self.db.commit()
        self.db.refresh(record)
        logger.info("MANUAL PAYMENT: device=%s month=%s amount=%s", device_id, month, amount)
        return record

    def purge_devices(self, device_ids: list[str]) -> int:
        if not device_ids:
            return 0
        deleted = (
            self.db.query(CommissionRecord)
            .filter(CommissionRecord.device_id.in_(device_ids))
            .delete(synchronize_session=False)
        )
        self.db.commit()
        return int(deleted or 0)

    # --------------------------------------------------
    # UPLOAD BATCHES
    # --------------------------------------------------
    def list_batches(self) -> list[UploadBatch]:
        return self.db.query(UploadBatch).order_by(UploadBatch.uploaded_at.desc()).all()

    def get_batch(self, batch_id: str) -> UploadBatch:
        batch = self.db.get(UploadBatch, batch_id)
        if batch is None:
            raise NotFoundError(f"Upload batch {batch_id} not found")
        return batch

    def batch_records(self, batch_id: str) -> list[CommissionRecord]:
        self.get_batch(batch_id)
        return (
            self.db.query(CommissionRecord)
            .filter(CommissionRecord.source_file_id == batch_id)
            .order_by(CommissionRecord.id.asc())
            .all()
        )

    def delete_batch(self, batch_id: str) -> int:
        batch = self.get_batch(batch_id)
        deleted = (
            self.db.query(CommissionRecord)
            .filter(CommissionRecord.source_file_id == batch_id)
            .delete(synchronize_session=False)
        )
        self.db.delete(batch)
        self.db.commit()
        logger.info("DELETE BATCH: batch=%s rows=%s", batch_id, deleted)
        return int(deleted or 0)

    # --------------------------------------------------
    # ANNOTATIONS
    # --------------------------------------------------
    def get_annotation(self, device_id: str) -> DeviceAnnotation | None:
        return self.db.get(DeviceAnnotation, device_id)

    def _apply_annotation(self, device_id, fields: dict) -> DeviceAnnotation:
        device_id = _clean_text(device_id)
        if not device_id:
            raise ValidationError("device_id is required")
        unknown = set(fields) - set(ANNOTATION_UPDATE_FIELDS)
        if unknown:
            raise ValidationError(f"Unknown fields: {', '.join(sorted(unknown))}")

        updates = dict(fields)
        if updates.get("suspended") and updates.get("deactivated"):
            raise ValidationError("A device cannot be both suspended and deactivated")
        if updates.get("suspended"):
            updates["deactivated"] = False
        elif updates.get("deactivated"):
            updates["suspended"] = False
        if "notes" in updates and updates["notes"] is None:
            updates["notes"] = ""
        for name in _ANNOTATION_BOOL_FIELDS:
            if name in updates:
                updates[name] = bool(updates[name])

        annotation = self.get_annotation(device_id)
        if annotation is None:
            annotation = DeviceAnnotation(
                device_id=device_id,
                notes="",
                withholding_resolved=False,
                suspended=False,
                deactivated=False,
                blacklisted=False,
                byod_swap=False,
            )
            self.db.add(annotation)

        for name, value in updates.items():
            setattr(annotation, name, value)
        self.db.flush()
        return annotation

    def set_annotation(self, device_id: str, fields: dict) -> DeviceAnnotation:
        try:
            annotation = self._apply_annotation(device_id, fields)
            self.db.commit()
        except (ValidationError, SQLAlchemyError):
            self.db.rollback()
            raise
        self.db.refresh(annotation)
        return annotation

    def list_annotations(self, flag: str | None = None) -> list[DeviceAnnotation]:
        if flag is not None and flag not in ANNOTATION_FLAGS:
            raise ValidationError(f"Unknown annotation flag: {flag}")

        annotations = self.db.query(DeviceAnnotation).order_by(DeviceAnnotation.device_id.asc()).all()
        if flag is None:
            return annotations
        if flag == "notes":
            return [a for a in annotations if (a.notes or "").strip()]
        if flag == "status":
            return [a for a in annotations if a.suspended or a.deactivated]
        return [a for a in annotations if getattr(a, flag)]

    def export_annotations(self) -> list[dict]:
        return [asdict(annotation_from_object(a)) for a in self.list_annotations()]

    def import_annotations(self, entries: list[dict]) -> int:
        """All entries are applied in one transaction; any invalid entry rejects the whole import."""
        try:
            for entry in entries:
                fields = {k: v for k, v in entry.items() if k in ANNOTATION_UPDATE_FIELDS}
                self._apply_annotation(entry.get("device_id"), fields)
            self.db.commit()
        except (ValidationError, SQLAlchemyError):
            self.db.rollback()
            raise
        logger.info("ANNOTATIONS: imported=%s", len(entries))
        return len(entries)

    # --------------------------------------------------
    # READS
    # --------------------------------------------------
    def list_stores(self) -> list[str]:
        rows = self.db.query(CommissionRecord.store).distinct().all()
        return sorted({r.store for r in rows if r.store})

    def snapshot(self) -> StoreSnapshot:
        records = self.db.query(CommissionRecord).order_by(CommissionRecord.id.asc()).all()
        annotations = self.db.query(DeviceAnnotation).all()
        return StoreSnapshot(
            records=tuple(row_from_object(r) for r in records),
            annotations={a.device_id: annotation_from_object(a) for a in annotations},
        )


def get_store(db: Session = Depends(get_db)) -> CommissionStore:
    return CommissionStore(db)
