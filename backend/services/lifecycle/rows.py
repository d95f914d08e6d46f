# services/lifecycle/rows.py

from dataclasses import dataclass, fields


@dataclass(frozen=True)
class TransactionRow:
    """Point-in-time copy of one commission transaction."""

    id: int | None
    device_id: str
    payment_date: str = ""
    activation_date: str = ""
    payment_type: str = ""
    amount: float = 0.0
    description: str = ""
    adjustment_reason: str | None = None
    month_number: int | None = None
    sale_type: str = "Unknown"
    rep_username: str | None = None
    store: str | None = None
    is_active: bool = True
    payment_received: bool | None = None
    manually_entered: bool = False
    source_file_id: str | None = None


@dataclass(frozen=True)
class AnnotationRow:
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


TRANSACTION_FIELDS = tuple(f.name for f in fields(TransactionRow))
ANNOTATION_FIELDS = tuple(f.name for f in fields(AnnotationRow))


def row_from_object(obj) -> TransactionRow:
    return TransactionRow(**{name: getattr(obj, name) for name in TRANSACTION_FIELDS})


def annotation_from_object(obj) -> AnnotationRow:
    return AnnotationRow(**{name: getattr(obj, name) for name in ANNOTATION_FIELDS})


def group_by_device(records) -> dict[str, list[TransactionRow]]:
    groups: dict[str, list[TransactionRow]] = {}
    for record in records:
        groups.setdefault(record.device_id, []).append(record)
    return groups


def canonical_record(records):
    """
    First record carrying an activation date, else the first record.
    All schedule math for a device is anchored to this record.
    """
    if not records:
        return None
    for record in records:
        if (record.activation_date or "").strip():
            return record
    return records[0]
