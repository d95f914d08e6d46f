import logging
import re
from io import BytesIO

import pandas as pd

from services.errors import ValidationError
from services.lifecycle.schedule import TOTAL_MONTHS, parse_date

logger = logging.getLogger(__name__)

# store field -> accepted export headers, first match wins
COLUMN_ALIASES = {
    "payment_date": ["Payment Date"],
    "activation_date": ["Activation Date/Swap Date", "Activation Date"],
    "device_id": ["IMEI"],
    "amount": ["Amount"],
    "payment_type": ["Payment Type"],
    "description": ["Payment Description"],
    "sale_type": ["Sale Type"],
    "rep_username": ["Rep Username"],
    "store": ["Business Name"],
    "adjustment_reason": ["Adjustment Reason"],
}
SALE_IMEI_COLUMN = "Sale IMEI"

MDY_DATE_RE = re.compile(r"^\s*(\d{1,2})[/\-](\d{1,2})[/\-](\d{2,4})\b")
MONTH_RE = re.compile(r"Month\s*(\d+)", re.IGNORECASE)
LABELLED_IMEI_RE = re.compile(r"IMEI\s*(\d{15})", re.IGNORECASE)
BARE_IMEI_RE = re.compile(r"(\d{15})")
STORE_SUFFIX_RE = re.compile(r"\*\d+$")
DAYS_PER_MONTH_GUESS = 35


def _resolve_columns(columns) -> dict[str, str]:
    by_lower = {str(c).strip().lower(): c for c in columns}
    resolved = {}
    for field, aliases in COLUMN_ALIASES.items():
        for alias in aliases:
            if alias.lower() in by_lower:
                resolved[field] = by_lower[alias.lower()]
                break
    sale_imei = by_lower.get(SALE_IMEI_COLUMN.lower())
    if sale_imei is not None:
        resolved["sale_imei"] = sale_imei
    return resolved


def clean_imei(value) -> str:
    """Strip spreadsheet artifacts such as ="356..." and a float tail."""
    text = str(value or "").strip()
    if text.startswith('="'):
        text = text[2:]
    text = text.strip('"').strip()
    if text.endswith(".0") and text[:-2].isdigit():
        text = text[:-2]
    return "" if text.lower() == "unknown" else text


def parse_amount(value) -> float:
    text = str(value or "").strip()
    negative = text.startswith("(") and text.endswith(")")
    cleaned = re.sub(r"[^0-9.\-]", "", text)
    try:
        amount = float(cleaned)
    except ValueError:
        return 0.0
    return -abs(amount) if negative else amount


def normalize_date(value) -> str:
    text = str(value or "").strip()
    if not text:
        return ""
    match = MDY_DATE_RE.match(text)
    if match:
        month, day, year = match.groups()
        if len(year) == 2:
            year = f"20{year}"
        try:
            return pd.Timestamp(year=int(year), month=int(month), day=int(day)).date().isoformat()
        except ValueError:
            return ""
    parsed = parse_date(text)
    return parsed.isoformat() if parsed is not None else ""


def infer_month(description: str, activation_date: str, payment_date: str) -> int | None:
    match = MONTH_RE.search(description or "")
    if match:
        return int(match.group(1))

    activated = parse_date(activation_date)
    paid = parse_date(payment_date)
    if activated is None or paid is None:
        return None
    month = (paid - activated).days // DAYS_PER_MONTH_GUESS + 1
    return month if 1 <= month <= TOTAL_MONTHS else None


def _find_imei(row: dict, columns: dict[str, str]) -> str:
    imei = clean_imei(row.get(columns["device_id"], "")) if "device_id" in columns else ""
    if not imei and "sale_imei" in columns:
        imei = clean_imei(row.get(columns["sale_imei"], ""))
    if not imei:
        description = str(row.get(columns.get("description"), "") or "")
        match = LABELLED_IMEI_RE.search(description) or BARE_IMEI_RE.search(description)
        if match:
            imei = match.group(1)
    return imei


def parse_commission_frame(df: pd.DataFrame) -> list[dict]:
    columns = _resolve_columns(df.columns)

    def cell(row: dict, field: str) -> str:
        name = columns.get(field)
        if name is None:
            return ""
        return str(row.get(name, "") or "").strip()

    rows = []
    for raw in df.to_dict(orient="records"):
        if not any(str(v or "").strip() for v in raw.values()):
            continue

        payment_date = normalize_date(cell(raw, "payment_date"))
        activation_date = normalize_date(cell(raw, "activation_date"))
        description = cell(raw, "description")
        store = STORE_SUFFIX_RE.sub("", cell(raw, "store")).strip()

        rows.append(
            {
                "device_id": _find_imei(raw, columns),
                "payment_date": payment_date,
                "activation_date": activation_date,
                "payment_type": cell(raw, "payment_type") or "Commission",
                "amount": parse_amount(cell(raw, "amount")),
                "description": description,
                "adjustment_reason": cell(raw, "adjustment_reason") or None,
                "month_number": infer_month(description, activation_date, payment_date),
                "sale_type": cell(raw, "sale_type") or "Unknown",
                "rep_username": cell(raw, "rep_username") or None,
                "store": store or None,
            }
        )
    return rows


def read_commission_file(filename: str, contents: bytes) -> pd.DataFrame:
    name = (filename or "").lower()
    buf = BytesIO(contents)
    if name.endswith(".csv"):
        df = pd.read_csv(buf, dtype=str, keep_default_na=False)
    elif name.endswith(".xlsx") or name.endswith(".xls"):
        df = pd.read_excel(buf, dtype=str)
    else:
        raise ValidationError("Only .csv, .xls or .xlsx files are supported.")
    return df.fillna("")


def parse_commission_file(filename: str, contents: bytes) -> list[dict]:
    df = read_commission_file(filename, contents)
    rows = parse_commission_frame(df)
    logger.info("PARSE: file=%s rows=%s parsed=%s", filename, len(df), len(rows))
    return rows
