from datetime import date

import pandas as pd
from fastapi import HTTPException

from services.errors import CommissionError, DuplicateError, NotFoundError


def raise_http(exc: CommissionError):
    if isinstance(exc, NotFoundError):
        raise HTTPException(status_code=404, detail=str(exc))
    if isinstance(exc, DuplicateError):
        raise HTTPException(status_code=409, detail=str(exc))
    raise HTTPException(status_code=400, detail=str(exc))


def _to_date(value: str | None) -> date | None:
    if not value:
        return None
    parsed = pd.to_datetime(value, errors="coerce")
    if parsed is pd.NaT or pd.isna(parsed):
        raise HTTPException(status_code=400, detail=f"Invalid date: {value}")
    return parsed.date()


def sanitize_range(from_date: str | None, to_date: str | None) -> tuple[date, date] | None:
    """Inclusive range from query params; needs both ends, swaps reversed bounds."""
    start = _to_date(from_date)
    end = _to_date(to_date)
    if start is None or end is None:
        return None
    if start > end:
        start, end = end, start
    return start, end
