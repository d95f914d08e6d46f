class CommissionError(Exception):
    """Base class for errors raised by the commission store."""


class ValidationError(CommissionError):
    """Input is structurally invalid (missing IMEI, zero amount, bad field)."""


class NotFoundError(CommissionError):
    """Target transaction, device or upload batch does not exist."""


class DuplicateError(CommissionError):
    """A transaction with the same IMEI, payment date and amount already exists."""
