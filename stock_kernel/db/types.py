"""
Module: stock_kernel.db.types
Responsibility: Annotated column type aliases and the money conversion
    helpers shared by models, services and selectors.
Architecture position: Kernel > DB.  MUST NOT import from models/,
    services/, selectors/ or domain/.

Invariants enforced:
    - No floats for money.  Inputs are converted through ``str`` into
      ``Decimal`` and rounded with ``round_money()`` to the stored scale.
"""

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Annotated

from sqlalchemy import Numeric, String

# Monetary amount: 18 digits total, 4 decimal places
Money = Annotated[Decimal, Numeric(18, 4)]

# Item names and free-text notes
ItemName = Annotated[str, String(200)]
NoteText = Annotated[str, String(1000)]

MONEY_DECIMAL_PLACES = 4
DEFAULT_ROUNDING = ROUND_HALF_UP

_MONEY_QUANTUM = Decimal(1).scaleb(-MONEY_DECIMAL_PLACES)


def round_money(value: Decimal) -> Decimal:
    """Round a monetary value to the stored scale (half-up)."""
    return value.quantize(_MONEY_QUANTUM, rounding=DEFAULT_ROUNDING)


def coerce_money(value: object) -> Decimal | None:
    """
    Convert int / str / float / Decimal input into a finite Decimal.

    Returns None when the value cannot be represented (callers turn that
    into a ValidationError with the field name attached).  Floats go
    through ``str`` so 0.1 stays 0.1.
    """
    if isinstance(value, bool):
        return None
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, (int, float, str)):
        try:
            result = Decimal(str(value).strip())
        except InvalidOperation:
            return None
    else:
        return None
    if not result.is_finite():
        return None
    return result
