from decimal import Decimal, InvalidOperation

from core.exceptions import InvalidProposal


def to_decimal(value, label) -> Decimal:
    """Decimal(value) or InvalidProposal naming the offending field."""
    if isinstance(value, float):
        value = repr(value)
    try:
        number = Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError):
        raise InvalidProposal(f"{label} {value!r} is not a decimal number")
    if not number.is_finite():
        raise InvalidProposal(f"{label} {value!r} is not a decimal number")
    return number
