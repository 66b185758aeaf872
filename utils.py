import re
from decimal import Decimal, InvalidOperation, ROUND_DOWN

from exceptions import ValidationError

CENTS = Decimal("0.01")
MILLIGRAMS = Decimal("0.0001")


def parse_user_id(value, field_name="userId"):
    """Coerce a positive integer id from JSON or a URL segment."""
    if value is None or value == "" or isinstance(value, bool):
        raise ValidationError(f"Missing {field_name}")
    if isinstance(value, float) and not value.is_integer():
        raise ValidationError(f"{field_name} must be a whole number")
    try:
        user_id = int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{field_name} must be a number")
    if user_id <= 0:
        raise ValidationError(f"Invalid {field_name}")
    return user_id


def parse_amount(value, field_name="amount", quantum=CENTS):
    """Coerce a strictly positive Decimal amount with no more precision than quantum."""
    if value is None or value == "" or isinstance(value, bool):
        raise ValidationError(f"Missing {field_name}")
    try:
        amount = Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise ValidationError(f"Invalid {field_name}")
    if not amount.is_finite() or amount <= 0:
        raise ValidationError(f"Invalid {field_name}")
    try:
        exact = amount == amount.quantize(quantum, rounding=ROUND_DOWN)
    except InvalidOperation:
        raise ValidationError(f"Invalid {field_name}")
    if not exact:
        raise ValidationError(f"{field_name} has too many decimal places")
    return amount


def parse_grams(value):
    """Gold amounts arrive as numbers or strings like "2.10g"."""
    if isinstance(value, str):
        value = re.sub(r"[^\d.]", "", value)
    return parse_amount(value, "grams", quantum=MILLIGRAMS)


def percent_of(amount: Decimal, percent: Decimal) -> Decimal:
    return (amount * percent / Decimal("100")).quantize(CENTS, rounding=ROUND_DOWN)


def sanitize_key(value) -> str:
    """Make a value safe to use as a key in a stored map."""
    return re.sub(r"[^a-z0-9]+", "_", str(value).strip().lower()).strip("_")


def to_float(value, default=0.0):
    """Safely convert value to float"""
    try:
        if value is None:
            return default
        return float(value)
    except (TypeError, ValueError):
        return default


def safe_isoformat(dt_value):
    return dt_value.isoformat() if dt_value else None


def require_fields(data, *fields):
    missing = [f for f in fields if data.get(f) in (None, "")]
    if missing:
        raise ValidationError(f"Missing required fields: {', '.join(missing)}")
