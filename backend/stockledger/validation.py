from __future__ import annotations
from datetime import date, datetime
from decimal import Decimal
from stockledger.time_utils import parse_iso_date

from dataclasses import dataclass
from typing import Any

from sqlalchemy import Boolean, Date, Integer, Numeric, String, Text
from sqlalchemy.orm import DeclarativeMeta

from stockledger.errors import ValidationError
from stockledger.money import to_decimal


# Upper bound for quantities and unit prices. Keeps values inside Numeric(14, 4).
MAX_AMOUNT = Decimal("9999999999.9999")


@dataclass(frozen=True)
class ModelValidationPolicy:
    """
    Central policy layer:
    - writable_fields: what clients are allowed to set
    - required_on_create: fields required on create
    - non_negative_fields: numeric fields that must be >= 0
    """
    writable_fields: set[str]
    required_on_create: set[str] = None  # type: ignore
    non_negative_fields: set[str] | None = None


def _columns_by_key(model: DeclarativeMeta) -> dict[str, Any]:
    mapper = model.__mapper__
    return {c.key: c for c in mapper.columns}


def coerce_int(value: Any, field: str) -> int:
    """Strict integer: rejects floats, bools, decimals and scientific notation."""
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise ValidationError(f"{field} must be an integer")
        if 'e' in stripped.lower():
            raise ValidationError(f"{field} must be a plain integer (scientific notation not allowed)")
        if '.' in stripped:
            raise ValidationError(f"{field} must be an integer (no decimals)")
        try:
            return int(stripped)
        except ValueError:
            raise ValidationError(f"{field} must be an integer")
    if isinstance(value, float):
        raise ValidationError(f"{field} must be an integer, not a decimal")
    raise ValidationError(f"{field} must be an integer")


def coerce_decimal(
    value: Any,
    field: str,
    *,
    positive: bool = False,
    non_negative: bool = False,
) -> Decimal:
    try:
        result = to_decimal(value, field=field)
    except ValueError as exc:
        raise ValidationError(str(exc), {"field": field})
    if positive and result <= 0:
        raise ValidationError(f"{field} must be greater than 0", {"field": field})
    if non_negative and result < 0:
        raise ValidationError(f"{field} must be >= 0", {"field": field})
    if abs(result) > MAX_AMOUNT:
        raise ValidationError(f"{field} exceeds the maximum allowed value", {"field": field})
    return result


def coerce_date(value: Any, field: str) -> date:
    if isinstance(value, (date, datetime)):
        return parse_iso_date(value)
    if value is None or (isinstance(value, str) and not value.strip()):
        raise ValidationError(f"{field} is required", {"field": field})
    try:
        return parse_iso_date(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{field} must be an ISO-8601 date (YYYY-MM-DD)", {"field": field})


def require_text(value: Any, field: str, *, max_length: int | None = None) -> str:
    if value is None or not str(value).strip():
        raise ValidationError(f"{field} is required", {"field": field})
    text = str(value).strip()
    if max_length and len(text) > max_length:
        raise ValidationError(f"{field} exceeds max length {max_length}", {"field": field})
    return text


def optional_text(value: Any, *, max_length: int | None = None) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    if not text:
        return None
    if max_length and len(text) > max_length:
        raise ValidationError(f"Text exceeds max length {max_length}")
    return text


def parse_item_lines(lines: Any, *, price_field: str | None = None) -> list[dict]:
    """
    Normalize [{item_id, quantity[, <price_field>]}] into typed dicts.

    Every line is checked before anything is returned, so a bad line N
    fails the whole payload.
    """
    if not isinstance(lines, list) or not lines:
        raise ValidationError("At least one line is required", {"field": "lines"})

    parsed = []
    for index, raw in enumerate(lines, start=1):
        if not isinstance(raw, dict):
            raise ValidationError(f"Line {index} must be an object", {"line": index})
        if raw.get("item_id") is None:
            raise ValidationError(f"Line {index}: item_id is required", {"line": index})
        line = {
            "item_id": coerce_int(raw.get("item_id"), f"lines[{index}].item_id"),
            "quantity": coerce_decimal(raw.get("quantity"), f"lines[{index}].quantity", positive=True),
        }
        if price_field:
            line[price_field] = coerce_decimal(
                raw.get(price_field), f"lines[{index}].{price_field}", non_negative=True
            )
        parsed.append(line)
    return parsed


def _coerce_value(col, value: Any):
    coltype = col.type

    if value is None:
        return None

    if isinstance(coltype, Integer):
        return coerce_int(value, col.key)

    if isinstance(coltype, Numeric):
        return coerce_decimal(value, col.key)

    if isinstance(coltype, Boolean):
        if isinstance(value, bool):
            return value
        raise ValidationError(f"{col.key} must be a boolean")

    if isinstance(coltype, Date):
        return coerce_date(value, col.key)

    if isinstance(coltype, (String, Text)):
        return str(value).strip()

    return value


def validate_payload(
    *,
    model: DeclarativeMeta,
    payload: dict,
    policy: ModelValidationPolicy,
    partial: bool,
) -> dict:
    """
    Validates + normalizes incoming JSON against:
    - SQLAlchemy column metadata (nullable, type, String length)
    - a policy allowlist (writable_fields)
    - required_on_create (if partial=False)
    Returns a cleaned patch dict with only writable fields.

    partial=False: create semantics (enforce required_on_create)
    partial=True: patch semantics (validate only provided keys)
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    required = policy.required_on_create or set()
    if not partial:
        missing = [f for f in required if f not in payload]
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(sorted(missing))}")

    cols = _columns_by_key(model)

    # Reject unknown / non-writable fields
    for k in payload.keys():
        if k not in policy.writable_fields:
            raise ValidationError(f"Field not allowed: {k}", {"field": k})
        if k not in cols:
            raise ValidationError(f"Unknown field: {k}", {"field": k})

    non_negative = policy.non_negative_fields or set()
    patch: dict = {}

    for k, raw in payload.items():
        col = cols[k]

        if raw is None:
            if not col.nullable:
                raise ValidationError(f"{k} cannot be null", {"field": k})
            patch[k] = None
            continue

        val = _coerce_value(col, raw)

        if isinstance(col.type, (String, Text)) and not col.nullable:
            if isinstance(val, str) and val == "":
                raise ValidationError(f"{k} cannot be blank", {"field": k})

        if isinstance(col.type, String) and col.type.length and isinstance(val, str):
            if len(val) > col.type.length:
                raise ValidationError(f"{k} exceeds max length {col.type.length}", {"field": k})

        if k in non_negative and val is not None and val < 0:
            raise ValidationError(f"{k} must be >= 0", {"field": k})

        patch[k] = val

    return patch
