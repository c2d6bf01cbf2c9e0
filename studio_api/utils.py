import calendar
import os
from datetime import date, datetime, time, timezone
from decimal import Decimal
from typing import Any, Optional

from fastapi import Request

from studio_api.exceptions import ValidationFailed


def env_flag(name: str, default: str = "") -> bool:
    return str(os.getenv(name, default)).strip().lower() in ("1", "true", "yes", "on")


def parse_int(value: Any) -> Optional[int]:
    try:
        if value is None or value == "":
            return None
        return int(value)
    except Exception:
        return None


def iso(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, (datetime, date, time)):
        return value.isoformat()
    return str(value)


def money(value: Any) -> Optional[float]:
    if value is None:
        return None
    if isinstance(value, Decimal):
        return float(value)
    try:
        return float(value)
    except Exception:
        return None


def utcnow() -> datetime:
    """Naive UTC timestamp, matching the DateTime columns."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


async def read_json_body(request: Request) -> Any:
    try:
        return await request.json()
    except Exception:
        raise ValidationFailed("Validation failed", details=[{"loc": [], "msg": "Invalid JSON body"}])


def add_months(start: date, months: int) -> date:
    """Same day ``months`` later, clamped to the end of shorter months."""
    month_index = start.month - 1 + int(months)
    year = start.year + month_index // 12
    month = month_index % 12 + 1
    return date(year, month, min(start.day, calendar.monthrange(year, month)[1]))
