# backend/hms_core/common/api/params.py
from __future__ import annotations

from datetime import date, datetime
from uuid import UUID

from django.utils.dateparse import parse_date, parse_datetime
from rest_framework.exceptions import NotFound, ValidationError as DRFValidationError


def uuid_or_none(value: str | None, field_name: str) -> UUID | None:
    if not value:
        return None
    try:
        return UUID(str(value))
    except (TypeError, ValueError):
        raise DRFValidationError({field_name: "Invalid UUID"})


def int_or_none(value: str | None, field_name: str) -> int | None:
    if value is None or value == "":
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        raise DRFValidationError({field_name: "Invalid integer"})


def date_or_none(value: str | None, field_name: str) -> date | None:
    if not value:
        return None
    parsed = parse_date(str(value))
    if parsed is None:
        raise DRFValidationError({field_name: "Invalid date (YYYY-MM-DD expected)"})
    return parsed


def datetime_or_none(value: str | None, field_name: str) -> datetime | None:
    if not value:
        return None
    parsed = parse_datetime(str(value))
    if parsed is None:
        raise DRFValidationError({field_name: "Invalid datetime (ISO-8601 expected)"})
    return parsed


def pk_uuid(value) -> UUID:
    """
    Parse a URL primary key. Malformed ids are reported as 404, like a missing row.
    """
    try:
        return UUID(str(value))
    except (TypeError, ValueError):
        raise NotFound("Not found.")
