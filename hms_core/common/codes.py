# backend/hms_core/common/codes.py
from __future__ import annotations

import secrets
import string

_UPPER = string.ascii_uppercase


def numeric_code(prefix: str, digits: int = 8) -> str:
    """
    e.g. numeric_code("PR") -> "PR04821937"
    """
    n = secrets.randbelow(10 ** digits)
    return f"{prefix}{n:0{digits}d}"


def appointment_code() -> str:
    # AP + 6 digits + 3 uppercase letters
    suffix = "".join(secrets.choice(_UPPER) for _ in range(3))
    return f"{numeric_code('AP', 6)}{suffix}"


def unique_code(model, field: str, factory, *, attempts: int = 10) -> str:
    """
    Draw codes from `factory` until one is unused in model.field.
    """
    for _ in range(attempts):
        code = factory()
        if not model.objects.filter(**{field: code}).exists():
            return code
    raise RuntimeError(f"Could not allocate a unique {model.__name__}.{field}")
